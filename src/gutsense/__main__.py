"""Entry point for python -m gutsense."""

from gutsense.cli import cli

if __name__ == "__main__":
    cli()
