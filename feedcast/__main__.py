"""Main entry point for the feedcast package."""

from feedcast.cli import cli

if __name__ == "__main__":
    cli()
