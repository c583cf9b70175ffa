"""Main entry point for the feed engine package."""

from feed_engine.cli import cli

if __name__ == "__main__":
    cli()
