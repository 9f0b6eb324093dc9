"""Command line tools for ModelRelay."""

from .main import cli

__all__ = ["cli", "main"]


def main():
    """Main entry point for the modelrelay CLI."""
    cli()
