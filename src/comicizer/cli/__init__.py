"""CLI package for comicizer."""

from comicizer.cli.main import app

__all__ = ["app"]
