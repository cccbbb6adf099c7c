"""Spry command-line interface (``spry``)."""

from spry.cli.app import app

__all__ = ["app"]
