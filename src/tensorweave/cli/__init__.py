"""Command line interface for tensorweave."""

from .main import cli, main

__all__ = ["cli", "main"]
