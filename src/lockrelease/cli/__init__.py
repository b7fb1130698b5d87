"""lockrelease command-line interface."""

from lockrelease.cli.main import cli, main

__all__ = ["cli", "main"]
