"""Natural language to shell commands, with a safety gate before anything runs."""

from .cli import main

__all__ = ["main"]
