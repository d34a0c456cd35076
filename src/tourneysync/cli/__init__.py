"""
TourneySync CLI - Operator command-line interface.
"""

from tourneysync.cli.main import cli, main

__all__ = ["cli", "main"]
