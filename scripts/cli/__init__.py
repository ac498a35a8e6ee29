"""
Cash fund operator CLI.

Balances, the public transaction windows, student status lookups, link
checks, monthly export and bulk student import, all from the terminal.

Entry point: python -m scripts.cli
"""

from scripts.cli.main import main

__all__ = ["main"]
