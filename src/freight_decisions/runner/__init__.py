"""
CLI runner module.

Provides commands:
- init: Write default config and rules, create the database
- import-rules: Load a rules file into the database
- score: Confidence for one document
- recommend: Action recommendation for one document
- auto-resolve: Close open actions resolved by a new document
- process: All of the above for one document
- status: Rule cache and database statistics
"""

from .main import create_cli, main

__all__ = [
    "create_cli",
    "main",
]
