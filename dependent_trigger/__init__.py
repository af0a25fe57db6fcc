"""
Dependent Trigger

Reacts to package change events, maintains the first-level dependency graph and
release lines, and triggers builds or publishes of dependent packages.
"""

__version__ = "0.1.0"

from .cli import main

__all__ = ["main"]
