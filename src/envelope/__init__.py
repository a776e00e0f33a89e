"""
Envelope - named environment manager

Keeps several named sets of environment variables in one `.envelope` file,
imports them from .env files and reports which ones are active.
"""

__version__ = "0.1.0"

from .core import checker, errors, lexer, store

__all__ = [
    "checker",
    "errors",
    "lexer",
    "store",
]
