"""
Envelope core modules.

Includes:
- errors: Error types shared by the core
- lexer: .env parsing and export
- store: The .envelope file and operations on its environments
- checker: Detection of active environments
- discovery: Locating the .envelope file
"""

from . import errors
from . import lexer
from . import store
from . import checker
from . import discovery

__all__ = [
    "errors",
    "lexer",
    "store",
    "checker",
    "discovery",
]
