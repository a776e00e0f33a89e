"""
Error types raised by the envelope core.

The parser, store and checker never recover from these themselves; the CLI
decides how each one is reported and which exit code it maps to.
"""

from typing import Optional


class EnvelopeError(Exception):
    """Base class for every error the core raises."""


class StoreIOError(EnvelopeError):
    """Filesystem failure while reading or writing a store or input file."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class StoreNotFound(EnvelopeError):
    """No store file exists where one was expected."""

    def __init__(self, path: str):
        super().__init__(f"no envelope store found at {path}")
        self.path = path


class CorruptStore(EnvelopeError):
    """The store file exists but is not a valid envelope store."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"corrupt envelope store {path}: {reason}")
        self.path = path
        self.reason = reason


class AlreadyExists(EnvelopeError):
    """A store file or environment name is already taken."""


class EnvironmentNotFound(EnvelopeError):
    """An operation referenced an environment that is not in the store."""

    def __init__(self, name: str):
        super().__init__(f"environment '{name}' does not exist")
        self.name = name


class InvalidName(EnvelopeError):
    """An environment name or variable key is not acceptable."""


class MalformedLine(EnvelopeError):
    """A .env line does not follow the KEY=VALUE grammar."""

    def __init__(self, line_number: int, raw: str, reason: str = "expected KEY=VALUE"):
        super().__init__(f"line {line_number}: {reason}: {raw!r}")
        self.line_number = line_number
        self.raw = raw
        self.reason = reason
