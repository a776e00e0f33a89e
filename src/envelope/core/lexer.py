"""
Line-oriented .env parser.

Turns .env text into an ordered list of (key, value) pairs:
    KEY=VALUE         plain assignment, whitespace around key and value trimmed
    export KEY=VALUE  the export prefix is accepted and dropped
    KEY="VALUE"       one pair of matching quotes is stripped, nothing else
    # comment         ignored, as are blank lines

A line without '=' or with an empty key is a MalformedLine. Duplicate keys
keep the position of their first occurrence and the value of their last.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import InvalidName, MalformedLine

Pair = Tuple[str, str]

QUOTE_CHARS = ('"', "'")


class TokenType(Enum):
    """Token types for .env file parsing."""
    COMMENT = "comment"
    BLANK_LINE = "blank_line"
    KEY_VALUE = "key_value"
    MALFORMED = "malformed"


@dataclass
class Token:
    """A single line of a .env file."""
    type: TokenType
    raw: str  # line content without its terminator
    line_number: int
    key: Optional[str] = None
    value: Optional[str] = None
    has_export: bool = False
    error: Optional[str] = None

    def __repr__(self):
        if self.type == TokenType.KEY_VALUE:
            export = "export " if self.has_export else ""
            return f"Token({self.line_number}, {export}{self.key}={self.value})"
        return f"Token({self.line_number}, {self.type.value}, {repr(self.raw[:20])})"

    def to_error(self) -> MalformedLine:
        """Build the MalformedLine error for a MALFORMED token."""
        return MalformedLine(self.line_number, self.raw, self.error or "expected KEY=VALUE")


def strip_quotes(value: str) -> str:
    """Remove one pair of matching surrounding quotes, if present."""
    if len(value) >= 2 and value[0] in QUOTE_CHARS and value[-1] == value[0]:
        return value[1:-1]
    return value


def split_lines(content: str) -> List[str]:
    """
    Split content into lines on LF only, dropping a trailing CR from each.

    Other Unicode line boundaries (form feed, U+2028, ...) stay inside the
    line they appear in.
    """
    lines = content.split('\n')
    if lines[-1] == '':
        lines.pop()
    return [line[:-1] if line.endswith('\r') else line for line in lines]


def key_problem(key: str) -> Optional[str]:
    """Why `key` cannot be written as a KEY=VALUE line, or None if it can."""
    if not key:
        return "is empty"
    if '=' in key:
        return "contains '='"
    if '\n' in key or '\r' in key:
        return "contains a newline"
    if key != key.strip():
        return "has surrounding whitespace"
    if key.startswith('#'):
        return "starts with '#'"
    if key.startswith('export '):
        return "starts with 'export '"
    return None


class Lexer:
    """
    Tokenizer for .env content.

    Every line becomes exactly one token; malformed lines become MALFORMED
    tokens rather than exceptions so callers can pick their own policy.
    """

    def __init__(self, content: str):
        self.content = content
        self.lines = split_lines(content)

    def tokenize(self) -> List[Token]:
        """
        Parse content into tokens.

        Returns:
            List of Token objects, one per input line.
        """
        return [
            self._parse_line(line, line_number)
            for line_number, line in enumerate(self.lines, start=1)
        ]

    def _parse_line(self, line: str, line_number: int) -> Token:
        """Parse a single line into a token."""
        stripped = line.strip()

        if not stripped:
            return Token(type=TokenType.BLANK_LINE, raw=line, line_number=line_number)

        if stripped.startswith('#'):
            return Token(type=TokenType.COMMENT, raw=line, line_number=line_number)

        has_export = False
        working_line = stripped
        if working_line.startswith('export ') and '=' in working_line:
            has_export = True
            working_line = working_line[len('export '):]

        if '=' not in working_line:
            return Token(
                type=TokenType.MALFORMED,
                raw=line,
                line_number=line_number,
                error="missing '=' separator",
            )

        key, _, value = working_line.partition('=')
        key = key.strip()
        if not key:
            return Token(
                type=TokenType.MALFORMED,
                raw=line,
                line_number=line_number,
                error="empty key",
            )

        return Token(
            type=TokenType.KEY_VALUE,
            raw=line,
            line_number=line_number,
            key=key,
            value=strip_quotes(value.strip()),
            has_export=has_export,
        )


def tokenize(content: str) -> List[Token]:
    """Tokenize .env content without raising on malformed lines."""
    return Lexer(content).tokenize()


def _collect_pairs(tokens: Iterable[Token]) -> List[Pair]:
    values: Dict[str, str] = {}
    for token in tokens:
        if token.type == TokenType.KEY_VALUE:
            values[token.key] = token.value
    return list(values.items())


def parse(content: str) -> List[Pair]:
    """
    Parse .env file content into ordered key/value pairs.

    Args:
        content: String content of a .env file

    Returns:
        List of (key, value) tuples in order of first appearance

    Raises:
        MalformedLine: for the first line that is not KEY=VALUE
    """
    tokens = tokenize(content)
    for token in tokens:
        if token.type == TokenType.MALFORMED:
            raise token.to_error()
    return _collect_pairs(tokens)


def parse_lenient(content: str) -> Tuple[List[Pair], List[MalformedLine]]:
    """
    Parse .env content, skipping malformed lines.

    Returns:
        Tuple of (pairs from the valid lines, errors for the skipped lines)
    """
    tokens = tokenize(content)
    errors = [token.to_error() for token in tokens if token.type == TokenType.MALFORMED]
    return _collect_pairs(tokens), errors


def _needs_quotes(value: str) -> bool:
    if value != value.strip() or '#' in value:
        return True
    return strip_quotes(value) != value


def dump(pairs: Iterable[Pair]) -> str:
    """
    Serialize pairs back into .env text.

    Values that would change when re-parsed unquoted are wrapped in double
    quotes, so parse(dump(pairs)) returns the same pairs.

    Raises:
        InvalidName: a key that would not read back as the same key
    """
    lines = []
    for key, value in pairs:
        problem = key_problem(key)
        if problem:
            raise InvalidName(f"variable key {key!r} {problem}")
        if _needs_quotes(value):
            value = f'"{value}"'
        lines.append(f"{key}={value}\n")
    return ''.join(lines)
