"""GBLN error codes and exception hierarchy.

Every failure raised by this package is a ``GblnError`` whose ``.code``
is one of the ERR_* strings below.  The first twelve codes are shared
with the other GBLN bindings; the rest are produced only by the
handle/conversion core and the renderer.

    GblnError
    ├── ParseError            malformed text
    ├── ValidationError       value rejected by a type hint or accessor
    │   ├── RangeError
    │   ├── LengthError
    │   ├── TypeMismatchError
    │   ├── DuplicateKeyError
    │   ├── InvalidTypeHintError
    │   ├── KeyNotFoundError
    │   └── IndexOutOfRangeError
    ├── OwnershipError        misuse of a handle (always a programming bug)
    ├── SerializeError        native value that cannot be represented
    ├── ConfigError           bad render settings (also a ValueError)
    └── IoError               file-level failure
"""

from __future__ import annotations

from typing import List, Optional, Union

# ── Error codes ──────────────────────────────────────────────

ERR_UNEXPECTED_CHAR: str = "UnexpectedChar"
ERR_UNTERMINATED_STRING: str = "UnterminatedString"
ERR_UNEXPECTED_TOKEN: str = "UnexpectedToken"
ERR_UNEXPECTED_EOF: str = "UnexpectedEof"
ERR_INVALID_SYNTAX: str = "InvalidSyntax"
ERR_INT_OUT_OF_RANGE: str = "IntOutOfRange"
ERR_STRING_TOO_LONG: str = "StringTooLong"
ERR_TYPE_MISMATCH: str = "TypeMismatch"
ERR_INVALID_TYPE_HINT: str = "InvalidTypeHint"
ERR_DUPLICATE_KEY: str = "DuplicateKey"
ERR_NULL_POINTER: str = "NullPointer"
ERR_IO: str = "Io"

ERR_KEY_NOT_FOUND: str = "KeyNotFound"
ERR_INDEX_OUT_OF_RANGE: str = "IndexOutOfRange"
ERR_OWNERSHIP: str = "Ownership"
ERR_SERIALIZE: str = "Serialize"
ERR_INVALID_CONFIG: str = "InvalidConfig"

SYNTAX_CODES = frozenset([
    ERR_UNEXPECTED_CHAR,
    ERR_UNTERMINATED_STRING,
    ERR_UNEXPECTED_TOKEN,
    ERR_UNEXPECTED_EOF,
    ERR_INVALID_SYNTAX,
])

PathSegment = Union[str, int]


class GblnError(Exception):
    """Base exception for all GBLN failures.

    ``.code`` is what tests and the CLI compare against.  ``.path`` is
    filled in by the converter as the error travels up the value tree;
    ``.line``/``.column`` are set by the parser.
    """

    default_code: str = ERR_INVALID_SYNTAX

    def __init__(self, msg: str = "", code: Optional[str] = None) -> None:
        self.code = code or self.default_code
        self.message = msg or self.code
        self.path: List[PathSegment] = []
        self.line: Optional[int] = None
        self.column: Optional[int] = None
        super().__init__(self.message)

    def prepend_path(self, segment: PathSegment) -> None:
        self.path.insert(0, segment)

    def at(self, line: int, column: int) -> "GblnError":
        if self.line is None:
            self.line = line
            self.column = column
        return self

    def path_string(self) -> str:
        out = "$"
        for seg in self.path:
            if isinstance(seg, int):
                out += "[{}]".format(seg)
            else:
                out += "." + seg
        return out

    def __str__(self) -> str:
        text = self.message
        if self.path:
            text += " (at {})".format(self.path_string())
        if self.line is not None:
            text += " at line {}, column {}".format(self.line, self.column)
        return text


class ParseError(GblnError):
    """Malformed GBLN text.  Carries one of the syntax codes."""


class ValidationError(GblnError):
    """A value does not satisfy its type hint, or an accessor was misused."""


class RangeError(ValidationError):
    default_code = ERR_INT_OUT_OF_RANGE


class LengthError(ValidationError):
    default_code = ERR_STRING_TOO_LONG


class TypeMismatchError(ValidationError):
    default_code = ERR_TYPE_MISMATCH


class DuplicateKeyError(ValidationError):
    default_code = ERR_DUPLICATE_KEY


class InvalidTypeHintError(ValidationError):
    default_code = ERR_INVALID_TYPE_HINT


class KeyNotFoundError(ValidationError):
    default_code = ERR_KEY_NOT_FOUND


class IndexOutOfRangeError(ValidationError):
    default_code = ERR_INDEX_OUT_OF_RANGE


class OwnershipError(GblnError):
    """A handle was used after release, released twice, or crossed registries."""

    default_code = ERR_OWNERSHIP


class SerializeError(GblnError):
    """A native value has no GBLN representation (cycle, unsupported type)."""

    default_code = ERR_SERIALIZE


class ConfigError(GblnError, ValueError):
    """Rejected render configuration, such as a negative indent width."""

    default_code = ERR_INVALID_CONFIG


class IoError(GblnError):
    default_code = ERR_IO
