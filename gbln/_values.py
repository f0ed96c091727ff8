"""GBLN typed value model: type hints and the validating node constructors.

A GBLN value is one of seven variants:

    Integer        i8 i16 i32 i64 u8 u16 u32 u64   exact-width, never clamped
    Float          f32 f64                         f32 rounds like a C float store
    BoundedString  s2 s4 ... s1024                 UTF-8 bytes, length <= tier
    Boolean        b
    Null           n
    Object         ordered str -> value, unique keys
    Array          ordered values, mixed variants allowed

The node classes below are what the arena stores.  Containers hold arena
addresses of their children rather than the children themselves; the
arena (see _handles.py) is the single owner of every node.
"""

from __future__ import annotations

import enum
import math
import struct
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ._constants import (
    FLOAT_WIDTHS,
    INT_BOUNDS,
    INT_WIDTHS,
    MAX_SAFE_INTEGER,
    MAX_STRING_BYTES,
    STRING_TIERS,
)
from ._errors import (
    InvalidTypeHintError,
    LengthError,
    RangeError,
    TypeMismatchError,
)


class ValueType(enum.IntEnum):
    """Stable numeric tags for the fifteen value types."""

    I8 = 0
    I16 = 1
    I32 = 2
    I64 = 3
    U8 = 4
    U16 = 5
    U32 = 6
    U64 = 7
    F32 = 8
    F64 = 9
    STR = 10
    BOOL = 11
    NULL = 12
    OBJECT = 13
    ARRAY = 14


class Kind(enum.Enum):
    INTEGER = "integer"
    FLOAT = "float"
    STRING = "string"
    BOOLEAN = "boolean"
    NULL = "null"
    OBJECT = "object"
    ARRAY = "array"


SCALAR_KINDS = frozenset([Kind.INTEGER, Kind.FLOAT, Kind.STRING, Kind.BOOLEAN, Kind.NULL])

_INT_TYPES = {
    (8, True): ValueType.I8, (16, True): ValueType.I16,
    (32, True): ValueType.I32, (64, True): ValueType.I64,
    (8, False): ValueType.U8, (16, False): ValueType.U16,
    (32, False): ValueType.U32, (64, False): ValueType.U64,
}


@dataclass(frozen=True)
class TypeHint:
    """Width/bound annotation of a value, e.g. ``i8``, ``u64``, ``s64``.

    Use the module-level helpers (``integer_hint``, ``string_hint`` ...)
    or ``TypeHint.parse`` rather than the constructor; they validate
    widths and tiers.
    """

    kind: Kind
    width: Optional[int] = None
    signed: bool = False
    max_len: Optional[int] = None

    def __repr__(self) -> str:
        return "TypeHint({!r})".format(self.token)

    def __str__(self) -> str:
        return self.token

    @property
    def is_scalar(self) -> bool:
        return self.kind in SCALAR_KINDS

    @property
    def token(self) -> str:
        """Textual form as written between ``<`` and ``>``."""
        if self.kind is Kind.INTEGER:
            return "{}{}".format("i" if self.signed else "u", self.width)
        if self.kind is Kind.FLOAT:
            return "f{}".format(self.width)
        if self.kind is Kind.STRING:
            return "s{}".format(self.max_len)
        if self.kind is Kind.BOOLEAN:
            return "b"
        if self.kind is Kind.NULL:
            return "n"
        return self.kind.value

    @property
    def value_type(self) -> ValueType:
        if self.kind is Kind.INTEGER:
            return _INT_TYPES[(self.width, self.signed)]
        if self.kind is Kind.FLOAT:
            return ValueType.F32 if self.width == 32 else ValueType.F64
        return {
            Kind.STRING: ValueType.STR,
            Kind.BOOLEAN: ValueType.BOOL,
            Kind.NULL: ValueType.NULL,
            Kind.OBJECT: ValueType.OBJECT,
            Kind.ARRAY: ValueType.ARRAY,
        }[self.kind]

    @classmethod
    def parse(cls, token: str) -> "TypeHint":
        """Parse ``i8``, ``u32``, ``f64``, ``s64``, ``b`` or ``n``."""
        if token == "b":
            return BOOL_HINT
        if token == "n":
            return NULL_HINT
        head, digits = token[:1], token[1:]
        if not (digits.isascii() and digits.isdigit()) or digits.startswith("0"):
            raise InvalidTypeHintError("invalid type hint <{}>".format(token))
        size = int(digits)
        if head == "i":
            return integer_hint(size, True)
        if head == "u":
            return integer_hint(size, False)
        if head == "f":
            return float_hint(size)
        if head == "s":
            return string_hint(size)
        raise InvalidTypeHintError("invalid type hint <{}>".format(token))


def integer_hint(width: int, signed: bool) -> TypeHint:
    if width not in INT_WIDTHS:
        raise InvalidTypeHintError("integer width must be one of {}, got {}".format(
            list(INT_WIDTHS), width))
    return TypeHint(Kind.INTEGER, width=width, signed=bool(signed))


def float_hint(width: int) -> TypeHint:
    if width not in FLOAT_WIDTHS:
        raise InvalidTypeHintError("float width must be 32 or 64, got {}".format(width))
    return TypeHint(Kind.FLOAT, width=width)


def string_hint(max_len: int) -> TypeHint:
    if max_len not in STRING_TIERS:
        raise InvalidTypeHintError("string tier must be one of {}, got {}".format(
            list(STRING_TIERS), max_len))
    return TypeHint(Kind.STRING, max_len=max_len)


BOOL_HINT = TypeHint(Kind.BOOLEAN)
NULL_HINT = TypeHint(Kind.NULL)
OBJECT_HINT = TypeHint(Kind.OBJECT)
ARRAY_HINT = TypeHint(Kind.ARRAY)
F64_HINT = TypeHint(Kind.FLOAT, width=64)


# ── Validation helpers ───────────────────────────────────────

def int_bounds(width: int, signed: bool) -> Tuple[int, int]:
    return INT_BOUNDS[(width, bool(signed))]


def smallest_tier(nbytes: int) -> int:
    """Smallest tier that holds ``nbytes`` bytes of UTF-8."""
    for tier in STRING_TIERS:
        if nbytes <= tier:
            return tier
    raise LengthError("string of {} bytes exceeds the {}-byte maximum".format(
        nbytes, MAX_STRING_BYTES))


def round_f32(x: float) -> float:
    """Round to the nearest IEEE-754 single, as a float store/load would."""
    try:
        return struct.unpack("<f", struct.pack("<f", x))[0]
    except OverflowError:
        # struct refuses values that round past FLT_MAX; IEEE gives inf.
        return math.copysign(math.inf, x)


def _utf8(raw: Any) -> bytes:
    if raw is None:
        raise LengthError("string value is undefined")
    if isinstance(raw, str):
        try:
            return raw.encode("utf-8")
        except UnicodeEncodeError:
            raise TypeMismatchError("string contains a lone surrogate")
    if isinstance(raw, (bytes, bytearray)):
        data = bytes(raw)
        try:
            data.decode("utf-8")
        except UnicodeDecodeError:
            raise TypeMismatchError("string bytes are not valid UTF-8")
        return data
    raise TypeMismatchError("expected str or bytes, got {}".format(type(raw).__name__))


# ── Nodes ────────────────────────────────────────────────────

class Node:
    __slots__ = ("hint",)

    hint: TypeHint


class Integer(Node):
    __slots__ = ("value",)

    def __init__(self, width: int, signed: bool, raw: Any) -> None:
        hint = integer_hint(width, signed)
        # bool is an int subclass; True must not become 1.
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            raise TypeMismatchError("{} expects an integer, got {}".format(
                hint, type(raw).__name__))
        if isinstance(raw, float):
            if not raw.is_integer():
                raise TypeMismatchError("{} expects an integer, got {!r}".format(hint, raw))
            if abs(raw) > MAX_SAFE_INTEGER:
                raise RangeError("{!r} exceeds the safe integer limit {}".format(
                    raw, MAX_SAFE_INTEGER))
            raw = int(raw)
        lo, hi = int_bounds(width, signed)
        if raw < lo or raw > hi:
            raise RangeError("{} out of range [{}, {}] for {}".format(raw, lo, hi, hint))
        self.hint = hint
        self.value = raw


class Float(Node):
    __slots__ = ("value",)

    def __init__(self, width: int, raw: Any) -> None:
        hint = float_hint(width)
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            raise TypeMismatchError("{} expects a number, got {}".format(
                hint, type(raw).__name__))
        try:
            value = float(raw)
        except OverflowError:
            raise RangeError("{} does not fit a 64-bit float".format(raw))
        self.hint = hint
        self.value = round_f32(value) if width == 32 else value


class BoundedString(Node):
    __slots__ = ("data",)

    def __init__(self, raw: Any, max_len: Optional[int] = None) -> None:
        data = _utf8(raw)
        if max_len is None:
            max_len = smallest_tier(len(data))
        hint = string_hint(max_len)
        if len(data) > max_len:
            raise LengthError("string of {} bytes exceeds {}".format(len(data), hint))
        self.hint = hint
        self.data = data

    @property
    def text(self) -> str:
        return self.data.decode("utf-8")


class Boolean(Node):
    __slots__ = ("value",)

    def __init__(self, raw: Any) -> None:
        if not isinstance(raw, bool):
            raise TypeMismatchError("b expects a bool, got {}".format(type(raw).__name__))
        self.hint = BOOL_HINT
        self.value = raw


class Null(Node):
    __slots__ = ()

    def __init__(self) -> None:
        self.hint = NULL_HINT


class Object(Node):
    __slots__ = ("entries", "comments")

    def __init__(self) -> None:
        self.hint = OBJECT_HINT
        self.entries: Dict[str, int] = {}
        self.comments: Tuple[str, ...] = ()


class Array(Node):
    __slots__ = ("items",)

    def __init__(self) -> None:
        self.hint = ARRAY_HINT
        self.items: List[int] = []
