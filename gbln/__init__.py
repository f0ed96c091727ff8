"""gbln: Goblin Bounded Lean Notation for Python.

A compact, self-describing text format whose values carry explicit
width/bound type hints that are enforced when values are built or parsed.

Quick start:
    >>> from gbln import parse_to_native, native_to_serialized
    >>> parse_to_native("user{id<u32>(12345)name<s64>(Alice Johnson)age<i8>(25)}")
    {'user': {'id': 12345, 'name': 'Alice Johnson', 'age': 25}}
    >>> native_to_serialized({"user": {"id": 12345, "name": "Alice"}})
    'user{id<i16>(12345)name<s8>(Alice)}'

Hint policy: ``roundtrip()`` keeps the hints written in the source text.
Going through plain Python values re-infers the narrowest hints; pass
``typed=True`` to ``parse_to_native`` to keep them as ``Typed`` wrappers:
    >>> roundtrip("id<u32>(7)")
    'id<u32>(7)'
    >>> native_to_serialized(parse_to_native("id<u32>(7)"))
    'id<i8>(7)'
    >>> native_to_serialized(parse_to_native("id<u32>(7)", typed=True))
    'id<u32>(7)'

Every call builds its own ``Registry`` unless one is passed in, and
releases every handle it created before returning or raising.
"""

from __future__ import annotations

from typing import Any, Optional, Union

from ._constants import DEFAULT_INDENT, INT_BOUNDS, MAX_DEPTH, STRING_TIERS
from ._convert import Converter
from ._errors import (
    ERR_DUPLICATE_KEY,
    ERR_INDEX_OUT_OF_RANGE,
    ERR_INT_OUT_OF_RANGE,
    ERR_INVALID_CONFIG,
    ERR_INVALID_SYNTAX,
    ERR_INVALID_TYPE_HINT,
    ERR_IO,
    ERR_KEY_NOT_FOUND,
    ERR_NULL_POINTER,
    ERR_OWNERSHIP,
    ERR_SERIALIZE,
    ERR_STRING_TOO_LONG,
    ERR_TYPE_MISMATCH,
    ERR_UNEXPECTED_CHAR,
    ERR_UNEXPECTED_EOF,
    ERR_UNEXPECTED_TOKEN,
    ERR_UNTERMINATED_STRING,
    ConfigError,
    DuplicateKeyError,
    GblnError,
    IndexOutOfRangeError,
    InvalidTypeHintError,
    IoError,
    KeyNotFoundError,
    LengthError,
    OwnershipError,
    ParseError,
    RangeError,
    SerializeError,
    TypeMismatchError,
    ValidationError,
)
from ._handles import Arena, Handle, Registry
from ._infer import InferFn, Typed, infer_narrowest, infer_widest
from ._parser import parse_to_handle
from ._render import COMPACT, PRETTY, RenderConfig, render
from ._values import Kind, TypeHint, ValueType

__version__ = "1.0.0"

__all__ = [
    # Public API functions
    "parse_to_native",
    "native_to_serialized",
    "roundtrip",
    "to_string",
    "to_string_pretty",
    "parse_to_handle",
    "render",
    # Core types
    "Arena",
    "Converter",
    "Handle",
    "Registry",
    "RenderConfig",
    "COMPACT",
    "PRETTY",
    "Typed",
    "TypeHint",
    "Kind",
    "ValueType",
    "InferFn",
    "infer_narrowest",
    "infer_widest",
    # Limits
    "INT_BOUNDS",
    "STRING_TIERS",
    "MAX_DEPTH",
    # Exceptions
    "GblnError",
    "ParseError",
    "ValidationError",
    "RangeError",
    "LengthError",
    "TypeMismatchError",
    "DuplicateKeyError",
    "InvalidTypeHintError",
    "KeyNotFoundError",
    "IndexOutOfRangeError",
    "OwnershipError",
    "SerializeError",
    "ConfigError",
    "IoError",
    # Error codes
    "ERR_UNEXPECTED_CHAR",
    "ERR_UNTERMINATED_STRING",
    "ERR_UNEXPECTED_TOKEN",
    "ERR_UNEXPECTED_EOF",
    "ERR_INVALID_SYNTAX",
    "ERR_INT_OUT_OF_RANGE",
    "ERR_STRING_TOO_LONG",
    "ERR_TYPE_MISMATCH",
    "ERR_INVALID_TYPE_HINT",
    "ERR_DUPLICATE_KEY",
    "ERR_NULL_POINTER",
    "ERR_IO",
    "ERR_KEY_NOT_FOUND",
    "ERR_INDEX_OUT_OF_RANGE",
    "ERR_OWNERSHIP",
    "ERR_SERIALIZE",
    "ERR_INVALID_CONFIG",
]


# ── Text -> native ────────────────────────────────────────────

def parse_to_native(text: Union[str, bytes], *, typed: bool = False,
                    registry: Optional[Registry] = None) -> Any:
    """Parse GBLN text into plain Python values.

    Integers of every width come back as ``int``, both float widths as
    ``float``, strings as ``str``, objects as ``dict`` in source order.
    With ``typed=True`` each scalar is a ``Typed`` carrying its hint.
    """
    registry = registry if registry is not None else Registry()
    root = parse_to_handle(text, registry)
    return Converter(registry).to_native(root, typed=typed)


# ── Native -> text ────────────────────────────────────────────

def native_to_serialized(value: Any, *, pretty: bool = False,
                         indent_width: int = DEFAULT_INDENT,
                         infer: InferFn = infer_narrowest,
                         registry: Optional[Registry] = None) -> str:
    """Serialize a Python value, inferring a hint for every untyped scalar.

    A ``dict`` root becomes top-level pairs; any other root is written as
    a bare value.  Use ``Typed`` to pin a hint (f32, a wider tier ...).
    """
    config = RenderConfig(pretty=pretty, indent_width=indent_width)
    registry = registry if registry is not None else Registry()
    root = Converter(registry, infer).to_handle(value)
    try:
        return render(registry, root, config)
    finally:
        registry.release(root)


def to_string(value: Any) -> str:
    """Compact serialization with inferred hints."""
    return native_to_serialized(value)


def to_string_pretty(value: Any, indent_width: int = DEFAULT_INDENT) -> str:
    """Pretty serialization with inferred hints."""
    return native_to_serialized(value, pretty=True, indent_width=indent_width)


# ── Text -> text ──────────────────────────────────────────────

def roundtrip(text: Union[str, bytes], *, pretty: bool = False,
              indent_width: int = DEFAULT_INDENT, strip_comments: bool = True,
              registry: Optional[Registry] = None) -> str:
    """Parse and re-render, keeping the source's type hints.

    Rendering is a normal form: ``roundtrip(roundtrip(t)) == roundtrip(t)``.
    Leading comments survive only with ``strip_comments=False``.
    """
    config = RenderConfig(pretty=pretty, indent_width=indent_width,
                          strip_comments=strip_comments)
    registry = registry if registry is not None else Registry()
    root = parse_to_handle(text, registry)
    try:
        return render(registry, root, config)
    finally:
        registry.release(root)
