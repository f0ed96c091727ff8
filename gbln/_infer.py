"""GBLN inference engine: choose a type hint for an untyped Python value.

Inference is a pure function ``value -> TypeHint``, kept apart from the
validating constructors so the converter can be handed a different
strategy.  Two strategies ship here:

    infer_narrowest   smallest representation (the default)
    infer_widest      64-bit integers and s1024 strings

Narrowest integer search tries i8, u8, i16, u16, i32, u32, i64, u64 in
that order and takes the first fit; negative values never consider the
unsigned widths.  Python floats always infer f64.  f32 is only produced
when asked for explicitly through ``Typed``.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Callable, Union

from ._constants import INFER_INT_ORDER, INT_BOUNDS, MAX_STRING_BYTES
from ._errors import InvalidTypeHintError, RangeError, SerializeError
from ._values import (
    ARRAY_HINT,
    BOOL_HINT,
    F64_HINT,
    NULL_HINT,
    OBJECT_HINT,
    Kind,
    TypeHint,
    integer_hint,
    smallest_tier,
    string_hint,
)

InferFn = Callable[[Any], TypeHint]


class Typed:
    """A scalar value pinned to an explicit type hint.

        >>> Typed(12345, "u32")
        Typed(12345, 'u32')

    Used to request hints inference would not pick (f32, a wider tier,
    an unsigned width), and returned by ``parse_to_native(typed=True)``.
    """

    __slots__ = ("value", "hint")

    def __init__(self, value: Any, hint: Union[str, TypeHint]) -> None:
        if isinstance(hint, str):
            hint = TypeHint.parse(hint)
        elif not isinstance(hint, TypeHint):
            raise InvalidTypeHintError("hint must be a str or TypeHint, got {}".format(
                type(hint).__name__))
        if not hint.is_scalar:
            raise InvalidTypeHintError("Typed only carries scalar hints, got <{}>".format(hint))
        self.value = value
        self.hint = hint

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Typed):
            return NotImplemented
        return self.hint == other.hint and self.value == other.value

    def __hash__(self) -> int:
        return hash((self.hint, self.value))

    def __repr__(self) -> str:
        return "Typed({!r}, {!r})".format(self.value, self.hint.token)


def _narrowest_int(value: int) -> TypeHint:
    for width, signed in INFER_INT_ORDER:
        if value < 0 and not signed:
            continue
        lo, hi = INT_BOUNDS[(width, signed)]
        if lo <= value <= hi:
            return integer_hint(width, signed)
    # Past 64 bits the value can only travel as f64, and only if exact.
    try:
        exact = int(float(value)) == value
    except OverflowError:
        exact = False
    if not exact:
        raise RangeError("{} does not fit any 64-bit integer and is not exact as f64".format(
            value))
    return F64_HINT


def infer_narrowest(value: Any) -> TypeHint:
    if isinstance(value, Typed):
        return value.hint
    if value is None:
        return NULL_HINT
    # bool before int: isinstance(True, int) is True.
    if isinstance(value, bool):
        return BOOL_HINT
    if isinstance(value, int):
        return _narrowest_int(value)
    if isinstance(value, float):
        return F64_HINT
    if isinstance(value, str):
        nbytes = len(value.encode("utf-8", errors="surrogatepass"))
        return string_hint(smallest_tier(nbytes))
    if isinstance(value, Mapping):
        return OBJECT_HINT
    if isinstance(value, (list, tuple)):
        return ARRAY_HINT
    raise SerializeError("unsupported type: {}".format(type(value).__name__))


def infer_widest(value: Any) -> TypeHint:
    hint = infer_narrowest(value)
    if isinstance(value, Typed):
        return hint
    if hint.kind is Kind.INTEGER:
        return integer_hint(64, value <= INT_BOUNDS[(64, True)][1])
    if hint.kind is Kind.STRING:
        return string_hint(MAX_STRING_BYTES)
    return hint
