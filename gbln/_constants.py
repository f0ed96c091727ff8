"""GBLN constants: type hint widths, integer bounds, string tiers, limits.

Everything the value model validates against lives here so the bounds
table can be read in one place.
"""

from __future__ import annotations

from typing import Dict, Tuple

__format_version__ = "1.0"

# ── Integer widths and exact bounds ──────────────────────────
# Python ints are arbitrary-precision, so every bound is checked by hand.

INT_WIDTHS: Tuple[int, ...] = (8, 16, 32, 64)

INT_BOUNDS: Dict[Tuple[int, bool], Tuple[int, int]] = {
    (8, True): (-(2**7), 2**7 - 1),
    (8, False): (0, 2**8 - 1),
    (16, True): (-(2**15), 2**15 - 1),
    (16, False): (0, 2**16 - 1),
    (32, True): (-(2**31), 2**31 - 1),
    (32, False): (0, 2**32 - 1),
    (64, True): (-(2**63), 2**63 - 1),
    (64, False): (0, 2**64 - 1),
}

# Inference order: smallest width first, signed before unsigned.
INFER_INT_ORDER: Tuple[Tuple[int, bool], ...] = (
    (8, True), (8, False),
    (16, True), (16, False),
    (32, True), (32, False),
    (64, True), (64, False),
)

# Largest integer a binary64 float holds without losing precision.
MAX_SAFE_INTEGER: int = 2**53 - 1

# ── Floats ───────────────────────────────────────────────────

FLOAT_WIDTHS: Tuple[int, ...] = (32, 64)

# ── Bounded string tiers (bytes of UTF-8) ────────────────────

STRING_TIERS: Tuple[int, ...] = (2, 4, 8, 16, 32, 64, 128, 256, 512, 1024)
MAX_STRING_BYTES: int = STRING_TIERS[-1]

# ── Textual syntax ───────────────────────────────────────────

COMMENT_MARKER = ":|"
WHITESPACE = " \t\r\n"
BOOL_TRUE = "t"
BOOL_FALSE = "f"

# ── Safety limits ────────────────────────────────────────────
# Container nesting beyond this is rejected by both the parser and the
# converter instead of running into the interpreter's recursion limit.
MAX_DEPTH: int = 128

DEFAULT_INDENT: int = 2
