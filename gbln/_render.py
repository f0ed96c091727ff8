"""GBLN renderer: value tree to compact or pretty text.

Compact output has no whitespace except the spaces separating typed-array
tokens:

    user{id<u32>(12345)name<s64>(Alice)tags<s8>[admin ops]}

Pretty output puts one pair per line and indents nested bodies:

    user{
      id<u32>(12345)
      name<s64>(Alice)
      tags<s8>[admin ops]
    }

An Object root is written as bare pairs; any other root is written as a
bare value.  The renderer reads the tree through borrowed views and
releases each one as soon as it is written.  It never consumes the root.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

from ._constants import (
    BOOL_FALSE,
    BOOL_TRUE,
    COMMENT_MARKER,
    DEFAULT_INDENT,
    MAX_DEPTH,
    WHITESPACE,
)
from ._errors import ConfigError, GblnError, SerializeError
from ._handles import Handle, Registry
from ._parser import valid_key
from ._values import Kind, TypeHint, round_f32

# Characters escaped inside ( ... ) and inside typed-array tokens.
_ATOM_SPECIAL = "\\)"
_TOKEN_SPECIAL = "\\[]{}()<>:" + WHITESPACE


@dataclass(frozen=True)
class RenderConfig:
    pretty: bool = False
    indent_width: int = DEFAULT_INDENT
    strip_comments: bool = True

    def __post_init__(self) -> None:
        if isinstance(self.indent_width, bool) or not isinstance(self.indent_width, int):
            raise ConfigError("indent_width must be an int")
        if self.indent_width < 0:
            raise ConfigError("indent_width must be >= 0, got {}".format(self.indent_width))


COMPACT = RenderConfig()
PRETTY = RenderConfig(pretty=True)


def _escape(text: str, special: str) -> str:
    return "".join("\\" + ch if ch in special else ch for ch in text)


def format_float(value: float, width: int) -> str:
    """Shortest decimal that reads back as the same f32/f64 value."""
    if math.isnan(value):
        return "nan"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    if width == 64:
        return repr(value)
    for digits in range(1, 10):
        text = "{:.{}g}".format(value, digits)
        if round_f32(float(text)) == value:
            return text
    return repr(value)


class _Renderer:
    def __init__(self, registry: Registry, config: RenderConfig) -> None:
        self.registry = registry
        self.config = config
        self.out: List[str] = []

    def _newline(self, level: int) -> None:
        self.out.append("\n" + " " * (self.config.indent_width * level))

    # ── Objects ─────────────────────────────────────────────

    def _entries(self, obj: Handle) -> Iterator[Tuple[bool, str]]:
        """(is_comment, text) for kept comments, then (False, key) per pair."""
        if not self.config.strip_comments:
            for line in self.registry.comments_of(obj):
                yield True, line
        for key in self.registry.object_keys(obj):
            yield False, key

    def _entry(self, obj: Handle, is_comment: bool, text: str, level: int) -> None:
        if is_comment:
            self.out.append(COMMENT_MARKER + (" " + text if text else ""))
            if not self.config.pretty:
                self.out.append("\n")
            return
        if not valid_key(text):
            raise SerializeError("key {!r} cannot be written".format(text))
        self.out.append(text)
        child = self.registry.object_get(obj, text)
        try:
            self.value(child, level)
        except GblnError as err:
            err.prepend_path(text)
            raise
        finally:
            self.registry.release(child)

    def root_pairs(self, obj: Handle) -> None:
        first = True
        for is_comment, text in self._entries(obj):
            if self.config.pretty and not first:
                self.out.append("\n")
            first = False
            self._entry(obj, is_comment, text, 0)

    def _object(self, obj: Handle, level: int) -> None:
        self.out.append("{")
        entries = list(self._entries(obj))
        for is_comment, text in entries:
            if self.config.pretty:
                self._newline(level + 1)
            self._entry(obj, is_comment, text, level + 1)
        if entries and self.config.pretty:
            self._newline(level)
        self.out.append("}")

    # ── Arrays ──────────────────────────────────────────────

    def _survey(self, arr: Handle, length: int) -> Tuple[Optional[TypeHint], bool]:
        """Shared scalar hint of all elements (if any), and whether any is a container."""
        registry = self.registry
        shared: Optional[TypeHint] = None
        uniform = length > 0
        nested = False
        for index in range(length):
            view = registry.array_get(arr, index)
            try:
                hint = registry.hint_of(view)
                if not hint.is_scalar:
                    nested = True
                    uniform = False
                elif hint.kind is Kind.NULL or (shared is not None and hint != shared):
                    uniform = False
                elif hint.kind is Kind.STRING and not registry.as_string(view):
                    uniform = False
                shared = hint
            finally:
                registry.release(view)
        return (shared if uniform else None), nested

    def _array(self, arr: Handle, level: int) -> None:
        registry = self.registry
        length = registry.array_len(arr)
        shared, nested = self._survey(arr, length)

        if shared is not None:
            tokens: List[str] = []
            for index in range(length):
                view = registry.array_get(arr, index)
                try:
                    tokens.append(self._literal(view, shared, _TOKEN_SPECIAL))
                finally:
                    registry.release(view)
            self.out.append("<{}>[{}]".format(shared.token, " ".join(tokens)))
            return

        multiline = self.config.pretty and nested
        self.out.append("[")
        for index in range(length):
            if multiline:
                self._newline(level + 1)
            elif index and self.config.pretty:
                self.out.append(" ")
            view = registry.array_get(arr, index)
            try:
                self.value(view, level + 1)
            except GblnError as err:
                err.prepend_path(index)
                raise
            finally:
                registry.release(view)
        if multiline and length:
            self._newline(level)
        self.out.append("]")

    # ── Scalars ─────────────────────────────────────────────

    def _literal(self, handle: Handle, hint: TypeHint, special: str) -> str:
        registry = self.registry
        kind = hint.kind
        if kind is Kind.INTEGER:
            return str(registry.as_integer(handle))
        if kind is Kind.FLOAT:
            return format_float(registry.as_float(handle), hint.width)
        if kind is Kind.STRING:
            return _escape(registry.as_string(handle), special)
        if kind is Kind.BOOLEAN:
            return BOOL_TRUE if registry.as_bool(handle) else BOOL_FALSE
        return ""

    def value(self, handle: Handle, level: int) -> None:
        hint = self.registry.hint_of(handle)
        if not hint.is_scalar and level >= MAX_DEPTH:
            raise SerializeError("nesting deeper than {} levels".format(MAX_DEPTH))
        if hint.kind is Kind.OBJECT:
            self._object(handle, level)
        elif hint.kind is Kind.ARRAY:
            self._array(handle, level)
        else:
            self.out.append("<{}>({})".format(
                hint.token, self._literal(handle, hint, _ATOM_SPECIAL)))


def render(registry: Registry, handle: Handle, config: RenderConfig = COMPACT) -> str:
    """Render the tree under ``handle``.  The handle stays owned by the caller."""
    renderer = _Renderer(registry, config)
    if registry.hint_of(handle).kind is Kind.OBJECT:
        renderer.root_pairs(handle)
    else:
        renderer.value(handle, 0)
    return "".join(renderer.out)
