"""GBLN text parser: source text to a value tree in a registry.

Grammar (whitespace and ``:|`` comments allowed between tokens):

    document := bare_value | pair*        pairs become the root Object
    pair     := key value
    value    := '<' hint '>' '(' atom ')'        scalar
              | '<' hint '>' '[' token* ']'      array sharing one hint
              | '{' pair* '}'                    object
              | '[' value* ']'                   mixed array
    key      := (alnum | '_' | '-' | '.')+

Inside an atom or token ``\\x`` stands for a literal ``x``.  Tokens of a
typed array end at whitespace or ``]``.

    user{id<u32>(12345)name<s64>(Alice Johnson)tags<s8>[admin ops]}

The parser only talks to the registry's public constructors, so every
value it produces went through the same validation as the converter's.
Comment lines at the very top of the document or of an object body are
kept on that Object; all other comments are discarded.
"""

from __future__ import annotations

import re
from typing import List, Optional, Tuple, Union

from ._constants import BOOL_FALSE, BOOL_TRUE, COMMENT_MARKER, MAX_DEPTH, WHITESPACE
from ._errors import (
    ERR_INVALID_SYNTAX,
    ERR_UNEXPECTED_CHAR,
    ERR_UNEXPECTED_EOF,
    ERR_UNEXPECTED_TOKEN,
    ERR_UNTERMINATED_STRING,
    InvalidTypeHintError,
    ParseError,
    RangeError,
    TypeMismatchError,
    ValidationError,
)
from ._handles import Handle, Registry
from ._values import Kind, TypeHint

KEY_PUNCTUATION = "_-."
LINE_BREAKS = "\r\n"

_INT_RE = re.compile(r"[+-]?[0-9]+")
_FLOAT_RE = re.compile(
    r"[+-]?(?:(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?|inf|nan)")

_BOOL_WORDS = {BOOL_TRUE: True, "true": True, BOOL_FALSE: False, "false": False}

# Characters that may not appear unescaped inside a typed-array token.
_TOKEN_STRUCTURE = "[{}()<>"


def is_key_char(ch: str) -> bool:
    return ch.isalnum() or ch in KEY_PUNCTUATION


def valid_key(key: str) -> bool:
    return bool(key) and all(is_key_char(ch) for ch in key)


class _Parser:
    def __init__(self, text: str, registry: Registry) -> None:
        self.text = text
        self.n = len(text)
        self.pos = 0
        self.registry = registry

    # ── Diagnostics ─────────────────────────────────────────

    def location(self, pos: int) -> Tuple[int, int]:
        line = self.text.count("\n", 0, pos) + 1
        column = pos - (self.text.rfind("\n", 0, pos) + 1) + 1
        return line, column

    def error(self, code: str, msg: str, pos: Optional[int] = None) -> ParseError:
        line, column = self.location(self.pos if pos is None else pos)
        err = ParseError(msg, code=code)
        err.at(line, column)
        return err

    def _unexpected(self) -> ParseError:
        if self.pos >= self.n:
            return self.error(ERR_UNEXPECTED_EOF, "unexpected end of input")
        ch = self.text[self.pos]
        if ch in ")]}>":
            return self.error(ERR_UNEXPECTED_TOKEN, "unexpected '{}'".format(ch))
        return self.error(ERR_UNEXPECTED_CHAR, "unexpected character {!r}".format(ch))

    # ── Lexing helpers ──────────────────────────────────────

    def skip(self) -> List[str]:
        """Skip whitespace and comments; return the comment texts seen."""
        comments: List[str] = []
        text, n = self.text, self.n
        while self.pos < n:
            ch = text[self.pos]
            if ch in WHITESPACE:
                self.pos += 1
            elif text.startswith(COMMENT_MARKER, self.pos):
                end = self.pos
                while end < n and text[end] not in LINE_BREAKS:
                    end += 1
                comments.append(text[self.pos + len(COMMENT_MARKER):end].strip())
                self.pos = end
            else:
                break
        return comments

    def _key(self) -> str:
        start = self.pos
        while self.pos < self.n and is_key_char(self.text[self.pos]):
            self.pos += 1
        if self.pos == start:
            raise self._unexpected()
        return self.text[start:self.pos]

    def _hint(self) -> TypeHint:
        start = self.pos
        end = self.text.find(">", start + 1)
        if end == -1:
            raise self.error(ERR_UNEXPECTED_EOF, "unterminated type hint", start)
        try:
            hint = TypeHint.parse(self.text[start + 1:end])
        except InvalidTypeHintError as err:
            raise err.at(*self.location(start))
        self.pos = end + 1
        return hint

    def _atom(self) -> str:
        """Read ``( ... )`` content; self.pos is on the '('."""
        start = self.pos
        self.pos += 1
        buf: List[str] = []
        text, n = self.text, self.n
        while self.pos < n:
            ch = text[self.pos]
            if ch == "\\" and self.pos + 1 < n:
                buf.append(text[self.pos + 1])
                self.pos += 2
            elif ch == ")":
                self.pos += 1
                return "".join(buf)
            else:
                buf.append(ch)
                self.pos += 1
        raise self.error(ERR_UNTERMINATED_STRING, "unterminated value, expected ')'", start)

    def _token(self) -> str:
        buf: List[str] = []
        text, n = self.text, self.n
        while self.pos < n:
            ch = text[self.pos]
            if ch == "\\":
                if self.pos + 1 >= n:
                    raise self.error(ERR_UNTERMINATED_STRING, "dangling escape")
                buf.append(text[self.pos + 1])
                self.pos += 2
            elif ch in WHITESPACE or ch == "]":
                break
            elif ch in _TOKEN_STRUCTURE:
                raise self._unexpected()
            else:
                buf.append(ch)
                self.pos += 1
        return "".join(buf)

    # ── Values ──────────────────────────────────────────────

    def _make(self, hint: TypeHint, raw: str, pos: int) -> Handle:
        """Turn literal text into a scalar node of the given hint."""
        try:
            return self.registry.new_value(hint, self._literal(hint, raw))
        except ValidationError as err:
            raise err.at(*self.location(pos))

    def _literal(self, hint: TypeHint, raw: str) -> Union[int, float, str, bool, None]:
        kind = hint.kind
        if kind is Kind.STRING:
            return raw
        if kind is Kind.INTEGER:
            if not _INT_RE.fullmatch(raw):
                raise TypeMismatchError("{!r} is not a valid <{}> literal".format(raw, hint))
            try:
                return int(raw)
            except ValueError:
                # int() refuses digit strings past sys.get_int_max_str_digits()
                raise RangeError("{}-digit literal out of range for {}".format(len(raw), hint))
        if kind is Kind.FLOAT:
            if not _FLOAT_RE.fullmatch(raw):
                raise TypeMismatchError("{!r} is not a valid <{}> literal".format(raw, hint))
            return float(raw)
        if kind is Kind.BOOLEAN:
            if raw not in _BOOL_WORDS:
                raise TypeMismatchError("{!r} is not a boolean, expected t or f".format(raw))
            return _BOOL_WORDS[raw]
        if raw:
            raise TypeMismatchError("<n> takes no value, got {!r}".format(raw))
        return None

    def value(self, depth: int) -> Handle:
        if self.pos >= self.n:
            raise self.error(ERR_UNEXPECTED_EOF, "expected a value")
        ch = self.text[self.pos]
        if ch == "<":
            hint = self._hint()
            if self.pos < self.n and self.text[self.pos] == "(":
                start = self.pos
                return self._make(hint, self._atom(), start)
            if self.pos < self.n and self.text[self.pos] == "[":
                return self._typed_array(hint, depth)
            if self.pos >= self.n:
                raise self.error(ERR_UNEXPECTED_EOF, "expected '(' or '[' after <{}>".format(hint))
            raise self.error(ERR_UNEXPECTED_CHAR,
                             "expected '(' or '[' after <{}>".format(hint))
        if ch == "{":
            return self._object(depth)
        if ch == "[":
            return self._array(depth)
        if ch == "(":
            raise self.error(ERR_INVALID_SYNTAX, "value is missing a type hint")
        raise self._unexpected()

    def _enter(self, depth: int) -> None:
        if depth >= MAX_DEPTH:
            raise self.error(ERR_INVALID_SYNTAX,
                             "nesting deeper than {} levels".format(MAX_DEPTH))

    def pairs(self, obj: Handle, depth: int, closed: bool) -> None:
        """Parse pairs into ``obj`` until '}' (if ``closed``) or end of input."""
        registry = self.registry
        while True:
            self.skip()
            if self.pos >= self.n:
                if closed:
                    raise self.error(ERR_UNEXPECTED_EOF, "expected '}'")
                return
            if closed and self.text[self.pos] == "}":
                self.pos += 1
                return
            key_pos = self.pos
            key = self._key()
            self.skip()
            child = self.value(depth + 1)
            try:
                registry.object_insert(obj, key, child)
            except ValidationError as err:
                raise err.at(*self.location(key_pos))

    def _object(self, depth: int) -> Handle:
        self._enter(depth)
        self.pos += 1
        obj = self.registry.new_object()
        comments = self.skip()
        if comments:
            self.registry.set_comments(obj, comments)
        self.pairs(obj, depth, closed=True)
        return obj

    def _array(self, depth: int) -> Handle:
        self._enter(depth)
        self.pos += 1
        arr = self.registry.new_array()
        while True:
            self.skip()
            if self.pos >= self.n:
                raise self.error(ERR_UNEXPECTED_EOF, "expected ']'")
            if self.text[self.pos] == "]":
                self.pos += 1
                return arr
            self.registry.array_push(arr, self.value(depth + 1))

    def _typed_array(self, hint: TypeHint, depth: int) -> Handle:
        self._enter(depth)
        self.pos += 1
        arr = self.registry.new_array()
        while True:
            self.skip()
            if self.pos >= self.n:
                raise self.error(ERR_UNEXPECTED_EOF, "expected ']'")
            if self.text[self.pos] == "]":
                self.pos += 1
                return arr
            start = self.pos
            raw = self._token()
            self.registry.array_push(arr, self._make(hint, raw, start))

    def document(self) -> Handle:
        leading = self.skip()
        if self.pos < self.n and self.text[self.pos] in "<[{":
            root = self.value(0)
            if leading and self.registry.hint_of(root).kind is Kind.OBJECT:
                self.registry.set_comments(root, leading + self.registry.comments_of(root))
            self.skip()
            if self.pos < self.n:
                raise self.error(ERR_UNEXPECTED_TOKEN, "trailing content after the root value")
            return root
        root = self.registry.new_object()
        if leading:
            self.registry.set_comments(root, leading)
        self.pairs(root, 0, closed=False)
        return root


def parse_to_handle(text: Union[str, bytes], registry: Registry) -> Handle:
    """Parse GBLN text into ``registry`` and return the owning root handle.

    On failure nothing stays allocated: the partial tree is released
    before the error reaches the caller.
    """
    if isinstance(text, (bytes, bytearray)):
        try:
            text = bytes(text).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ParseError("input is not valid UTF-8 (byte {})".format(exc.start),
                             code=ERR_UNEXPECTED_CHAR)
    if not isinstance(text, str):
        raise TypeMismatchError("expected GBLN text, got {}".format(type(text).__name__))
    parser = _Parser(text, registry)
    with registry.scope() as scope:
        root = parser.document()
        return scope.keep(root)
