"""GBLN bidirectional converter: native Python values <-> handle trees.

Native -> tree (``to_handle``):
    Depth-first inside one registry scope.  A container handle is built
    first, then each child is converted and inserted immediately, which
    transfers it into the container.  If anything fails, the scope
    releases the partial container (freeing every child already inserted)
    and any child that was built but not yet inserted, then the error
    continues upward with the failing path prepended.

Tree -> native (``to_native``):
    Depth-first.  Each child is reached through a borrowed view that is
    released as soon as its value has been extracted.  The root handle is
    consumed when the walk ends, successfully or not.

Native type mapping:

    None            <-> n
    bool            <-> b
    int             <-> i8 ... u64   (narrowest fit by default)
    float           <-> f32 / f64
    str             <-> s2 ... s1024
    Mapping / dict  <-> Object       (key order preserved)
    list / tuple    <-> Array        (always list on the way back)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Set

from ._constants import MAX_DEPTH
from ._errors import GblnError, SerializeError
from ._handles import Handle, Registry
from ._infer import InferFn, Typed, infer_narrowest
from ._values import Kind, ValueType

logger = logging.getLogger(__name__)

_INTEGER_TYPES = frozenset([
    ValueType.I8, ValueType.I16, ValueType.I32, ValueType.I64,
    ValueType.U8, ValueType.U16, ValueType.U32, ValueType.U64,
])
_CONTAINER_TYPES = frozenset([ValueType.OBJECT, ValueType.ARRAY])


class Converter:
    """Walks native values into a registry and handle trees back out.

    The registry is the explicit context of the conversion; pass the same
    one to the parser/renderer that produce or consume the handles.
    """

    def __init__(self, registry: Optional[Registry] = None,
                 infer: InferFn = infer_narrowest) -> None:
        self.registry = registry if registry is not None else Registry()
        self.infer = infer

    # ── Native -> tree ──────────────────────────────────────

    def to_handle(self, value: Any) -> Handle:
        """Build a value tree for ``value`` and return its owning root handle."""
        in_progress: Set[int] = set()
        with self.registry.scope() as scope:
            try:
                root = self._build(value, in_progress, 0)
            except GblnError as err:
                logger.debug("conversion failed, releasing partial tree: %s", err)
                raise
            return scope.keep(root)

    def _build(self, value: Any, in_progress: Set[int], depth: int) -> Handle:
        hint = self.infer(value)
        if hint.is_scalar:
            raw = value.value if isinstance(value, Typed) else value
            return self.registry.new_value(hint, raw)

        if depth >= MAX_DEPTH:
            raise SerializeError("nesting deeper than {} levels".format(MAX_DEPTH))
        marker = id(value)
        if marker in in_progress:
            raise SerializeError("circular reference")
        in_progress.add(marker)
        try:
            if hint.kind is Kind.OBJECT:
                return self._build_object(value, in_progress, depth)
            return self._build_array(value, in_progress, depth)
        finally:
            in_progress.discard(marker)

    def _build_object(self, value: Any, in_progress: Set[int], depth: int) -> Handle:
        if not isinstance(value, Mapping):
            raise SerializeError("cannot build an object from {}".format(type(value).__name__))
        registry = self.registry
        container = registry.new_object()
        for key, item in value.items():
            if not isinstance(key, str):
                raise SerializeError("object key must be str, got {}".format(
                    type(key).__name__))
            try:
                child = self._build(item, in_progress, depth + 1)
            except GblnError as err:
                err.prepend_path(key)
                raise
            registry.object_insert(container, key, child)
        return container

    def _build_array(self, value: Any, in_progress: Set[int], depth: int) -> Handle:
        if not isinstance(value, (list, tuple)):
            raise SerializeError("cannot build an array from {}".format(type(value).__name__))
        registry = self.registry
        container = registry.new_array()
        for index, item in enumerate(value):
            try:
                child = self._build(item, in_progress, depth + 1)
            except GblnError as err:
                err.prepend_path(index)
                raise
            registry.array_push(container, child)
        return container

    # ── Tree -> native ──────────────────────────────────────

    def to_native(self, handle: Handle, typed: bool = False) -> Any:
        """Extract the native value of ``handle`` and release it.

        With ``typed=True`` scalars come back as ``Typed`` so their hints
        survive a later ``to_handle``.
        """
        self.registry.type_of(handle)  # rejects dead or foreign handles up front
        try:
            return self._extract(handle, typed, 0)
        finally:
            self.registry.release(handle)

    def _extract(self, handle: Handle, typed: bool, depth: int) -> Any:
        registry = self.registry
        vtype = registry.type_of(handle)
        if vtype in _CONTAINER_TYPES and depth >= MAX_DEPTH:
            raise SerializeError("nesting deeper than {} levels".format(MAX_DEPTH))

        if vtype is ValueType.OBJECT:
            out: Dict[str, Any] = {}
            for key in registry.object_keys(handle):
                child = registry.object_get(handle, key)
                try:
                    out[key] = self._extract(child, typed, depth + 1)
                except GblnError as err:
                    err.prepend_path(key)
                    raise
                finally:
                    registry.release(child)
            return out

        if vtype is ValueType.ARRAY:
            items: List[Any] = []
            for index in range(registry.array_len(handle)):
                child = registry.array_get(handle, index)
                try:
                    items.append(self._extract(child, typed, depth + 1))
                except GblnError as err:
                    err.prepend_path(index)
                    raise
                finally:
                    registry.release(child)
            return items

        value = self._scalar(handle, vtype)
        if typed:
            return Typed(value, registry.hint_of(handle))
        return value

    def _scalar(self, handle: Handle, vtype: ValueType) -> Any:
        registry = self.registry
        if vtype in _INTEGER_TYPES:
            return registry.as_integer(handle)
        if vtype is ValueType.F32 or vtype is ValueType.F64:
            return registry.as_float(handle)
        if vtype is ValueType.STR:
            return registry.as_string(handle)
        if vtype is ValueType.BOOL:
            return registry.as_bool(handle)
        return None
