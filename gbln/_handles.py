"""GBLN handle/ownership registry and the arena behind it.

The arena owns every node of every value tree.  Callers never see nodes;
they hold ``Handle`` objects, each an opaque address plus a lifetime
state.  The rules:

  - A constructor returns an *owning* handle.  It must be consumed exactly
    once: ``release()``, exit of the enclosing ``scope()``, or transfer
    into a container via ``object_insert``/``array_push``.
  - Releasing an owning handle frees its node and the whole subtree below
    it.  Children that were transferred into a container are never
    released on their own.
  - ``object_get``/``array_get`` return *borrowed views*.  Releasing a view
    retires the handle but never touches arena storage.
  - A container may only hold nodes allocated after it.  Addresses grow
    monotonically, so this one comparison keeps every tree acyclic.
  - A per-handle ``weakref.finalize`` reclaims storage if a handle is
    dropped without release.  It is a leak safety net only: it may run
    late or not at all, and it logs a warning when it fires.

Any misuse (released handle, double release, handle from another
registry, view outliving its tree) raises OwnershipError.
"""

from __future__ import annotations

import itertools
import logging
import threading
import weakref
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence, Type, TypeVar

from ._errors import (
    ERR_NULL_POINTER,
    DuplicateKeyError,
    IndexOutOfRangeError,
    KeyNotFoundError,
    OwnershipError,
    TypeMismatchError,
)
from ._values import (
    Array,
    Boolean,
    BoundedString,
    Float,
    Integer,
    Kind,
    Node,
    Null,
    Object,
    TypeHint,
    ValueType,
)

logger = logging.getLogger(__name__)

_N = TypeVar("_N", bound=Node)

# Handle states
LIVE = "live"
TRANSFERRED = "transferred"
RELEASED = "released"


class Arena:
    """Address-keyed node store.  Addresses are never reused.

    The lock serialises every allocation, mutation and free, so an arena
    may be shared by threads as long as each value tree is driven by one
    caller at a time.
    """

    def __init__(self) -> None:
        self._nodes: Dict[int, Node] = {}
        self._addresses = itertools.count(1)
        self.lock = threading.RLock()
        self.allocated = 0
        self.freed = 0

    @property
    def live(self) -> int:
        return len(self._nodes)

    def contains(self, address: int) -> bool:
        return address in self._nodes

    def alloc(self, node: Node) -> int:
        with self.lock:
            address = next(self._addresses)
            self._nodes[address] = node
            self.allocated += 1
        logger.debug("alloc 0x%x <%s>", address, node.hint)
        return address

    def node(self, address: int) -> Node:
        try:
            return self._nodes[address]
        except KeyError:
            raise OwnershipError("dangling handle 0x{:x}: storage already freed".format(address))

    def free(self, address: int) -> int:
        """Free a node and its subtree.  Returns the number of nodes freed."""
        with self.lock:
            if address not in self._nodes:
                raise OwnershipError("free of unknown address 0x{:x}".format(address))
            count = 0
            stack = [address]
            while stack:
                node = self._nodes.pop(stack.pop())
                count += 1
                if isinstance(node, Object):
                    stack.extend(node.entries.values())
                elif isinstance(node, Array):
                    stack.extend(node.items)
            self.freed += count
        logger.debug("free 0x%x (%d nodes)", address, count)
        return count


class Handle:
    """Opaque reference to an arena node, consumed exactly once."""

    __slots__ = ("address", "owned", "_registry", "_state", "_finalizer", "__weakref__")

    def __init__(self, registry: "Registry", address: int, owned: bool) -> None:
        self.address = address
        self.owned = owned
        self._registry = registry
        self._state = LIVE
        self._finalizer: Optional[weakref.finalize] = None

    @property
    def alive(self) -> bool:
        return self._state == LIVE

    @property
    def state(self) -> str:
        return self._state

    def release(self) -> None:
        self._registry.release(self)

    def __repr__(self) -> str:
        return "<Handle 0x{:x} {}{}>".format(
            self.address, self._state, "" if self.owned else " view")


class Scope:
    """Handles acquired while a ``Registry.scope()`` block is active.

    On exit every recorded handle that is still live gets released, in
    reverse order of acquisition.
    """

    def __init__(self, registry: "Registry") -> None:
        self._registry = registry
        self._handles: List[Handle] = []

    def track(self, handle: Handle) -> Handle:
        self._handles.append(handle)
        return handle

    def keep(self, handle: Handle) -> Handle:
        """Take ``handle`` out of this scope and hand it to the caller.

        If an enclosing scope is active it takes over the handle, so the
        caller's own failure path still releases it.
        """
        for i in range(len(self._handles) - 1, -1, -1):
            if self._handles[i] is handle:
                del self._handles[i]
                break
        outer = self._registry._enclosing(self)
        if outer is not None:
            outer.track(handle)
        return handle

    def close(self) -> None:
        while self._handles:
            handle = self._handles.pop()
            if handle.alive:
                self._registry.release(handle)


class Registry:
    """Front door to an arena: validating constructors, accessors, release.

    One registry per conversion call is the normal pattern; nothing here
    is process-global.
    """

    def __init__(self, arena: Optional[Arena] = None) -> None:
        self.arena = arena if arena is not None else Arena()
        self._scopes: List[Scope] = []
        self.acquired = 0
        self.released = 0
        self.transferred = 0
        self.reclaimed = 0

    # ── Lifetime ────────────────────────────────────────────

    def _acquire(self, address: int, owned: bool = True) -> Handle:
        handle = Handle(self, address, owned)
        finalizer = weakref.finalize(handle, self._reclaim, address, owned)
        finalizer.atexit = False
        handle._finalizer = finalizer
        self.acquired += 1
        if self._scopes:
            self._scopes[-1].track(handle)
        return handle

    def _reclaim(self, address: int, owned: bool) -> None:
        logger.warning("handle 0x%x was never released; reclaimed by finalizer", address)
        self.reclaimed += 1
        self.released += 1
        if owned and self.arena.contains(address):
            self.arena.free(address)

    def _retire(self, handle: Handle, state: str) -> None:
        handle._state = state
        if handle._finalizer is not None:
            handle._finalizer.detach()

    def release(self, handle: Handle) -> None:
        """Consume a handle.

        Releasing a handle that was transferred into a container is a
        logged no-op.  Releasing a handle twice is an OwnershipError.
        """
        self._owns(handle)
        if handle._state == TRANSFERRED:
            logger.debug("release of 0x%x ignored: owned by its container", handle.address)
            return
        if handle._state == RELEASED:
            logger.error("double release of handle 0x%x", handle.address)
            raise OwnershipError("double release of handle 0x{:x}".format(handle.address))
        self._retire(handle, RELEASED)
        self.released += 1
        if handle.owned:
            self.arena.free(handle.address)

    @contextmanager
    def scope(self) -> Iterator[Scope]:
        """Release every handle acquired inside the block on any exit path."""
        scope = Scope(self)
        self._scopes.append(scope)
        try:
            yield scope
        finally:
            self._scopes.remove(scope)
            scope.close()

    def _enclosing(self, scope: Scope) -> Optional[Scope]:
        idx = next((i for i, s in enumerate(self._scopes) if s is scope), 0)
        return self._scopes[idx - 1] if idx > 0 else None

    def stats(self) -> Dict[str, int]:
        return {
            "acquired": self.acquired,
            "released": self.released,
            "transferred": self.transferred,
            "reclaimed": self.reclaimed,
            "outstanding": self.acquired - self.released - self.transferred,
            "allocated": self.arena.allocated,
            "freed": self.arena.freed,
            "live_nodes": self.arena.live,
        }

    # ── Checks ──────────────────────────────────────────────

    def _owns(self, handle: Any) -> None:
        if handle is None:
            raise OwnershipError("null handle", code=ERR_NULL_POINTER)
        if not isinstance(handle, Handle):
            raise OwnershipError("expected a Handle, got {}".format(type(handle).__name__))
        if handle._registry is not self:
            raise OwnershipError("handle 0x{:x} belongs to a different registry".format(
                handle.address))

    def _check(self, handle: Any) -> Node:
        self._owns(handle)
        if handle._state == RELEASED:
            raise OwnershipError("use of released handle 0x{:x}".format(handle.address))
        if handle._state == TRANSFERRED:
            raise OwnershipError("handle 0x{:x} was transferred into a container".format(
                handle.address))
        return self.arena.node(handle.address)

    def _expect(self, handle: Handle, cls: Type[_N], what: str) -> _N:
        node = self._check(handle)
        if not isinstance(node, cls):
            raise TypeMismatchError("expected {}, handle holds <{}>".format(what, node.hint))
        return node

    def _claim(self, container: Handle, child: Handle) -> None:
        self._check(child)
        if not child.owned:
            raise OwnershipError("view 0x{:x} already belongs to a container".format(
                child.address))
        if child.address <= container.address:
            raise OwnershipError(
                "0x{:x} was constructed before container 0x{:x}; "
                "containers may only hold newer values".format(child.address, container.address))
        self._retire(child, TRANSFERRED)
        self.transferred += 1

    # ── Constructors ────────────────────────────────────────
    # Validation happens in the node constructor, before allocation, so a
    # rejected value never produces a handle.

    def new_integer(self, width: int, signed: bool, value: Any) -> Handle:
        return self._acquire(self.arena.alloc(Integer(width, signed, value)))

    def new_float(self, width: int, value: Any) -> Handle:
        return self._acquire(self.arena.alloc(Float(width, value)))

    def new_string(self, value: Any, max_len: Optional[int] = None) -> Handle:
        return self._acquire(self.arena.alloc(BoundedString(value, max_len)))

    def new_bool(self, value: Any) -> Handle:
        return self._acquire(self.arena.alloc(Boolean(value)))

    def new_null(self) -> Handle:
        return self._acquire(self.arena.alloc(Null()))

    def new_object(self) -> Handle:
        return self._acquire(self.arena.alloc(Object()))

    def new_array(self) -> Handle:
        return self._acquire(self.arena.alloc(Array()))

    def new_value(self, hint: TypeHint, value: Any) -> Handle:
        """Build a scalar from an explicit type hint."""
        kind = hint.kind
        if kind is Kind.INTEGER:
            return self.new_integer(hint.width, hint.signed, value)
        if kind is Kind.FLOAT:
            return self.new_float(hint.width, value)
        if kind is Kind.STRING:
            return self.new_string(value, hint.max_len)
        if kind is Kind.BOOLEAN:
            return self.new_bool(value)
        if kind is Kind.NULL:
            if value is not None:
                raise TypeMismatchError("n expects None, got {}".format(type(value).__name__))
            return self.new_null()
        raise TypeMismatchError("<{}> is not a scalar type hint".format(hint))

    def object_insert(self, obj: Handle, key: str, child: Handle) -> None:
        """Insert ``child`` under ``key``, taking ownership of it.

        A duplicate key leaves the object unchanged and the child still
        owned by the caller.
        """
        with self.arena.lock:
            node = self._expect(obj, Object, "object")
            if not isinstance(key, str):
                raise TypeMismatchError("object keys must be str, got {}".format(
                    type(key).__name__))
            self._check(child)
            if key in node.entries:
                raise DuplicateKeyError("duplicate key '{}'".format(key))
            self._claim(obj, child)
            node.entries[key] = child.address

    def array_push(self, arr: Handle, child: Handle) -> None:
        with self.arena.lock:
            node = self._expect(arr, Array, "array")
            self._claim(arr, child)
            node.items.append(child.address)

    def set_comments(self, obj: Handle, lines: Sequence[str]) -> None:
        node = self._expect(obj, Object, "object")
        for line in lines:
            if not isinstance(line, str) or "\n" in line or "\r" in line:
                raise TypeMismatchError("comments must be single-line strings")
        node.comments = tuple(lines)

    # ── Accessors ───────────────────────────────────────────

    def type_of(self, handle: Handle) -> ValueType:
        return self._check(handle).hint.value_type

    def hint_of(self, handle: Handle) -> TypeHint:
        return self._check(handle).hint

    def as_integer(self, handle: Handle) -> int:
        return self._expect(handle, Integer, "integer").value

    def as_float(self, handle: Handle) -> float:
        return self._expect(handle, Float, "float").value

    def as_string(self, handle: Handle) -> str:
        return self._expect(handle, BoundedString, "string").text

    def as_bool(self, handle: Handle) -> bool:
        return self._expect(handle, Boolean, "bool").value

    def is_null(self, handle: Handle) -> bool:
        return isinstance(self._check(handle), Null)

    def object_keys(self, handle: Handle) -> List[str]:
        return list(self._expect(handle, Object, "object").entries)

    def object_len(self, handle: Handle) -> int:
        return len(self._expect(handle, Object, "object").entries)

    def object_get(self, handle: Handle, key: str) -> Handle:
        """Borrowed view of the value under ``key``."""
        node = self._expect(handle, Object, "object")
        try:
            address = node.entries[key]
        except KeyError:
            raise KeyNotFoundError("key '{}' not found".format(key))
        return self._acquire(address, owned=False)

    def comments_of(self, handle: Handle) -> List[str]:
        return list(self._expect(handle, Object, "object").comments)

    def array_len(self, handle: Handle) -> int:
        return len(self._expect(handle, Array, "array").items)

    def array_get(self, handle: Handle, index: int) -> Handle:
        """Borrowed view of the element at ``index``."""
        node = self._expect(handle, Array, "array")
        if isinstance(index, bool) or not isinstance(index, int):
            raise TypeMismatchError("array index must be int")
        if index < 0 or index >= len(node.items):
            raise IndexOutOfRangeError("index {} out of range for array of length {}".format(
                index, len(node.items)))
        return self._acquire(node.items[index], owned=False)
