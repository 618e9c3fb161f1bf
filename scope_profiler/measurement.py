"""Scope measurement backend.

Every named scope entered while another scope is open becomes a child
of that scope, so the same name reached through different call paths
is tracked separately. Re-entering a name under the same parent (for
example on every iteration of a loop) accumulates into one node.

Nodes live in an arena keyed by integer ids. Parent, child and stack
references are ids, and ids are never reused, so a tracker still open
across a `reset()` keeps pointing at its own node.

Example usage:
    for frame in frames:
        with measure("frame"):
            with measure("physics"):
                step_physics()
            for layer in layers:
                with measure("draw layer"):
                    draw(layer)

    print(get_formatted_string())
    reset()
"""

import functools
import time
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field, replace
from functools import cached_property
from threading import Lock, get_ident
from typing import Any, ParamSpec, TypeVar

from .config import get_settings
from .errors import ConcurrentAccessError, ScopeStackError
from .profiler_logging import LogCategory, get_category_logger

P = ParamSpec("P")
T = TypeVar("T")

ROOT_NAME = "root"

logger = get_category_logger(LogCategory.MEASUREMENT)


@dataclass
class ScopeNode:
    """All samples recorded for one scope name on one call path.

    Attributes:
        name: Scope name, unique among its siblings.
        depth: 0 for the root, otherwise parent depth + 1.
        parent: Arena id of the enclosing node, None for the root.
        path: Arena ids from the root down to this node (inclusive).
        durations: Elapsed time of every completed entry, in nanoseconds.
        overhead_ns: Bookkeeping time spent entering and exiting this scope.
        children: Child ids keyed by name, in first-seen order.
        active: True while the node is on the active scope stack.
    """

    name: str
    depth: int
    parent: int | None
    path: tuple[int, ...]
    durations: list[int] = field(default_factory=list)
    overhead_ns: int = 0
    children: dict[str, int] = field(default_factory=dict)
    active: bool = True

    @property
    def node_id(self) -> int:
        return self.path[-1]

    @property
    def count(self) -> int:
        return len(self.durations)

    def has_children(self) -> bool:
        return bool(self.children)

    def last_child_name(self) -> str | None:
        """Name of the most recently inserted child."""
        if not self.children:
            return None
        return next(reversed(self.children))


@dataclass(frozen=True)
class MeasurementTree:
    """Read-only copy of an arena's nodes, taken for rendering.

    Attributes:
        nodes: Node copies keyed by arena id.
        root_id: Id of the root sentinel.
    """

    nodes: Mapping[int, ScopeNode]
    root_id: int

    @property
    def root(self) -> ScopeNode:
        return self.nodes[self.root_id]

    def walk(self) -> Iterator[ScopeNode]:
        """Yield every node except the root, depth first in insertion order."""
        pending = list(reversed(self.root.children.values()))
        while pending:
            node = self.nodes[pending.pop()]
            yield node
            pending.extend(reversed(node.children.values()))

    def parent_of(self, node: ScopeNode) -> ScopeNode | None:
        if node.parent is None:
            return None
        return self.nodes[node.parent]

    def ancestor_at(self, node: ScopeNode, depth: int) -> ScopeNode:
        """The node on `node`'s path at the given depth."""
        return self.nodes[node.path[depth]]

    def is_last_child(self, node: ScopeNode) -> bool:
        """Whether `node` was the last child inserted under its parent."""
        parent = self.parent_of(node)
        return parent is not None and parent.last_child_name() == node.name

    def find(self, *names: str) -> ScopeNode | None:
        """Follow a chain of child names down from the root."""
        node = self.root
        for name in names:
            child_id = node.children.get(name)
            if child_id is None:
                return None
            node = self.nodes[child_id]
        return node

    @cached_property
    def _inclusive_overhead(self) -> dict[int, int]:
        totals: dict[int, int] = {}
        # Reverse pre-order visits every child before its parent.
        order = [self.root, *self.walk()]
        for node in reversed(order):
            totals[node.node_id] = node.overhead_ns + sum(
                totals[child_id] for child_id in node.children.values()
            )
        return totals

    def overhead_ns(self, node: ScopeNode) -> int:
        """Overhead of `node` plus the overhead of all of its descendants."""
        return self._inclusive_overhead[node.node_id]

    def true_duration_ns(self, node: ScopeNode) -> int | None:
        """Total recorded time minus measurement overhead.

        Returns None when the node has no samples. Never negative: timer
        noise can make the overhead exceed the recorded time, in which
        case the result is 0.
        """
        if not node.durations:
            return None
        return max(sum(node.durations) - self.overhead_ns(node), 0)


class ScopeTracker:
    """An open measurement, returned by `MeasurementArena.enter`.

    Use as a context manager so that the sample is recorded on every
    exit path:

        with arena.enter("parse"):
            parse()

    or call `release()` from a `finally` block. A tracker is released
    exactly once.
    """

    __slots__ = ("_arena", "node_id", "name", "start_ns", "overhead_ns", "_released")

    def __init__(
        self,
        arena: "MeasurementArena",
        node_id: int,
        name: str,
        start_ns: int,
        overhead_ns: int,
    ):
        self._arena = arena
        self.node_id = node_id
        self.name = name
        self.start_ns = start_ns
        self.overhead_ns = overhead_ns
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        """Close the scope and record its duration."""
        if self._released:
            raise ScopeStackError("Scope tracker released twice", scope=self.name)
        self._arena._exit(self)
        self._released = True

    def __enter__(self) -> "ScopeTracker":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.release()


class NullTracker:
    """Tracker returned while profiling is disabled. Records nothing."""

    released = False

    def release(self) -> None:
        pass

    def __enter__(self) -> "NullTracker":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        pass


class MeasurementArena:
    """Measurement tree plus the stack of currently open scopes.

    One arena serves one logical call stack. The first thread to enter
    a scope becomes the owner; entering or leaving scopes from any other
    thread raises `ConcurrentAccessError`.

    Args:
        clock: Nanosecond clock used for every timestamp.
    """

    def __init__(self, clock: Callable[[], int] = time.perf_counter_ns):
        self._clock = clock
        self._nodes: dict[int, ScopeNode] = {}
        self._next_id = 0
        self._lock = Lock()
        self._owner: int | None = None
        self.root_id = self._new_node(ROOT_NAME, None)
        self._stack: list[int] = [self.root_id]

    @property
    def stack_depth(self) -> int:
        """Number of entries on the active stack, root included."""
        return len(self._stack)

    @property
    def current(self) -> ScopeNode:
        """The innermost open scope (the root when none is open)."""
        return self._nodes[self._stack[-1]]

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    def _new_node(self, name: str, parent: ScopeNode | None) -> int:
        node_id = self._next_id
        self._next_id += 1
        if parent is None:
            node = ScopeNode(name=name, depth=0, parent=None, path=(node_id,))
        else:
            node = ScopeNode(
                name=name,
                depth=parent.depth + 1,
                parent=parent.node_id,
                path=(*parent.path, node_id),
            )
        self._nodes[node_id] = node
        return node_id

    def _acquire(self) -> None:
        thread_id = get_ident()
        if self._owner is None:
            self._owner = thread_id
        elif self._owner != thread_id:
            logger.error("Measurement arena used from a second thread")
            raise ConcurrentAccessError(
                "Measurement arena used from a thread that does not own it",
                owner_thread=self._owner,
            )
        if not self._lock.acquire(blocking=False):
            logger.error("Measurement arena lock already held")
            raise ConcurrentAccessError("Measurement arena is already being modified")

    def enter(self, name: str) -> ScopeTracker:
        """Open the scope `name` under the innermost open scope.

        Returns:
            The tracker that records the sample when released.
        """
        start = self._clock()
        self._acquire()
        try:
            current = self._nodes[self._stack[-1]]
            node_id = current.children.get(name)
            if node_id is None:
                node_id = self._new_node(name, current)
                current.children[name] = node_id
                logger.debug(
                    f"New scope '{name}' at depth {current.depth + 1}",
                    extra={"scope": name, "depth": current.depth + 1},
                )
            else:
                self._nodes[node_id].active = True
            self._stack.append(node_id)
        finally:
            self._lock.release()
        return ScopeTracker(self, node_id, name, start, self._clock() - start)

    def _exit(self, tracker: ScopeTracker) -> None:
        exit_start = self._clock()
        self._acquire()
        try:
            if len(self._stack) == 1:
                logger.error(f"Release of '{tracker.name}' with no open scope")
                raise ScopeStackError("No open scope to release", scope=tracker.name)
            if self._stack[-1] != tracker.node_id:
                innermost = self._nodes[self._stack[-1]].name
                logger.error(
                    f"Release of '{tracker.name}' while '{innermost}' is still open"
                )
                raise ScopeStackError(
                    f"Scope '{tracker.name}' released while '{innermost}' is still open",
                    scope=tracker.name,
                )
            node = self._nodes[self._stack.pop()]
            node.active = False
            node.overhead_ns += tracker.overhead_ns
            node.durations.append(self._clock() - tracker.start_ns)
            node.overhead_ns += self._clock() - exit_start
        finally:
            self._lock.release()

    def reset(self) -> None:
        """Discard all recorded measurements.

        Scopes that are currently open keep their node, so their trackers
        can still record on exit, but lose their samples. Every other node
        is removed.
        """
        self._acquire()
        try:
            removed = 0
            cleared = 0
            pending = [self._nodes[self.root_id]]
            while pending:
                parent = pending.pop()
                for name, child_id in list(parent.children.items()):
                    child = self._nodes[child_id]
                    if child.active:
                        child.durations.clear()
                        child.overhead_ns = 0
                        cleared += 1
                        pending.append(child)
                    else:
                        del parent.children[name]
                        removed += self._discard(child_id)
        finally:
            self._lock.release()
        logger.debug(
            f"Reset removed {removed} scopes, cleared {cleared} open scopes",
            extra={"node_count": removed},
        )

    def _discard(self, node_id: int) -> int:
        """Drop a node and its whole subtree from the arena."""
        discarded = 0
        pending = [node_id]
        while pending:
            node = self._nodes.pop(pending.pop())
            pending.extend(node.children.values())
            discarded += 1
        return discarded

    def snapshot(self) -> MeasurementTree:
        """Copy the current tree for rendering."""
        self._acquire()
        try:
            nodes = {
                node_id: replace(
                    node, durations=list(node.durations), children=dict(node.children)
                )
                for node_id, node in self._nodes.items()
            }
        finally:
            self._lock.release()
        return MeasurementTree(nodes=nodes, root_id=self.root_id)


_default_arena: MeasurementArena | None = None
_default_arena_lock = Lock()

_NULL_TRACKER = NullTracker()


def get_arena() -> MeasurementArena:
    """Return the process-wide arena, creating it on first use."""
    global _default_arena
    if _default_arena is None:
        with _default_arena_lock:
            if _default_arena is None:
                _default_arena = MeasurementArena()
    return _default_arena


def set_arena(arena: MeasurementArena | None) -> MeasurementArena | None:
    """Replace the process-wide arena and return the previous one.

    Passing None makes the next `get_arena()` call start a fresh arena.
    """
    global _default_arena
    with _default_arena_lock:
        previous, _default_arena = _default_arena, arena
    return previous


def measure(name: str) -> ScopeTracker | NullTracker:
    """Open a scope on the process-wide arena.

    Example:
        with measure("load assets"):
            load_assets()
    """
    if not get_settings().enabled:
        return _NULL_TRACKER
    return get_arena().enter(name)


def reset() -> None:
    """Discard the measurements of the process-wide arena."""
    get_arena().reset()


def measured(
    name: str | None = None,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Decorator that measures every call of a function as a scope.

    Args:
        name: Scope name (defaults to the function's qualified name).

    Example:
        >>> @measured("update world")
        ... def update(world):
        ...     ...
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        scope_name = name or func.__qualname__

        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            with measure(scope_name):
                return func(*args, **kwargs)

        return wrapper

    return decorator
