"""Tests for scope tracking, tree merging and reset."""

import threading

import pytest

from scope_profiler import config
from scope_profiler.errors import ConcurrentAccessError, ScopeStackError
from scope_profiler.measurement import (
    ROOT_NAME,
    MeasurementArena,
    NullTracker,
    ScopeTracker,
    get_arena,
    measure,
    measured,
    reset,
    set_arena,
)
from tests.conftest import NS_PER_MS, FakeClock


class TestEnterExit:
    """Tests for scope entry and exit on an arena."""

    def test_root_is_permanent_sentinel(self, arena):
        """Test a new arena holds only the active root."""
        tree = arena.snapshot()

        assert arena.stack_depth == 1
        assert tree.root.name == ROOT_NAME
        assert tree.root.depth == 0
        assert tree.root.parent is None
        assert tree.root.active is True
        assert list(tree.walk()) == []

    def test_enter_returns_tracker(self, arena):
        """Test enter pushes a node and returns its tracker."""
        tracker = arena.enter("main")

        assert isinstance(tracker, ScopeTracker)
        assert tracker.name == "main"
        assert arena.stack_depth == 2
        assert arena.current.name == "main"
        assert arena.current.active is True

        tracker.release()
        assert arena.stack_depth == 1

    def test_balanced_sequence_restores_depth(self, arena):
        """Test balanced enter/exit never leaks or double-pops."""
        before = arena.stack_depth
        with arena.enter("a"):
            with arena.enter("b"):
                with arena.enter("c"):
                    pass
            with arena.enter("d"):
                pass
        with arena.enter("a"):
            pass

        assert arena.stack_depth == before

    def test_duration_recorded(self, arena, clock):
        """Test exit appends the elapsed time to the node."""
        with arena.enter("work"):
            clock.advance_ms(10)

        node = arena.snapshot().find("work")
        assert node.durations == [10 * NS_PER_MS]
        assert node.active is False

    def test_depth_and_parent(self, arena):
        """Test child depth is parent depth plus one."""
        with arena.enter("outer"):
            with arena.enter("inner"):
                pass

        tree = arena.snapshot()
        outer = tree.find("outer")
        inner = tree.find("outer", "inner")
        assert outer.depth == 1
        assert inner.depth == 2
        assert inner.parent == outer.node_id
        assert outer.parent == tree.root_id
        assert inner.path == (tree.root_id, outer.node_id, inner.node_id)

    def test_exception_still_records(self, arena, clock):
        """Test the sample is recorded when the scope exits by raising."""
        with pytest.raises(ValueError), arena.enter("failing"):
            clock.advance_ms(3)
            raise ValueError("boom")

        assert arena.stack_depth == 1
        assert arena.snapshot().find("failing").count == 1

    def test_early_return_records(self, arena):
        """Test the sample is recorded on an early return."""

        def find_first_even(values):
            for value in values:
                with arena.enter("check"):
                    if value % 2 == 0:
                        return value
            return None

        assert find_first_even([1, 3, 4, 5]) == 4
        assert arena.stack_depth == 1
        assert arena.snapshot().find("check").count == 3

    def test_explicit_release(self, arena, clock):
        """Test release() in a caller's own try/finally."""
        tracker = arena.enter("manual")
        try:
            clock.advance_ms(2)
        finally:
            tracker.release()

        assert tracker.released is True
        assert arena.snapshot().find("manual").durations == [2 * NS_PER_MS]


class TestTreeMerging:
    """Tests for merging repeated scopes into one node."""

    def test_repeated_entry_merges(self, arena):
        """Test N entries under one parent give one node with N samples."""
        with arena.enter("main"):
            for _ in range(5):
                with arena.enter("loop body"):
                    pass

        tree = arena.snapshot()
        main = tree.find("main")
        assert list(main.children) == ["loop body"]
        assert tree.find("main", "loop body").count == 5

    def test_same_name_different_parents(self, arena, clock):
        """Test one name under two parents gives two distinct nodes."""
        with arena.enter("physics"):
            with arena.enter("update"):
                clock.advance_ms(4)
        with arena.enter("render"):
            for _ in range(3):
                with arena.enter("update"):
                    clock.advance_ms(1)

        tree = arena.snapshot()
        physics_update = tree.find("physics", "update")
        render_update = tree.find("render", "update")
        assert physics_update.node_id != render_update.node_id
        assert physics_update.durations == [4 * NS_PER_MS]
        assert render_update.durations == [NS_PER_MS] * 3

    def test_children_keep_first_seen_order(self, arena):
        """Test children are ordered by first entry, not by last exit."""
        with arena.enter("main"):
            for name in ["b", "a", "c", "a", "b"]:
                with arena.enter(name):
                    pass

        assert list(arena.snapshot().find("main").children) == ["b", "a", "c"]

    def test_reentry_marks_active(self, arena):
        """Test re-entering an exited node makes it active again."""
        with arena.enter("tick"):
            pass
        assert arena.snapshot().find("tick").active is False

        with arena.enter("tick"):
            assert arena.snapshot().find("tick").active is True

    def test_recursion_nests(self, arena):
        """Test a recursive scope forms a chain, one node per level."""

        def recurse(n):
            with arena.enter("recurse"):
                if n:
                    recurse(n - 1)

        recurse(2)

        tree = arena.snapshot()
        deepest = tree.find("recurse", "recurse", "recurse")
        assert deepest is not None
        assert deepest.depth == 3
        assert tree.find("recurse", "recurse", "recurse", "recurse") is None


class TestOverhead:
    """Tests for measurement overhead accounting."""

    def test_no_overhead_with_still_clock(self, arena, clock):
        """Test a clock that does not move records zero overhead."""
        with arena.enter("work"):
            clock.advance_ms(1)

        node = arena.snapshot().find("work")
        assert node.overhead_ns == 0

    def test_overhead_recorded(self):
        """Test entry and exit bookkeeping is charged to the node."""
        clock = FakeClock(tick_ns=10)
        arena = MeasurementArena(clock=clock)

        with arena.enter("work"):
            pass

        node = arena.snapshot().find("work")
        # Entry: start read, overhead read. Exit: exit start, duration, overhead end.
        assert node.overhead_ns == 10 + 20
        assert node.durations == [30]

    def test_inclusive_overhead(self):
        """Test a node's overhead includes its descendants."""
        clock = FakeClock(tick_ns=10)
        arena = MeasurementArena(clock=clock)

        with arena.enter("outer"):
            with arena.enter("inner"):
                pass

        tree = arena.snapshot()
        outer = tree.find("outer")
        inner = tree.find("outer", "inner")
        assert tree.overhead_ns(inner) == inner.overhead_ns
        assert tree.overhead_ns(outer) == outer.overhead_ns + inner.overhead_ns

    def test_true_duration_subtracts_overhead(self):
        """Test corrected duration is total samples minus overhead."""
        clock = FakeClock(tick_ns=10)
        arena = MeasurementArena(clock=clock)

        with arena.enter("work"):
            clock.advance_ms(1)

        tree = arena.snapshot()
        node = tree.find("work")
        assert tree.true_duration_ns(node) == sum(node.durations) - node.overhead_ns

    def test_true_duration_none_without_samples(self, arena):
        """Test a node with no samples has no duration."""
        tracker = arena.enter("open")
        tree = arena.snapshot()
        tracker.release()

        assert tree.true_duration_ns(tree.find("open")) is None

    def test_overhead_clamped_to_zero(self, arena):
        """Test overhead above the recorded time yields 0, not a negative."""
        with arena.enter("noisy"):
            pass
        tree = arena.snapshot()
        node = tree.find("noisy")
        node.durations[:] = [100, 200]
        node.overhead_ns = 10_000

        assert tree.true_duration_ns(node) == 0


class TestReset:
    """Tests for reset semantics."""

    def test_reset_removes_inactive_nodes(self, arena):
        """Test reset drops every node with no open tracker."""
        with arena.enter("a"):
            with arena.enter("b"):
                pass
        with arena.enter("c"):
            pass

        arena.reset()

        tree = arena.snapshot()
        assert list(tree.walk()) == []
        assert arena.node_count == 1
        assert arena.stack_depth == 1

    def test_reset_inside_open_scope(self, arena, clock):
        """Test open scopes survive reset with their history cleared."""
        with arena.enter("frame"):
            clock.advance_ms(1)
        with arena.enter("other"):
            pass

        with arena.enter("frame"):
            with arena.enter("finished child"):
                pass
            arena.reset()
            clock.advance_ms(2)

        tree = arena.snapshot()
        frame = tree.find("frame")
        assert frame is not None
        assert frame.durations == [2 * NS_PER_MS]
        assert frame.count == 1
        assert list(frame.children) == []
        assert tree.find("other") is None

    def test_reset_preserves_open_chain(self, arena):
        """Test every scope on the open path is preserved."""
        with arena.enter("outer"):
            with arena.enter("inner"):
                pass
            with arena.enter("inner"):
                arena.reset()
                assert arena.snapshot().find("outer", "inner").count == 0

        tree = arena.snapshot()
        assert tree.find("outer").count == 1
        assert tree.find("outer", "inner").count == 1

    def test_reset_clears_overhead_of_open_scopes(self):
        """Test stale overhead does not outlive reset."""
        clock = FakeClock(tick_ns=10)
        arena = MeasurementArena(clock=clock)

        with arena.enter("loop"):
            pass
        with arena.enter("loop"):
            arena.reset()

        node = arena.snapshot().find("loop")
        assert node.count == 1
        assert node.overhead_ns == 30

    def test_root_survives_reset(self, arena):
        """Test reset never removes the root."""
        arena.reset()
        arena.reset()

        assert arena.snapshot().root.name == ROOT_NAME
        with arena.enter("after"):
            pass
        assert arena.snapshot().find("after").count == 1


class TestStackErrors:
    """Tests for fatal stack discipline violations."""

    def test_double_release(self, arena):
        """Test releasing a tracker twice is rejected."""
        tracker = arena.enter("once")
        tracker.release()

        with pytest.raises(ScopeStackError):
            tracker.release()
        assert arena.stack_depth == 1

    def test_out_of_order_release(self, arena):
        """Test releasing an outer tracker before the inner one is rejected."""
        outer = arena.enter("outer")
        inner = arena.enter("inner")

        with pytest.raises(ScopeStackError) as exc_info:
            outer.release()

        assert "inner" in exc_info.value.message
        assert outer.released is False
        inner.release()
        outer.release()
        assert arena.stack_depth == 1

    def test_release_with_only_root_open(self, arena):
        """Test a tracker cannot pop the root sentinel."""
        tracker = arena.enter("gone")
        tracker.release()
        tracker._released = False

        with pytest.raises(ScopeStackError):
            tracker.release()


class TestConcurrentAccess:
    """Tests for single-owner enforcement."""

    def test_second_thread_rejected(self, arena):
        """Test a thread other than the owner cannot enter scopes."""
        with arena.enter("owner"):
            pass

        errors = []

        def intruder():
            try:
                arena.enter("intruder")
            except ConcurrentAccessError as e:
                errors.append(e)

        thread = threading.Thread(target=intruder)
        thread.start()
        thread.join()

        assert len(errors) == 1
        assert arena.snapshot().find("intruder") is None

    def test_arena_per_thread(self):
        """Test separate arenas measure separate threads independently."""
        results = {}

        def worker(name):
            arena = MeasurementArena()
            for _ in range(3):
                with arena.enter(name):
                    pass
            results[name] = arena.snapshot().find(name).count

        threads = [threading.Thread(target=worker, args=(n,)) for n in ("a", "b")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results == {"a": 3, "b": 3}

    def test_held_lock_rejected(self, arena):
        """Test mutation while the arena is locked is a fatal error."""
        arena._lock.acquire()
        try:
            with pytest.raises(ConcurrentAccessError):
                arena.enter("blocked")
        finally:
            arena._lock.release()


class TestModuleLevelApi:
    """Tests for measure(), reset() and @measured on the default arena."""

    def test_get_arena_is_lazy_singleton(self):
        """Test the default arena is created once."""
        assert get_arena() is get_arena()

    def test_set_arena_replaces_default(self, arena):
        """Test set_arena swaps the default arena."""
        set_arena(arena)

        with measure("swapped"):
            pass

        assert arena.snapshot().find("swapped").count == 1

    def test_measure_and_reset(self):
        """Test measure records into the default arena and reset clears it."""
        for _ in range(3):
            with measure("step"):
                pass

        assert get_arena().snapshot().find("step").count == 3
        reset()
        assert get_arena().snapshot().find("step") is None

    def test_measured_decorator(self, arena):
        """Test @measured wraps every call in a scope."""
        set_arena(arena)

        @measured("compute")
        def compute(x):
            return x * 2

        @measured()
        def helper():
            return compute(1)

        assert compute(2) == 4
        assert helper() == 2

        tree = arena.snapshot()
        assert tree.find("compute").count == 1
        assert tree.find(helper.__qualname__, "compute").count == 1
        assert helper.__name__ == "helper"

    def test_disabled_records_nothing(self):
        """Test measure() is a no-op when profiling is disabled."""
        config.configure(enabled=False)

        tracker = measure("ignored")
        with tracker:
            pass

        assert isinstance(tracker, NullTracker)
        assert list(get_arena().snapshot().walk()) == []

    def test_disabled_by_environment(self, monkeypatch):
        """Test SCOPE_PROFILER_DISABLED=1 turns measurement off."""
        monkeypatch.setenv(config.ENV_DISABLED, "1")

        with measure("ignored"):
            pass

        assert list(get_arena().snapshot().walk()) == []
