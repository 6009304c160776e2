"""
Unit tests for allocators and the bulk construction helpers.
Tests allocation, rollback on construction failure and event logging.
"""

import unittest
import os
import sys

import numpy as np

# Add the parent directory to the path so we can import the matpipe module
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from matpipe.buffer import (
    ArenaAllocator, HeapAllocator, MonotonicArena, ScopedStorage, TrackingAllocator,
    destroy_range, uninitialized_copy, uninitialized_default_construct, uninitialized_fill,
)
from matpipe.errors import AllocationError


class FailingAllocator(TrackingAllocator):
    """Tracking allocator whose construct() fails on the n-th call."""

    def __init__(self, fail_on):
        super().__init__()
        self.fail_on = fail_on
        self.calls = 0

    def construct(self, storage, index, *args):
        self.calls += 1
        if self.calls == self.fail_on:
            raise RuntimeError("element construction failed")
        super().construct(storage, index, *args)


class TestHeapAllocator(unittest.TestCase):
    """Test cases for the default heap allocator."""

    def test_allocate_returns_storage_of_requested_size(self):
        """allocate() returns a flat array with n slots of the dtype."""
        storage = HeapAllocator().allocate(6, np.float64)
        self.assertEqual(storage.shape, (6,))
        self.assertEqual(storage.dtype, np.float64)

    def test_heap_allocators_compare_equal(self):
        """Any two heap allocators can release each other's storage."""
        self.assertEqual(HeapAllocator(), HeapAllocator())
        self.assertNotEqual(HeapAllocator(), TrackingAllocator())

    def test_propagation_flags(self):
        """Heap allocators follow the container on move but not on copy."""
        self.assertTrue(HeapAllocator.propagate_on_move_assignment)
        self.assertFalse(HeapAllocator.propagate_on_copy_assignment)

    def test_impossible_allocation_raises_allocation_error(self):
        """A request numpy cannot satisfy surfaces as AllocationError."""
        with self.assertRaises(AllocationError):
            HeapAllocator().allocate(2 ** 62, np.float64)

    def test_construct_defaults_to_zero(self):
        """construct() without a value produces the dtype's zero."""
        allocator = HeapAllocator()
        storage = allocator.allocate(3, np.int32)
        storage[:] = 7
        allocator.construct(storage, 1)
        self.assertEqual(storage[1], 0)


class TestBulkConstruction(unittest.TestCase):
    """Test cases for construction helpers and their rollback."""

    def test_default_construct_counts_every_element(self):
        """Every element in the range is constructed exactly once."""
        allocator = TrackingAllocator()
        storage = allocator.allocate(4, np.float64)
        uninitialized_default_construct(storage, 0, 4, allocator)
        self.assertEqual(allocator.live_elements, 4)
        np.testing.assert_array_equal(storage, np.zeros(4))

    def test_fill_failure_rolls_back_constructed_prefix(self):
        """A failed fill destroys the elements constructed before the failure."""
        allocator = FailingAllocator(fail_on=3)
        storage = allocator.allocate(5, np.float64)

        with self.assertRaises(RuntimeError):
            uninitialized_fill(storage, 0, 5, 1.5, allocator)

        self.assertEqual(allocator.live_elements, 0)
        events = [event[1] for event in allocator.get_log()]
        self.assertEqual(events.count('CONSTRUCT'), 2)
        self.assertEqual(events.count('DESTROY'), 2)

    def test_fill_with_unconvertible_value_constructs_nothing(self):
        """A value the dtype cannot hold fails on the first element and leaves nothing live."""
        allocator = TrackingAllocator()
        storage = allocator.allocate(3, np.float64)
        with self.assertRaises(ValueError):
            uninitialized_fill(storage, 0, 3, "not a number", allocator)
        self.assertEqual(allocator.live_elements, 0)

    def test_copy_failure_destroys_destination_prefix(self):
        """Rollback of a failed copy targets the destination range."""
        allocator = FailingAllocator(fail_on=4)
        source = np.arange(6, dtype=np.float64)
        storage = allocator.allocate(6, np.float64)

        with self.assertRaises(RuntimeError):
            uninitialized_copy(source, 0, 6, storage, 0, allocator)

        self.assertEqual(allocator.live_elements, 0)
        np.testing.assert_array_equal(source, np.arange(6))

    def test_copy_with_offsets(self):
        """Source and destination offsets are honoured."""
        allocator = HeapAllocator()
        source = np.array([10.0, 20.0, 30.0, 40.0])
        storage = np.zeros(4)
        uninitialized_copy(source, 1, 3, storage, 2, allocator)
        np.testing.assert_array_equal(storage, [0.0, 0.0, 20.0, 30.0])

    def test_destroy_range(self):
        """destroy_range ends the lifetime of each element once."""
        allocator = TrackingAllocator()
        storage = allocator.allocate(3, np.float64)
        uninitialized_default_construct(storage, 0, 3, allocator)
        destroy_range(storage, 0, 3, allocator)
        self.assertEqual(allocator.live_elements, 0)


class TestScopedStorage(unittest.TestCase):
    """Test cases for scoped storage acquisition."""

    def test_storage_released_when_scope_fails(self):
        """Unclaimed storage is deallocated when the block raises."""
        allocator = TrackingAllocator()
        with self.assertRaises(RuntimeError):
            with ScopedStorage(allocator, 4, np.float64):
                raise RuntimeError("boom")
        self.assertEqual(allocator.live_allocations, 0)

    def test_released_storage_survives_scope(self):
        """release() transfers ownership out of the scope."""
        allocator = TrackingAllocator()
        with ScopedStorage(allocator, 4, np.float64) as memory:
            storage = memory.release()
        self.assertIsNotNone(storage)
        self.assertEqual(allocator.live_allocations, 1)

    def test_empty_storage_does_not_touch_allocator(self):
        """Zero-sized storage is represented by None."""
        allocator = TrackingAllocator()
        with ScopedStorage(allocator, 0, np.float64) as memory:
            self.assertIsNone(memory.storage)
        self.assertEqual(allocator.get_log(), [])


class TestArenaAllocator(unittest.TestCase):
    """Test cases for arena-backed allocation."""

    def test_allocations_come_from_the_arena(self):
        """Storage is carved out of the arena block in order."""
        arena = MonotonicArena(1024)
        allocator = ArenaAllocator(arena)
        first = allocator.allocate(4, np.float64)
        second = allocator.allocate(2, np.float64)
        first[:] = 1.0
        second[:] = 2.0
        self.assertEqual(arena.offset, 48)
        np.testing.assert_array_equal(first, np.ones(4))

    def test_exhausted_arena_raises_allocation_error(self):
        """Requests beyond the remaining capacity fail."""
        allocator = ArenaAllocator(MonotonicArena(32))
        allocator.allocate(4, np.float64)
        with self.assertRaises(AllocationError):
            allocator.allocate(1, np.float64)

    def test_reset_makes_capacity_available_again(self):
        """reset() rewinds the arena."""
        arena = MonotonicArena(16)
        allocator = ArenaAllocator(arena)
        allocator.allocate(2, np.float64)
        arena.reset()
        self.assertEqual(arena.remaining, 16)
        allocator.allocate(2, np.float64)

    def test_alignment_to_element_size(self):
        """Allocations start on a multiple of the element size."""
        arena = MonotonicArena(64)
        allocator = ArenaAllocator(arena)
        allocator.allocate(3, np.uint8)
        allocator.allocate(1, np.float64)
        self.assertEqual(arena.offset, 16)

    def test_equality_follows_the_arena(self):
        """Allocators sharing an arena are interchangeable."""
        arena = MonotonicArena(64)
        self.assertEqual(ArenaAllocator(arena), ArenaAllocator(arena))
        self.assertNotEqual(ArenaAllocator(arena), ArenaAllocator(MonotonicArena(64)))

    def test_copies_go_to_the_heap(self):
        """Copy construction selects a heap allocator."""
        allocator = ArenaAllocator(MonotonicArena(64))
        self.assertIsInstance(allocator.select_on_container_copy_construction(), HeapAllocator)
        self.assertFalse(allocator.propagate_on_copy_assignment)
        self.assertFalse(allocator.propagate_on_move_assignment)


if __name__ == '__main__':
    unittest.main()
