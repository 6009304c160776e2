"""
Allocator-aware element storage.

A Matrix never touches raw storage directly: it asks an Allocator for an
uninitialized buffer, constructs elements through the allocator, and hands
the buffer back once every element has been destroyed. The bulk helpers in
this module roll back a partially constructed range before re-raising, so a
failed construction never leaves live elements behind.
"""

import time
import logging

import numpy as np

from .errors import AllocationError

logger = logging.getLogger(__name__)

# Marker for "construct with the dtype's default value"
DEFAULT = object()


class Allocator:
    """
    Storage strategy used by Matrix.

    Subclasses decide where element storage comes from. The two policy flags
    mirror how a container must treat the allocator when it is assigned from
    another container.
    """
    propagate_on_copy_assignment = False
    propagate_on_move_assignment = False

    def allocate(self, n: int, dtype) -> np.ndarray:
        """Return uninitialized storage for ``n`` elements of ``dtype``."""
        raise NotImplementedError

    def deallocate(self, storage: np.ndarray, n: int):
        """Release storage obtained from ``allocate``. All elements must be destroyed."""
        raise NotImplementedError

    def construct(self, storage: np.ndarray, index: int, value=DEFAULT):
        """Begin the lifetime of one element, default-valued unless ``value`` is given."""
        if value is DEFAULT:
            value = storage.dtype.type()
        storage[index] = value

    def destroy(self, storage: np.ndarray, index: int):
        """End the lifetime of one element. Plain numeric elements need no cleanup."""

    def select_on_container_copy_construction(self) -> 'Allocator':
        """Allocator a copy-constructed container should use."""
        return self

    def __eq__(self, other):
        return self is other

    def __hash__(self):
        return id(self)


class HeapAllocator(Allocator):
    """Default allocator: every buffer is a fresh numpy array on the heap."""
    propagate_on_move_assignment = True

    def allocate(self, n: int, dtype) -> np.ndarray:
        try:
            return np.empty(n, dtype=dtype)
        except (MemoryError, ValueError) as exc:
            raise AllocationError(f"Cannot allocate {n} elements of {np.dtype(dtype).name}") from exc

    def deallocate(self, storage: np.ndarray, n: int):
        # The array is reclaimed by the garbage collector once unreferenced
        pass

    def __eq__(self, other):
        # Any heap allocator can release storage from any other
        return type(other) is HeapAllocator and type(self) is HeapAllocator

    def __hash__(self):
        return hash(HeapAllocator)

    def __repr__(self):
        return "HeapAllocator()"


class TrackingAllocator(HeapAllocator):
    """
    Heap allocator that keeps an event log and live counters.

    Useful to verify that every constructed element is destroyed exactly
    once and every buffer is released.
    """

    def __init__(self):
        self.live_allocations = 0
        self.live_elements = 0
        # (timestamp, event_type, count, live_elements)
        self.event_log = []

    def _record(self, event, count):
        self.event_log.append((time.perf_counter(), event, count, self.live_elements))

    def allocate(self, n: int, dtype) -> np.ndarray:
        storage = super().allocate(n, dtype)
        self.live_allocations += 1
        self._record('ALLOCATE', n)
        return storage

    def deallocate(self, storage: np.ndarray, n: int):
        super().deallocate(storage, n)
        self.live_allocations -= 1
        self._record('DEALLOCATE', n)

    def construct(self, storage: np.ndarray, index: int, value=DEFAULT):
        super().construct(storage, index, value)
        self.live_elements += 1
        self._record('CONSTRUCT', 1)

    def destroy(self, storage: np.ndarray, index: int):
        super().destroy(storage, index)
        self.live_elements -= 1
        self._record('DESTROY', 1)

    def get_log(self):
        """Returns the event log of allocator calls."""
        return self.event_log

    def __eq__(self, other):
        return self is other

    def __hash__(self):
        return id(self)

    def __repr__(self):
        return (f"TrackingAllocator(live_allocations={self.live_allocations}, "
                f"live_elements={self.live_elements})")


class MonotonicArena:
    """
    Fixed block of memory handed out by bumping an offset.

    Individual releases are ignored; the whole block becomes reusable only
    after ``reset()``.
    """

    def __init__(self, capacity_bytes: int):
        if capacity_bytes < 0:
            raise ValueError("Arena capacity must be non-negative.")
        self.capacity = capacity_bytes
        self.block = np.empty(capacity_bytes, dtype=np.uint8)
        self.offset = 0

    @property
    def remaining(self) -> int:
        return self.capacity - self.offset

    def allocate(self, nbytes: int, alignment: int) -> np.ndarray:
        start = -(-self.offset // alignment) * alignment
        end = start + nbytes
        if end > self.capacity:
            raise AllocationError(
                f"Arena exhausted: requested {nbytes} bytes, {self.capacity - start} available"
            )
        self.offset = end
        return self.block[start:end]

    def reset(self):
        """Make the whole block available again. Outstanding buffers become invalid."""
        self.offset = 0

    def __repr__(self):
        return f"MonotonicArena(capacity={self.capacity}, used={self.offset})"


class ArenaAllocator(Allocator):
    """
    Allocator drawing storage from a shared MonotonicArena.

    The allocator stays with its container on assignment, and copies of a
    container are placed on the heap rather than in the arena.
    """

    def __init__(self, arena: MonotonicArena):
        self.arena = arena

    def allocate(self, n: int, dtype) -> np.ndarray:
        dtype = np.dtype(dtype)
        raw = self.arena.allocate(n * dtype.itemsize, dtype.itemsize)
        return raw.view(dtype)

    def deallocate(self, storage: np.ndarray, n: int):
        pass

    def select_on_container_copy_construction(self) -> Allocator:
        return HeapAllocator()

    def __eq__(self, other):
        return isinstance(other, ArenaAllocator) and other.arena is self.arena

    def __hash__(self):
        return id(self.arena)

    def __repr__(self):
        return f"ArenaAllocator({self.arena!r})"


def destroy_range(storage, first, last, allocator):
    """Destroys elements ``[first, last)`` of ``storage``."""
    for index in range(first, last):
        allocator.destroy(storage, index)


def uninitialized_default_construct(storage, first, last, allocator):
    """Default-constructs ``[first, last)``, destroying the built prefix on failure."""
    current = first
    try:
        for current in range(first, last):
            allocator.construct(storage, current)
    except BaseException:
        destroy_range(storage, first, current, allocator)
        raise


def uninitialized_fill(storage, first, last, value, allocator):
    """Constructs every element of ``[first, last)`` from ``value``, with rollback."""
    current = first
    try:
        for current in range(first, last):
            allocator.construct(storage, current, value)
    except BaseException:
        destroy_range(storage, first, current, allocator)
        raise


def uninitialized_copy(source, first, last, storage, d_first, allocator):
    """
    Copy-constructs ``source[first:last]`` into ``storage`` starting at ``d_first``.

    On failure the destination elements built so far are destroyed before the
    exception propagates; the source is never modified.
    """
    current = d_first
    try:
        for offset in range(last - first):
            current = d_first + offset
            allocator.construct(storage, current, source[first + offset])
    except BaseException:
        destroy_range(storage, d_first, current, allocator)
        raise


class ScopedStorage:
    """
    Raw storage that is released on scope exit unless ownership is taken.

    Example:
        with ScopedStorage(allocator, n, dtype) as memory:
            uninitialized_fill(memory.storage, 0, n, 1.0, allocator)
            data = memory.release()
    """

    def __init__(self, allocator: Allocator, n: int, dtype):
        self.allocator = allocator
        self.n = n
        # Empty buffers are represented by None and never reach the allocator
        self.storage = allocator.allocate(n, dtype) if n > 0 else None

    def release(self):
        """Transfers ownership of the storage to the caller."""
        storage, self.storage = self.storage, None
        return storage

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if self.storage is not None:
            logger.debug("Releasing %d unclaimed elements on scope exit", self.n)
            self.allocator.deallocate(self.storage, self.n)
            self.storage = None
        return False
