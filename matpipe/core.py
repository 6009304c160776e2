# --- Purpose: Dense row-major matrix over allocator-managed storage. ---

import numbers
import logging

import numpy as np

from .buffer import (
    Allocator, HeapAllocator, ScopedStorage, destroy_range,
    uninitialized_copy, uninitialized_default_construct, uninitialized_fill,
)
from .config import DEFAULT_DTYPE
from .errors import NotAVectorError, SizeMismatchError

logger = logging.getLogger(__name__)


def _check_dimension(value, name):
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise TypeError(f"Matrix {name} must be an integer, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"Matrix {name} must be non-negative, got {value}")
    return int(value)


class Matrix:
    """
    Dense 2D matrix that owns exactly one element buffer.

    Elements are stored row-major in a flat buffer obtained from an
    Allocator: element (i, j) lives at index ``i * cols + j``. An empty
    matrix (``rows * cols == 0``) holds no buffer at all.

    Ownership moves between matrices only through ``moved_from`` and
    ``assign_move``; both leave the source empty.
    """

    # Keep numpy scalars from broadcasting over a Matrix on the left of ``*``
    __array_ufunc__ = None

    def __init__(self, rows: int = 0, cols: int = 0, fill=None, *,
                 dtype=None, allocator: Allocator = None):
        """
        Allocate a ``rows x cols`` matrix.

        Args:
            rows: Number of rows
            cols: Number of columns (elements per row)
            fill: Value every element is constructed from; the dtype's zero if None
            dtype: Element type (defaults to config.DEFAULT_DTYPE)
            allocator: Storage strategy (defaults to a HeapAllocator)
        """
        self._init_empty(allocator if allocator is not None else HeapAllocator(),
                         dtype if dtype is not None else DEFAULT_DTYPE)
        rows = _check_dimension(rows, "rows")
        cols = _check_dimension(cols, "cols")

        size = rows * cols
        with ScopedStorage(self._allocator, size, self.dtype) as memory:
            if fill is None:
                uninitialized_default_construct(memory.storage, 0, size, self._allocator)
            else:
                uninitialized_fill(memory.storage, 0, size, fill, self._allocator)
            self._data = memory.release()
        self._rows = rows
        self._cols = cols

    # ------------------------------------------------------------------
    # Alternate constructors
    # ------------------------------------------------------------------

    @classmethod
    def from_numpy(cls, array, *, dtype=None, allocator: Allocator = None) -> 'Matrix':
        """Copy-construct a matrix from a 2D array-like (1D input becomes a row vector)."""
        source = np.asarray(array)
        if source.ndim == 1:
            source = source.reshape(1, -1)
        if source.ndim != 2:
            raise ValueError(f"Matrices must be 2-dimensional, got {source.ndim} dimensions")
        result = cls.__new__(cls)
        result._init_empty(allocator if allocator is not None else HeapAllocator(),
                           dtype if dtype is not None else DEFAULT_DTYPE)
        result._copy_elements_from(source.reshape(-1), source.shape[0], source.shape[1],
                                   result._allocator)
        return result

    @classmethod
    def from_rows(cls, rows, *, dtype=None, allocator: Allocator = None) -> 'Matrix':
        """Copy-construct a matrix from a sequence of equal-length rows."""
        rows = [list(row) for row in rows]
        if not rows:
            return cls(0, 0, dtype=dtype, allocator=allocator)
        width = len(rows[0])
        if any(len(row) != width for row in rows):
            raise SizeMismatchError("All rows must have the same number of elements.")
        flat = [value for row in rows for value in row]
        result = cls.__new__(cls)
        result._init_empty(allocator if allocator is not None else HeapAllocator(),
                           dtype if dtype is not None else DEFAULT_DTYPE)
        result._copy_elements_from(flat, len(rows), width, result._allocator)
        return result

    @classmethod
    def moved_from(cls, other: 'Matrix') -> 'Matrix':
        """Move construction: take over ``other``'s buffer and allocator, leaving it empty."""
        result = cls.__new__(cls)
        result._allocator = other._allocator
        result.dtype = other.dtype
        result._data = other._data
        result._rows = other._rows
        result._cols = other._cols
        other._reset()
        return result

    def _init_empty(self, allocator, dtype):
        self._allocator = allocator
        self.dtype = np.dtype(dtype)
        self._data = None
        self._rows = 0
        self._cols = 0

    def _copy_elements_from(self, source, rows, cols, allocator):
        """Builds a fresh buffer with ``allocator`` holding a copy of ``source``."""
        size = rows * cols
        with ScopedStorage(allocator, size, self.dtype) as memory:
            uninitialized_copy(source, 0, size, memory.storage, 0, allocator)
            self._data = memory.release()
        self._rows = rows
        self._cols = cols

    # ------------------------------------------------------------------
    # Copy / move / release
    # ------------------------------------------------------------------

    def copy(self) -> 'Matrix':
        """Copy construction: an independent deep copy of this matrix."""
        result = self.__class__.__new__(self.__class__)
        result._init_empty(self._allocator.select_on_container_copy_construction(), self.dtype)
        result._copy_elements_from(self._data, self._rows, self._cols, result._allocator)
        return result

    def __copy__(self):
        return self.copy()

    def __deepcopy__(self, memo):
        return self.copy()

    def assign(self, other: 'Matrix') -> 'Matrix':
        """
        Copy assignment.

        The new buffer is fully built before the old one is released, so a
        failure leaves this matrix untouched. When the allocator propagates on
        copy assignment, the source's allocator builds the copy and replaces
        ours; otherwise our own allocator is reused.
        """
        if other is self:
            return self

        size = other.size()
        if self._allocator.propagate_on_copy_assignment:
            allocator = other._allocator
        else:
            allocator = self._allocator

        with ScopedStorage(allocator, size, other.dtype) as memory:
            uninitialized_copy(other._data, 0, size, memory.storage, 0, allocator)
            self.clear()
            self._allocator = allocator
            self._data = memory.release()
        self.dtype = other.dtype
        self._rows = other._rows
        self._cols = other._cols
        return self

    def assign_move(self, other: 'Matrix') -> 'Matrix':
        """
        Move assignment.

        The buffer is stolen when the allocator propagates on move assignment
        or both allocators are interchangeable. Otherwise the elements are
        copied into storage from our own allocator. Either way ``other`` ends
        up empty and our previous buffer is released.
        """
        if other is self:
            return self

        if self._allocator.propagate_on_move_assignment or self._allocator == other._allocator:
            self.clear()
            if self._allocator.propagate_on_move_assignment:
                self._allocator = other._allocator
            self._data = other._data
            self.dtype = other.dtype
            self._rows = other._rows
            self._cols = other._cols
            other._reset()
        else:
            self.assign(other)
            other.clear()
        return self

    def clear(self):
        """Destroys every element and releases the buffer, leaving an empty matrix."""
        if self._data is not None:
            size = self.size()
            destroy_range(self._data, 0, size, self._allocator)
            self._allocator.deallocate(self._data, size)
        self._reset()

    def _reset(self):
        self._data = None
        self._rows = 0
        self._cols = 0

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.clear()
        return False

    # ------------------------------------------------------------------
    # Sizing and element access
    # ------------------------------------------------------------------

    @property
    def rows(self) -> int:
        return self._rows

    @property
    def cols(self) -> int:
        return self._cols

    @property
    def shape(self):
        return (self._rows, self._cols)

    def size(self) -> int:
        return self._rows * self._cols

    def get_row_count(self) -> int:
        return self._rows

    def get_element_count(self) -> int:
        """Number of elements per row."""
        return self._cols

    def get_allocator(self) -> Allocator:
        return self._allocator

    def is_vector(self) -> bool:
        return self._rows == 1 or self._cols == 1

    def __getitem__(self, index):
        """
        Unchecked element access: ``m[i, j]``.

        The flat offset ``i * cols + j`` is used as is. An out-of-range column
        silently addresses a neighbouring row; callers must keep
        ``i < rows`` and ``j < cols``. Use ``at`` for a checked lookup.
        """
        i, j = index
        return self._data[i * self._cols + j]

    def __setitem__(self, index, value):
        i, j = index
        self._data[i * self._cols + j] = value

    def _check_index(self, i, j):
        if not (0 <= i < self._rows and 0 <= j < self._cols):
            raise IndexError(f"Index ({i}, {j}) out of range for matrix of shape {self.shape}")

    def at(self, i: int, j: int):
        """Bounds-checked element access."""
        self._check_index(i, j)
        return self._data[i * self._cols + j]

    def set_at(self, i: int, j: int, value):
        """Bounds-checked element update."""
        self._check_index(i, j)
        self._data[i * self._cols + j] = value

    # ------------------------------------------------------------------
    # In-place arithmetic
    # ------------------------------------------------------------------

    def __iadd__(self, other: 'Matrix'):
        if not isinstance(other, Matrix):
            return NotImplemented
        if other.shape != self.shape:
            raise SizeMismatchError(f"Matrix size mismatch: {self.shape} + {other.shape}")
        if self._data is not None:
            # Results are stored back in this matrix's element type
            np.add(self._data, other._data, out=self._data, casting='unsafe')
        return self

    def __imul__(self, other):
        if isinstance(other, Matrix):
            return self._multiply_matrix(other)
        if isinstance(other, numbers.Real):
            if self._data is not None:
                np.multiply(self._data, other, out=self._data, casting='unsafe')
            return self
        return NotImplemented

    def _multiply_matrix(self, other: 'Matrix'):
        """
        Standard matrix product, replacing this matrix with ``self @ other``.

        The product is accumulated into a temporary that is only moved into
        ``self`` after every element has been computed.
        """
        if self._cols != other._rows:
            raise SizeMismatchError(f"Matrix size mismatch: {self.shape} * {other.shape}")

        result = Matrix(self._rows, other._cols, dtype=np.result_type(self.dtype, other.dtype),
                        allocator=self._allocator)
        zero = result.dtype.type()
        for i in range(result._rows):
            for j in range(result._cols):
                value = zero
                for r in range(other._rows):
                    value += self[i, r] * other[r, j]
                result[i, j] = value

        logger.debug("Matrix product %s x %s -> %s", self.shape, other.shape, result.shape)
        return self.assign_move(result)

    def dot(self, rhs: 'Matrix'):
        """
        Scalar product of two vectors of equal shape.

        Raises:
            SizeMismatchError: if the shapes differ
            NotAVectorError: if this matrix is neither a row nor a column vector
        """
        if self.shape != rhs.shape:
            raise SizeMismatchError(f"Size mismatch in matrices: {self.shape} . {rhs.shape}")
        if not self.is_vector():
            raise NotAVectorError(f"Matrices have to be vectors, got shape {self.shape}")

        value = np.result_type(self.dtype, rhs.dtype).type()
        for index in range(self.size()):
            value += self._data[index] * rhs._data[index]
        return value

    # ------------------------------------------------------------------
    # Out-of-place helpers built on the in-place operators
    # ------------------------------------------------------------------

    def __add__(self, other):
        if not isinstance(other, Matrix):
            return NotImplemented
        result = self.copy()
        result += other
        return result

    def __neg__(self):
        result = self.copy()
        result *= -1
        return result

    def __sub__(self, other):
        if not isinstance(other, Matrix):
            return NotImplemented
        return self + (-other)

    def __mul__(self, other):
        result = self.copy()
        outcome = result.__imul__(other)
        if outcome is NotImplemented:
            return NotImplemented
        return outcome

    def __rmul__(self, other):
        # Scalars commute; matrix * matrix is always handled by __mul__
        return self.__mul__(other)

    def __eq__(self, other):
        if not isinstance(other, Matrix):
            return NotImplemented
        if self.shape != other.shape:
            return False
        if self._data is None:
            return True
        return bool(np.array_equal(self._data, other._data))

    __hash__ = None

    def allclose(self, other: 'Matrix', rtol: float = 1e-05, atol: float = 1e-08) -> bool:
        """Shape equality plus element-wise closeness within tolerance."""
        if self.shape != other.shape:
            return False
        if self._data is None:
            return True
        return bool(np.allclose(self._data, other._data, rtol=rtol, atol=atol))

    def to_numpy(self) -> np.ndarray:
        """Returns a 2D copy of the elements."""
        if self._data is None:
            return np.zeros(self.shape, dtype=self.dtype)
        return self._data.reshape(self.shape).copy()

    def tolist(self):
        return self.to_numpy().tolist()

    def __repr__(self):
        return f"Matrix(shape={self.shape}, dtype={self.dtype.name}, allocator={self._allocator!r})"
