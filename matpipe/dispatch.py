"""
Fixed-capacity name -> operation directory.

The table is filled once from a literal list of entries and is read-only
afterwards. Lookups scan the entries in order and compare names exactly.
"""

import functools
import logging
from typing import Callable, Iterable, Tuple

from . import backend
from .config import DISPATCH_TABLE_CAPACITY
from .core import Matrix
from .errors import OperationNotFoundError

logger = logging.getLogger(__name__)

BinaryOperation = Callable[[Matrix, Matrix], Matrix]


class DispatchTable:
    """
    Immutable mapping from operation names to binary matrix functions.

    Example:
        >>> table = DispatchTable([("mat_add_mat", backend.add)])
        >>> table.lookup("mat_add_mat") is backend.add
        True
    """

    def __init__(self, entries: Iterable[Tuple[str, BinaryOperation]],
                 capacity: int = DISPATCH_TABLE_CAPACITY):
        entries = tuple((str(name), function) for name, function in entries)
        if len(entries) > capacity:
            raise ValueError(
                f"Dispatch table holds at most {capacity} entries, got {len(entries)}"
            )
        self._capacity = capacity
        self._keys = tuple(name for name, _ in entries)
        self._values = tuple(function for _, function in entries)

    @property
    def capacity(self) -> int:
        return self._capacity

    def lookup(self, name: str) -> BinaryOperation:
        """Returns the operation registered under ``name``; raises OperationNotFoundError."""
        for key, value in zip(self._keys, self._values):
            if key == name:
                return value
        raise OperationNotFoundError(f"Operation '{name}' is not found")

    def __getitem__(self, name: str) -> BinaryOperation:
        return self.lookup(name)

    def __contains__(self, name) -> bool:
        return name in self._keys

    def __len__(self):
        return len(self._keys)

    def names(self):
        return list(self._keys)

    def __repr__(self):
        return f"DispatchTable(names={list(self._keys)}, capacity={self._capacity})"


DEFAULT_OPERATIONS = (
    ("mat_mul_vec", backend.multiply),
    ("mat_mul_mat", backend.multiply),
    ("vec_mul_mat", backend.multiply),
    ("vec_add_vec", backend.add),
    ("mat_add_vec", backend.add),
    ("mat_add_mat", backend.add),
    ("vec_dot_vec", backend.dot),
)


@functools.lru_cache(maxsize=None)
def default_dispatch_table() -> DispatchTable:
    """The process-wide table of recognized operations, built on first use."""
    table = DispatchTable(DEFAULT_OPERATIONS)
    logger.debug("Initialized default dispatch table: %s", table.names())
    return table
