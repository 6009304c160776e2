"""
matpipe: dense matrices over pluggable allocators, and pipelines of matrix
operations configured from text.
"""

from .buffer import (
    Allocator, HeapAllocator, TrackingAllocator, ArenaAllocator, MonotonicArena,
)
from .core import Matrix
from .errors import (
    MatrixError, AllocationError, SizeMismatchError, NotAVectorError,
    OperationNotFoundError, MalformedMatrixError, ConfigurationError,
    ResourceUnavailableError,
)
from .compose import compose, compose_all, ComposedFunction
from .dispatch import DispatchTable, default_dispatch_table
from .plan import Operation, Pipeline, bind_operation, build_pipeline, load_pipeline
from .io import load_matrix, save_matrix, read_matrix, write_matrix

__version__ = "0.1.0"
