"""
Pipeline construction from a configuration stream.

Each configuration line names an operation and an operand file:

    mat_mul_mat weights.txt
    mat_add_vec bias.txt

The operand is loaded once and bound into an Operation together with the
function the dispatch table resolves for the name. Applying the Pipeline
threads a running matrix through the operations from first to last.
"""

import logging
import os
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from .buffer import Allocator
from .config import CONFIG_COMMENT_PREFIX, NAME_AFFIX_LENGTH, VECTOR_PREFIX
from .core import Matrix
from .dispatch import DispatchTable, default_dispatch_table
from .errors import ConfigurationError, ResourceUnavailableError
from .io import load_matrix
from .observability import ExecutionProfiler

logger = logging.getLogger(__name__)


def operand_goes_first(name: str, operand: Matrix) -> bool:
    """
    Decide whether the stored operand is the left argument of the operation.

    The first and last three characters of the name are compared. When they
    differ and "the name starts with vec" agrees with "the operand is a
    vector", the operand is bound on the left; in every other case the
    running value is on the left.
    """
    prefix = name[:NAME_AFFIX_LENGTH]
    suffix = name[-NAME_AFFIX_LENGTH:]
    return prefix != suffix and (prefix == VECTOR_PREFIX) == operand.is_vector()


@dataclass(frozen=True, eq=False)
class Operation:
    """One pipeline step: a binary function with one argument fixed to a stored operand."""
    name: str
    operand: Matrix
    function: Callable[[Matrix, Matrix], Matrix]
    operand_first: bool
    source: Optional[str] = None

    def __call__(self, value: Matrix) -> Matrix:
        if self.operand_first:
            return self.function(self.operand, value)
        return self.function(value, self.operand)

    def __repr__(self):
        order = "operand, value" if self.operand_first else "value, operand"
        return f"Operation({self.name}({order}), operand={self.operand.shape}, source={self.source!r})"


def bind_operation(name: str, operand: Matrix, table: Optional[DispatchTable] = None,
                   source: Optional[str] = None) -> Operation:
    """Resolve ``name`` and fix ``operand`` on the side chosen by ``operand_goes_first``."""
    table = table if table is not None else default_dispatch_table()
    function = table.lookup(name)
    return Operation(name, operand, function, operand_goes_first(name, operand), source)


class Pipeline:
    """
    Ordered, append-only sequence of unary matrix operations.

    Calling the pipeline applies the operations strictly in insertion order;
    each result replaces the running value. An empty pipeline returns a copy
    of its input.
    """

    def __init__(self, operations: Iterable[Callable[[Matrix], Matrix]] = ()):
        self._operations = list(operations)

    def append(self, operation: Callable[[Matrix], Matrix]):
        if not callable(operation):
            raise TypeError("Pipeline operations must be callable.")
        self._operations.append(operation)

    push_back = append

    def __len__(self):
        return len(self._operations)

    def __iter__(self):
        return iter(self._operations)

    def __call__(self, value: Matrix, profiler: Optional[ExecutionProfiler] = None) -> Matrix:
        running = value.copy()
        for step, operation in enumerate(self._operations, start=1):
            name = getattr(operation, "name", getattr(operation, "__name__", repr(operation)))
            logger.info("Step %d/%d: %s on %s", step, len(self._operations), name, running.shape)
            if profiler is not None:
                with profiler.profile(name, step=step, shape=running.shape):
                    running = operation(running)
            else:
                running = operation(running)
        return running

    def __repr__(self):
        return f"Pipeline({self._operations!r})"


def parse_config_line(line: str):
    """
    Split a configuration line into ``(operation_name, source)``.

    Returns None for blank lines and comments.
    """
    stripped = line.strip()
    if not stripped or stripped.startswith(CONFIG_COMMENT_PREFIX):
        return None
    tokens = stripped.split()
    if len(tokens) != 2:
        raise ConfigurationError(
            f"Expected '<operation> <matrix file>', got {len(tokens)} tokens: {stripped!r}"
        )
    return tokens[0], tokens[1]


def build_pipeline(lines: Iterable[str], table: Optional[DispatchTable] = None,
                   base_dir: Optional[str] = None, dtype=None,
                   allocator: Allocator = None) -> Pipeline:
    """
    Build a Pipeline from configuration lines.

    Args:
        lines: Configuration lines (an open text file works)
        table: Dispatch table to resolve names with (defaults to the process-wide table)
        base_dir: Directory relative operand paths are resolved against
        dtype: Element type for loaded operands
        allocator: Allocator for loaded operands

    Raises:
        ConfigurationError: a line is not ``<operation> <source>``
        OperationNotFoundError: an operation name is unknown
        ResourceUnavailableError: an operand file cannot be read
        MalformedMatrixError: an operand file is not a valid matrix
    """
    table = table if table is not None else default_dispatch_table()
    pipeline = Pipeline()

    for line_number, line in enumerate(lines, start=1):
        parsed = parse_config_line(line)
        if parsed is None:
            continue
        name, source = parsed
        # Unknown names fail before the operand file is touched
        function = table.lookup(name)

        path = source
        if base_dir is not None and not os.path.isabs(source):
            path = os.path.join(base_dir, source)
        operand = load_matrix(path, dtype=dtype, allocator=allocator)

        operation = Operation(name, operand, function, operand_goes_first(name, operand), source)
        logger.debug("Config line %d: %r", line_number, operation)
        pipeline.append(operation)

    logger.info("Built pipeline with %d operations", len(pipeline))
    return pipeline


def load_pipeline(path, table: Optional[DispatchTable] = None, base_dir: Optional[str] = None,
                  dtype=None, allocator: Allocator = None) -> Pipeline:
    """Build a Pipeline from a configuration file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            lines = f.readlines()
    except UnicodeDecodeError as exc:
        raise ConfigurationError(f"Config file '{path}' is not valid text: {exc.reason}") from exc
    except OSError as exc:
        raise ResourceUnavailableError(f"Cannot open config file '{path}': {exc.strerror}") from exc
    return build_pipeline(lines, table=table, base_dir=base_dir, dtype=dtype, allocator=allocator)
