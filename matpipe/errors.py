"""
Error hierarchy for matpipe.

Every failure aborts the whole run; nothing here is meant to be recovered
internally. The concrete classes also derive from the closest builtin so
callers can keep catching ``ValueError`` or ``OSError`` where that reads
more naturally.
"""


class MatrixError(RuntimeError):
    """Base class for all matpipe failures."""


class AllocationError(MatrixError, MemoryError):
    """Storage for a matrix buffer could not be acquired."""


class SizeMismatchError(MatrixError, ValueError):
    """Two matrices have dimensions incompatible with the requested operation."""


class NotAVectorError(MatrixError, ValueError):
    """A vector-only operation was applied to a matrix with rows > 1 and cols > 1."""


class OperationNotFoundError(MatrixError, LookupError):
    """An operation name is not present in the dispatch table."""


class MalformedMatrixError(MatrixError, ValueError):
    """Matrix text is empty, ragged or contains a non-numeric token."""


class ConfigurationError(MatrixError, ValueError):
    """A configuration line does not have the ``<operation> <source>`` form."""


class ResourceUnavailableError(MatrixError, OSError):
    """A configuration, input or operand source cannot be opened."""
