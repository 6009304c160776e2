# --- Purpose: Binary matrix kernels resolved by the dispatch table. ---

import logging

from .core import Matrix

logger = logging.getLogger(__name__)


def multiply(lhs: Matrix, rhs: Matrix) -> Matrix:
    """Matrix product ``lhs * rhs`` as a new matrix; operands are left untouched."""
    result = lhs.copy()
    result *= rhs
    logger.debug("multiply: %s x %s -> %s", lhs.shape, rhs.shape, result.shape)
    return result


def add(lhs: Matrix, rhs: Matrix) -> Matrix:
    """Element-wise sum ``lhs + rhs`` as a new matrix."""
    result = lhs.copy()
    result += rhs
    logger.debug("add: %s + %s", lhs.shape, rhs.shape)
    return result


def dot(lhs: Matrix, rhs: Matrix) -> Matrix:
    """Scalar product of two vectors, wrapped in a 1x1 matrix."""
    value = lhs.dot(rhs)
    logger.debug("dot: %s . %s = %r", lhs.shape, rhs.shape, value)
    return Matrix(1, 1, value, dtype=value.dtype)
