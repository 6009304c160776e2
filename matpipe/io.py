"""
Plain-text matrix format.

One matrix row per line, elements separated by whitespace:

    1 2 3
    4 5 6

Every row must have the same number of elements and at least one row is
required. Trailing blank lines are ignored. Elements are plain decimal
numbers (`1`, `-2.5`, `3e-4`); digit separators, `inf` and `nan` are rejected.
"""

import logging
import os
import re

import numpy as np

from .buffer import Allocator
from .core import Matrix
from .errors import MalformedMatrixError, ResourceUnavailableError

logger = logging.getLogger(__name__)

# Plain decimal numbers: optional sign, digits with an optional fraction, optional exponent
DECIMAL_TOKEN = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


def parse_matrix(text: str, dtype=None, allocator: Allocator = None) -> Matrix:
    """
    Parse matrix text into a Matrix.

    Args:
        text: The whole matrix text
        dtype: Element type of the result (defaults to config.DEFAULT_DTYPE)
        allocator: Allocator for the result's buffer

    Raises:
        MalformedMatrixError: empty input, ragged rows or a non-numeric token
    """
    lines = text.splitlines()
    while lines and not lines[-1].strip():
        lines.pop()
    if not lines:
        raise MalformedMatrixError("Empty file.")

    width = len(lines[0].split())
    rows = []
    for line_number, line in enumerate(lines, start=1):
        tokens = line.split()
        if len(tokens) != width:
            raise MalformedMatrixError(
                f"Wrong file format: line {line_number} has {len(tokens)} elements, expected {width}"
            )
        for token in tokens:
            if not DECIMAL_TOKEN.fullmatch(token):
                raise MalformedMatrixError(
                    f"Wrong file format: line {line_number}: {token!r} is not a decimal number"
                )
        rows.append([float(token) for token in tokens])

    return Matrix.from_rows(rows, dtype=dtype, allocator=allocator)


def read_matrix(stream, dtype=None, allocator: Allocator = None) -> Matrix:
    """Read a matrix from an open text stream."""
    return parse_matrix(stream.read(), dtype=dtype, allocator=allocator)


def load_matrix(path, dtype=None, allocator: Allocator = None) -> Matrix:
    """Read a matrix from a file; an unreadable file raises ResourceUnavailableError."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
    except UnicodeDecodeError as exc:
        raise MalformedMatrixError(f"Matrix file '{path}' is not valid text: {exc.reason}") from exc
    except OSError as exc:
        raise ResourceUnavailableError(f"Cannot open matrix file '{path}': {exc.strerror}") from exc

    matrix = parse_matrix(text, dtype=dtype, allocator=allocator)
    logger.debug("Loaded matrix %s from '%s'", matrix.shape, path)
    return matrix


def format_value(value) -> str:
    """Shortest text that reads back to the same value (``6.0`` -> ``6``)."""
    if isinstance(value, (float, np.floating)):
        return np.format_float_positional(value, trim='-')
    return str(value)


def format_matrix(matrix: Matrix) -> str:
    lines = []
    for i in range(matrix.rows):
        lines.append(" ".join(format_value(matrix[i, j]) for j in range(matrix.cols)))
    return "".join(line + "\n" for line in lines)


def write_matrix(stream, matrix: Matrix):
    """Write a matrix to an open text stream, one row per line."""
    stream.write(format_matrix(matrix))


def save_matrix(path, matrix: Matrix):
    """
    Write a matrix to ``path``.

    The text is rendered before the file is opened, so a failure while
    formatting never leaves a truncated file behind.
    """
    text = format_matrix(matrix)
    directory = os.path.dirname(os.path.abspath(path))
    if not os.path.isdir(directory):
        raise ResourceUnavailableError(f"Output directory '{directory}' does not exist")
    try:
        with open(path, "w", encoding="utf-8") as f:
            f.write(text)
    except OSError as exc:
        raise ResourceUnavailableError(f"Cannot write matrix file '{path}': {exc.strerror}") from exc
    logger.debug("Saved matrix %s to '%s'", matrix.shape, path)
