"""
Function composition.

``compose(f, g)`` builds a callable equivalent to ``lambda *a, **kw: f(g(*a, **kw))``.
The pipeline does not use it for sequencing (it applies its operations left
to right); this is a standalone utility for building single transformations
out of smaller ones.
"""

import functools


class ComposedFunction:
    """Callable applying ``inner`` first and ``outer`` to its result."""

    def __init__(self, outer, inner):
        if not callable(outer) or not callable(inner):
            raise TypeError("Both composed objects must be callable.")
        self.outer = outer
        self.inner = inner

    def __call__(self, *args, **kwargs):
        return self.outer(self.inner(*args, **kwargs))

    def __repr__(self):
        return f"ComposedFunction(outer={self.outer!r}, inner={self.inner!r})"


def _identity(value):
    return value


def compose(f1, f2) -> ComposedFunction:
    """Returns ``c`` such that ``c(x) == f1(f2(x))``."""
    return ComposedFunction(f1, f2)


def compose_all(*functions):
    """
    Compose any number of callables right to left.

    ``compose_all(f, g, h)(x) == f(g(h(x)))``; with no callables the result
    is the identity function.
    """
    if not functions:
        return _identity
    return functools.reduce(compose, functions)
