"""Exception and warning classes for spanflow.

Structural problems with the inputs fail fast with an exception; numerical
edge cases inside a run are absorbed into the result data and reported as
warnings instead.
"""


class SpanError(Exception):
    """Base exception for service flow analysis errors."""

    pass


class InputShapeError(SpanError, ValueError):
    """Raised when input rasters are not 2-D or do not share one shape."""

    pass


class NumericInstabilityError(SpanError):
    """Raised when an iterative computation fails to converge.

    Callers in :mod:`spanflow.network` catch it and fall back to a
    neutral default (zero vector, singleton communities).
    """

    def __init__(self, message: str, iterations: int = 0):
        super().__init__(message)
        self.iterations = iterations


class DeadlineExceeded(SpanError, TimeoutError):
    """Raised when a run exceeds its deadline."""

    pass


class DegenerateGraphWarning(UserWarning):
    """Emitted for graphs with fewer than two nodes or no edges."""

    pass
