"""
Exceptions raised by the Kalman filter.

Configuration problems (bad regime partitions, mismatched matrices, a
presample that swallows the whole sample) and numerical failures (an
innovation covariance that is not positive definite) are kept distinct so
that an optimizer can tell a bad parameter draw from a wiring bug.
"""


class FilterError(Exception):
    """Base class for all filter errors."""
    pass


class ConfigurationError(FilterError, ValueError):
    """Inputs to the filter are inconsistent."""
    pass


class NumericalError(FilterError, ArithmeticError):
    """A factorization failed or produced a non-finite result."""

    def __init__(self, message, period=None):
        super().__init__(message)
        self.period = period


class DomainError(FilterError):
    """No observation is available in any period.

    The completed filter output is attached as ``output`` so callers can still
    use the predicted trajectory.
    """

    def __init__(self, message, output=None):
        super().__init__(message)
        self.output = output


class EmptyDataWarning(UserWarning):
    pass


__all__ = [
    "FilterError",
    "ConfigurationError",
    "NumericalError",
    "DomainError",
    "EmptyDataWarning",
]
