"""
Exceptions raised while deriving, closing and evaluating equations.
"""

__all__ = [
    'QumulantsError', 'ConfigurationError', 'ClosureDivergenceError',
    'MissingAverageError'
]


class QumulantsError(Exception):
    """Base class for all errors raised by qumulants."""


class ConfigurationError(QumulantsError, ValueError):
    """Invalid model or call configuration.

    Raised for mismatched jump/rate lists, operators acting on components
    that are not part of the model, undeclared levels and too low orders.
    """


class ClosureDivergenceError(QumulantsError, RuntimeError):
    """The completion loop did not close within the iteration cap.

    Attributes:
        order: Cumulant order used for the truncation
        missing: Averages that were still missing when the loop stopped
    """

    def __init__(self, message, order=None, missing=()):
        super().__init__(message)
        self.order = order
        self.missing = list(missing)


class MissingAverageError(QumulantsError, LookupError):
    """An average (or its adjoint) is not among the known variables."""
