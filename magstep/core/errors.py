"""
Exception types raised by magstep.
"""


class MagstepError(Exception):
    """Base class for all magstep errors."""


class InvalidArgumentError(MagstepError, ValueError):
    """Raised for invalid step parameters or malformed input arrays."""


class NumericalInstabilityError(MagstepError, ArithmeticError):
    """Raised when a linear solve produces non-finite output."""


class NonConvergenceError(MagstepError, RuntimeError):
    """
    Raised in strict mode when the corrector loop did not converge.

    The per-node diagnostics of the failed step are kept on
    ``self.diagnostics``.
    """

    def __init__(self, message: str, diagnostics=None):
        super().__init__(message)
        self.diagnostics = diagnostics
