from __future__ import annotations

from typing import Any, Optional


class SignZeroError(Exception):
    """Base class for every error raised by signzerovar."""


class ConfigurationError(SignZeroError, ValueError):
    """Malformed input: restriction spec, prior, data or run parameters.

    Always raised before any sampling begins.
    """


class NumericalError(SignZeroError, ArithmeticError):
    """A decomposition or inversion failed within tolerance.

    Recovered locally: the current candidate draw is discarded.
    """


class InfeasibleZeroRestrictionError(NumericalError):
    """The null space used to build a rotation column is empty for this draw."""


class IdentificationError(SignZeroError, RuntimeError):
    """Sampling budget exhausted (or run interrupted) before enough survivors."""

    def __init__(self, message: str, diagnostics: Optional[Any] = None):
        super().__init__(message)
        self.diagnostics = diagnostics
