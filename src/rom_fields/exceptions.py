"""Exception types raised by rom_fields.

Every error derives from `RomFieldsError` and from the closest builtin
exception, so callers may catch either the package type or the builtin one
(e.g. `ValueError` for shape problems, `ZeroDivisionError` for a vanishing
reference norm).
"""

from __future__ import annotations


class RomFieldsError(Exception):
    """Base class for all rom_fields errors."""


class ShapeMismatchError(RomFieldsError, ValueError):
    """Inputs disagree on mesh, component count or degrees of freedom."""


class EmptyInputError(RomFieldsError, ValueError):
    """An operation received zero elements where at least one is required."""


class NumericalError(RomFieldsError, ArithmeticError):
    """A matrix solve or factorization is singular or ill-conditioned."""


class DivideByZeroError(RomFieldsError, ZeroDivisionError):
    """A relative-error denominator is below tolerance."""


class LengthMismatchError(RomFieldsError, ValueError):
    """Paired-list operations received sequences of different length."""


class IndexOutOfRangeError(RomFieldsError, IndexError):
    """A cell id lies outside the valid range of the mesh."""


class InvalidArgumentError(RomFieldsError, ValueError):
    """An argument has an invalid value (e.g. a negative layer count)."""
