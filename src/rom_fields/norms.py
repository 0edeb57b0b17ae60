"""Volume-weighted norms and relative errors of cell fields.

- L2 norm: ``sqrt(sum_cells V * |f|^2)``.
- H1 seminorm: ``sqrt(sum_cells V * |grad f|^2)`` with the mesh gradient.
- Relative error: ``||f1 - f2|| / ||f1||`` in the L2 norm, with the
  reference field `f1` required to have a norm above `NORM_TOLERANCE`.
"""
from __future__ import annotations

import logging
from typing import Any, Sequence
from numpy.typing import NDArray

import numpy as np

from .exceptions import DivideByZeroError, LengthMismatchError
from .fields import Field

_LOGGER = logging.getLogger(__name__)

#: Reference norms at or below this value make a relative error undefined.
NORM_TOLERANCE: float = 1e-12


def l2_norm(field: Field) -> float:
    """Return the volume-weighted L2 norm of `field`."""
    sq = np.sum(field.internal * field.internal, axis=1)
    return float(np.sqrt(np.dot(field.mesh.volumes, sq)))


def h1_seminorm(field: Field) -> float:
    """Return the volume-weighted H1 seminorm of `field`.

    Uses `CellMesh.gradient`; for a vector field the squared Frobenius norm of
    the per-cell gradient tensor is used.
    """
    grad = field.mesh.gradient(field.internal)  # (n_cells, c, dim)
    sq = np.sum(grad * grad, axis=(1, 2))
    return float(np.sqrt(np.dot(field.mesh.volumes, sq)))


def relative_error(reference: Field, approx: Field) -> float:
    """Return ``l2_norm(reference - approx) / l2_norm(reference)``.

    Raises:
        ShapeMismatchError: If the fields differ in mesh or component count.
        DivideByZeroError: If ``l2_norm(reference) <= NORM_TOLERANCE``.
    """
    diff = reference - approx
    ref_norm = l2_norm(reference)
    if ref_norm <= NORM_TOLERANCE:
        _LOGGER.error(
            "relative_error: reference field '%s' has norm %.3e <= %.1e",
            reference.name,
            ref_norm,
            NORM_TOLERANCE,
        )
        raise DivideByZeroError(
            f"reference field '{reference.name}' has L2 norm {ref_norm:.3e}; "
            "relative error is undefined"
        )
    err = l2_norm(diff) / ref_norm
    _LOGGER.debug("relative_error(%s, %s) = %.6e", reference.name, approx.name, err)
    return err


def list_errors(references: Sequence[Field], approxs: Sequence[Field]) -> NDArray[Any]:
    """Pairwise relative errors of two equal-length field sequences.

    Returns:
        NDArray[Any]: One error per pair, in input order.

    Raises:
        LengthMismatchError: If the sequences differ in length.
    """
    refs = list(references)
    apps = list(approxs)
    if len(refs) != len(apps):
        _LOGGER.error("list_errors: %d references vs %d fields", len(refs), len(apps))
        raise LengthMismatchError(
            f"field lists differ in length ({len(refs)} != {len(apps)})"
        )
    return np.array([relative_error(r, a) for r, a in zip(refs, apps)], dtype=float)
