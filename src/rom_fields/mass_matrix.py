"""Volume-weighted Gram (mass) matrices of reduced bases.

For modes vectorized as the columns of ``Phi`` and per-dof volume weights
``V``, the mass matrix is ``M = Phi^T diag(V) Phi``. Entry (i, j) is the
discrete L2 inner product of modes i and j, so ``M[i, i]`` is the squared L2
norm of mode i.
"""
from __future__ import annotations

import logging
from typing import Any, Union
from numpy.typing import NDArray

import numpy as np

from .config import backend_name, to_cpu, to_device
from .mesh import CellMesh
from .vectorize import FieldsLike, dof_weights, vectorized_basis

_LOGGER = logging.getLogger(__name__)


def weighted_gram(
    left: NDArray[Any], weights: NDArray[Any], right: NDArray[Any]
) -> NDArray[Any]:
    """Compute ``left^T diag(weights) right`` on the active backend.

    Args:
        left: Matrix (dof, m).
        weights: Vector (dof,).
        right: Matrix (dof, k).

    Returns:
        NDArray[Any]: NumPy array (m, k).
    """
    L = to_device(left, dtype=float)
    W = to_device(weights, dtype=float)
    R = to_device(right, dtype=float)
    out = (L * W[:, None]).T @ R
    return np.asarray(to_cpu(out))


def mass_matrix(
    modes: Union[FieldsLike, NDArray[Any]],
    mesh: CellMesh | None = None,
    n_components: int | None = None,
) -> NDArray[Any]:
    """Assemble the mass matrix of a set of modes.

    Args:
        modes: Fields, a FieldSet, or a pre-vectorized (dof, n_modes) matrix.
        mesh: Owning mesh; required when `modes` is a matrix.
        n_components: Component count for pre-vectorized modes; inferred
            from the dof count when omitted.

    Returns:
        NDArray[Any]: Symmetric matrix (n_modes, n_modes).

    Raises:
        EmptyInputError: If no mode is given.
        ShapeMismatchError: If the modes do not match the mesh.
    """
    phi, mesh, c = vectorized_basis(modes, mesh, n_components)
    V = dof_weights(mesh, c)
    M = weighted_gram(phi, V, phi)
    # Exact symmetry; the two triangles differ only by rounding.
    M = 0.5 * (M + M.T)

    _LOGGER.debug(
        "mass_matrix: assembled %dx%d from dof=%d (c=%d, backend=%s)",
        M.shape[0],
        M.shape[1],
        phi.shape[0],
        c,
        backend_name(),
    )
    return M
