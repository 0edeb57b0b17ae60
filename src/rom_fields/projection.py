"""Projection of snapshot fields onto reduced bases.

Two modes are provided:

- Non-orthogonal (Galerkin) projection solves ``M C = Phi^T diag(V) S`` with
  the mass matrix ``M = Phi^T diag(V) Phi`` assembled and Cholesky-factorized
  once per basis. ``Phi C`` reproduces ``S`` whenever the basis spans the
  snapshots; otherwise ``C`` is the best volume-weighted approximation.
- Orthogonal projection computes ``C = Phi^T diag(V) S`` and divides each row
  by the matching diagonal entry of the mass matrix, recomputed from the
  basis, which absorbs residual scaling errors of a nearly orthonormal basis.

`GalerkinProjector` keeps the vectorized basis and the factorization so many
snapshot sets can be projected against the same basis. The module-level
functions are one-shot conveniences.
"""
from __future__ import annotations

import logging
from typing import Any, Optional, Tuple, Union
from numpy.typing import NDArray

import numpy as np
import scipy.linalg as sla

from .config import config, to_cpu, to_device, xp
from .exceptions import NumericalError, ShapeMismatchError
from .fields import Field, FieldSet
from .mass_matrix import weighted_gram
from .mesh import CellMesh
from .vectorize import FieldsLike, as_field_set, dof_weights, fields_to_matrix, vectorized_basis

_LOGGER = logging.getLogger(__name__)

SnapshotsLike = Union[FieldsLike, NDArray[Any]]


class GalerkinProjector:
    """Project snapshots onto a fixed basis of modes.

    Args:
        modes: Basis as Fields, a FieldSet or a pre-vectorized (dof, n_modes)
            matrix.
        mesh: Owning mesh; required when `modes` is a matrix.
        n_components: Component count for pre-vectorized modes.

    Attributes:
        basis (NDArray[Any]): Vectorized modes, shape (dof, n_modes).
        mesh (CellMesh): Owning mesh.
        n_components (int): Components per cell.
        weights (NDArray[Any]): Per-dof volume weights, shape (dof,).
        mass (NDArray[Any]): Mass matrix, shape (n_modes, n_modes).
    """

    basis: NDArray[Any]
    mesh: CellMesh
    n_components: int
    weights: NDArray[Any]
    mass: NDArray[Any]

    def __init__(
        self,
        modes: Union[FieldsLike, NDArray[Any]],
        mesh: Optional[CellMesh] = None,
        n_components: Optional[int] = None,
    ) -> None:
        self.basis, self.mesh, self.n_components = vectorized_basis(
            modes, mesh, n_components
        )
        self.weights = dof_weights(self.mesh, self.n_components)
        M = weighted_gram(self.basis, self.weights, self.basis)
        self.mass = 0.5 * (M + M.T)
        self._factor: Optional[Tuple[NDArray[Any], bool]] = None

        _LOGGER.info(
            "GalerkinProjector initialized with %d modes over %d dofs (c=%d)",
            self.n_modes,
            self.n_dofs,
            self.n_components,
        )

    @property
    def n_modes(self) -> int:
        return int(self.basis.shape[1])

    @property
    def n_dofs(self) -> int:
        return int(self.basis.shape[0])

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _snapshot_matrix(self, snapshots: SnapshotsLike) -> Tuple[NDArray[Any], bool]:
        """Return ``(S, single)`` with S of shape (dof, n_snapshots)."""
        if isinstance(snapshots, np.ndarray):
            S = np.asarray(snapshots, dtype=float)
            single = S.ndim == 1
            if single:
                S = S[:, None]
            if S.ndim != 2:
                raise ShapeMismatchError(
                    f"snapshots must be 1-D or (dof, n_snapshots); got {snapshots.shape}"
                )
        else:
            single = isinstance(snapshots, Field)
            fs = as_field_set(snapshots)
            if fs.mesh is not self.mesh:
                _LOGGER.error("snapshots and modes live on different meshes")
                raise ShapeMismatchError("snapshots and modes live on different meshes")
            if fs.n_components != self.n_components:
                raise ShapeMismatchError(
                    f"snapshots have {fs.n_components} components; "
                    f"modes have {self.n_components}"
                )
            S = fields_to_matrix(fs)

        if S.shape[0] != self.n_dofs:
            msg = f"snapshots have {S.shape[0]} dofs; modes have {self.n_dofs}"
            _LOGGER.error("projection: %s", msg)
            raise ShapeMismatchError(msg)
        return S, single

    def _cholesky(self) -> Tuple[NDArray[Any], bool]:
        if self._factor is not None:
            return self._factor

        diag = np.diag(self.mass)
        if not np.all(diag > np.finfo(float).tiny):
            bad = np.flatnonzero(~(diag > np.finfo(float).tiny)).tolist()
            _LOGGER.error("mass matrix has zero-norm modes %s", bad)
            raise NumericalError(f"modes {bad} have zero norm")

        # Jacobi-scaled D^-1/2 M D^-1/2, invariant under rescaling single modes
        s = 1.0 / np.sqrt(diag)
        eigs = np.linalg.eigvalsh(self.mass * s[:, None] * s[None, :])
        lam_max = float(eigs[-1])
        rcond = float(eigs[0]) / lam_max if lam_max > 0.0 else 0.0
        if not np.isfinite(rcond) or rcond < config.rcond_limit:
            _LOGGER.error(
                "mass matrix is singular or ill-conditioned (rcond=%.3e < %.3e); "
                "modes are linearly dependent",
                rcond,
                config.rcond_limit,
            )
            raise NumericalError(
                f"mass matrix is singular or ill-conditioned (rcond={rcond:.3e}); "
                "check the basis for duplicate or linearly dependent modes"
            )
        try:
            self._factor = sla.cho_factor(self.mass, lower=True, check_finite=True)
        except (np.linalg.LinAlgError, ValueError) as err:
            _LOGGER.exception("Cholesky factorization of the mass matrix failed.")
            raise NumericalError(f"mass matrix factorization failed: {err}") from err

        _LOGGER.debug("mass matrix factorized (n_modes=%d, rcond=%.3e)", self.n_modes, rcond)
        return self._factor

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def coefficients(self, snapshots: SnapshotsLike) -> NDArray[Any]:
        """Non-orthogonal (Galerkin) projection coefficients.

        Args:
            snapshots: A Field or 1-D array (one snapshot), or Fields, a
                FieldSet or a (dof, n_snapshots) matrix.

        Returns:
            NDArray[Any]: (n_modes,) for one snapshot, else (n_modes, n_snapshots).

        Raises:
            NumericalError: If the mass matrix is singular or ill-conditioned.
            ShapeMismatchError: If snapshots and modes differ in layout.
        """
        S, single = self._snapshot_matrix(snapshots)
        factor = self._cholesky()
        rhs = weighted_gram(self.basis, self.weights, S)
        C = sla.cho_solve(factor, rhs)
        _LOGGER.debug("coefficients: projected %d snapshot(s)", S.shape[1])
        return C[:, 0] if single else C

    def coefficients_orthogonal(self, snapshots: SnapshotsLike) -> NDArray[Any]:
        """Projection coefficients for an (asserted) orthogonal basis.

        Each row of ``Phi^T diag(V) S`` is divided by the squared norm of the
        corresponding mode, recomputed from the basis.

        Raises:
            NumericalError: If a mode has zero norm.
            ShapeMismatchError: If snapshots and modes differ in layout.
        """
        S, single = self._snapshot_matrix(snapshots)
        rhs = weighted_gram(self.basis, self.weights, S)

        phi = to_device(self.basis, dtype=float)
        w = to_device(self.weights, dtype=float)
        diag = np.asarray(to_cpu(xp.sum(phi * phi * w[:, None], axis=0)))
        if np.any(diag <= np.finfo(float).tiny):
            bad = np.flatnonzero(diag <= np.finfo(float).tiny).tolist()
            _LOGGER.error("coefficients_orthogonal: zero-norm modes %s", bad)
            raise NumericalError(f"modes {bad} have zero norm")

        C = rhs / diag[:, None]
        _LOGGER.debug("coefficients_orthogonal: projected %d snapshot(s)", S.shape[1])
        return C[:, 0] if single else C

    def reconstruct(self, coefficients: NDArray[Any]) -> NDArray[Any]:
        """Return ``Phi C``: (dof,) for a vector, (dof, n) for a matrix."""
        C = np.asarray(coefficients, dtype=float)
        if C.shape[0] != self.n_modes:
            raise ShapeMismatchError(
                f"coefficients have {C.shape[0]} rows; basis has {self.n_modes} modes"
            )
        return self.basis @ C

    def reconstruct_fields(self, coefficients: NDArray[Any], name: str = "rec") -> FieldSet:
        """Reconstruct snapshots as a FieldSet from a coefficient matrix."""
        R = self.reconstruct(coefficients)
        if R.ndim == 1:
            R = R[:, None]
        data = R.T.reshape(R.shape[1], self.mesh.n_cells, self.n_components)
        return FieldSet.from_array(self.mesh, data, name=name)


def project(
    snapshots: SnapshotsLike,
    modes: Union[FieldsLike, NDArray[Any]],
    mesh: Optional[CellMesh] = None,
) -> NDArray[Any]:
    """Non-orthogonal projection coefficients of `snapshots` on `modes`."""
    return GalerkinProjector(modes, mesh).coefficients(snapshots)


def project_orthogonal(
    snapshots: SnapshotsLike,
    modes: Union[FieldsLike, NDArray[Any]],
    mesh: Optional[CellMesh] = None,
) -> NDArray[Any]:
    """Orthogonal projection coefficients of `snapshots` on `modes`."""
    return GalerkinProjector(modes, mesh).coefficients_orthogonal(snapshots)


def _single(snapshot: Union[Field, NDArray[Any]]) -> Union[Field, NDArray[Any]]:
    if isinstance(snapshot, Field):
        return snapshot
    arr = np.asarray(snapshot, dtype=float)
    if arr.ndim == 2 and arr.shape[1] == 1:
        arr = arr[:, 0]
    if arr.ndim != 1:
        raise ShapeMismatchError(f"expected a single snapshot; got shape {arr.shape}")
    return arr


def project_snapshot(
    snapshot: Union[Field, NDArray[Any]],
    modes: Union[FieldsLike, NDArray[Any]],
    mesh: Optional[CellMesh] = None,
) -> NDArray[Any]:
    """Non-orthogonal projection of one snapshot; returns (n_modes,)."""
    return GalerkinProjector(modes, mesh).coefficients(_single(snapshot))


def project_snapshot_orthogonal(
    snapshot: Union[Field, NDArray[Any]],
    modes: Union[FieldsLike, NDArray[Any]],
    mesh: Optional[CellMesh] = None,
) -> NDArray[Any]:
    """Orthogonal projection of one snapshot; returns (n_modes,)."""
    return GalerkinProjector(modes, mesh).coefficients_orthogonal(_single(snapshot))
