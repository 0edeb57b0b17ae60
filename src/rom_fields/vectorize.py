"""Flatten discretized fields into dense column vectors and matrices.

Within a column, values are ordered by cell id with the components of each
cell stored contiguously (cell 0's c components, then cell 1's, ...). The
same layout is used for the per-dof volume weights, so vectorized fields,
weights, mass matrices and projections always agree.
"""
from __future__ import annotations

import logging
from typing import Any, Sequence, Tuple, Union
from numpy.typing import NDArray

import numpy as np

from .exceptions import EmptyInputError, ShapeMismatchError
from .fields import Field, FieldSet
from .mesh import CellMesh

_LOGGER = logging.getLogger(__name__)

FieldsLike = Union[Field, FieldSet, Sequence[Field]]


def field_to_vector(field: Field) -> NDArray[Any]:
    """Return the internal values of `field` as a vector of length n_cells*c."""
    return np.ascontiguousarray(field.internal).reshape(-1).copy()


def as_field_set(fields: FieldsLike) -> FieldSet:
    """Normalize a Field, FieldSet or sequence of Fields to a FieldSet."""
    if isinstance(fields, FieldSet):
        return fields
    if isinstance(fields, Field):
        return FieldSet([fields])
    return FieldSet(fields)


def fields_to_matrix(fields: FieldsLike) -> NDArray[Any]:
    """Stack fields as the columns of a dense matrix.

    Args:
        fields: A single Field, a FieldSet or an ordered sequence of Fields
            sharing one mesh and component count.

    Returns:
        NDArray[Any]: Matrix of shape (n_cells*c, n_fields).

    Raises:
        EmptyInputError: If no field is given.
        ShapeMismatchError: If meshes or component counts differ.
    """
    fs = as_field_set(fields)
    n_fields = len(fs)
    # (n_fields, n_cells, c) -> (n_fields, n_cells*c) -> columns
    mat = fs.data.reshape(n_fields, -1).T.copy()
    _LOGGER.debug(
        "fields_to_matrix: %d fields -> matrix %s (c=%d)",
        n_fields,
        mat.shape,
        fs.n_components,
    )
    return mat


def dof_weights(mesh: CellMesh, n_components: int = 1) -> NDArray[Any]:
    """Return per-dof volume weights: each cell volume repeated c times."""
    if n_components < 1:
        raise ShapeMismatchError(f"n_components must be >= 1; got {n_components}")
    return np.repeat(mesh.volumes, n_components)


def vectorized_basis(
    modes: Union[FieldsLike, NDArray[Any]],
    mesh: CellMesh | None = None,
    n_components: int | None = None,
) -> Tuple[NDArray[Any], CellMesh, int]:
    """Return ``(Phi, mesh, c)`` for modes given as fields or as a matrix.

    When `modes` is an array it must be (dof, n_modes) (a 1-D array is one
    mode) and `mesh` is required; the component count is inferred as
    ``dof // n_cells`` unless given.
    """
    if isinstance(modes, np.ndarray):
        if mesh is None:
            raise ShapeMismatchError("a mesh is required for pre-vectorized modes")
        phi = np.asarray(modes, dtype=float)
        if phi.ndim == 1:
            phi = phi[:, None]
        if phi.ndim != 2 or phi.shape[1] == 0:
            raise EmptyInputError(f"expected a (dof, n_modes) matrix; got {modes.shape}")
        c = n_components if n_components is not None else phi.shape[0] // mesh.n_cells
        if c < 1 or phi.shape[0] != mesh.n_cells * c:
            msg = (
                f"modes have {phi.shape[0]} dofs; mesh has {mesh.n_cells} cells "
                f"(n_components={n_components})"
            )
            _LOGGER.error("vectorized_basis: %s", msg)
            raise ShapeMismatchError(msg)
        return phi, mesh, int(c)

    fs = as_field_set(modes)
    if mesh is not None and mesh is not fs.mesh:
        raise ShapeMismatchError("modes do not live on the given mesh")
    if n_components is not None and n_components != fs.n_components:
        raise ShapeMismatchError(
            f"modes have {fs.n_components} components; expected {n_components}"
        )
    return fields_to_matrix(fs), fs.mesh, fs.n_components
