"""Unit tests for field vectorization.

This test suite verifies:
- Scalar and vector fields flatten to independent copies
- Vector components are interleaved by cell
- Field collections become the columns of a snapshot matrix
- Per-dof volume weights
- Normalization of pre-vectorized bases
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from rom_fields import CellMesh, Field, FieldSet
from rom_fields.exceptions import EmptyInputError, ShapeMismatchError
from rom_fields.vectorize import (
    dof_weights,
    field_to_vector,
    fields_to_matrix,
    vectorized_basis,
)


def test_scalar_field_to_vector(grid3x3):
    """Test that a scalar field flattens to a copy of its values."""
    T = Field(grid3x3, np.arange(9.0))
    v = field_to_vector(T)
    assert v.shape == (9,)
    assert_allclose(v, np.arange(9.0))
    v[0] = 100.0
    assert T.internal[0, 0] == 0.0


def test_vector_layout_is_interleaved_by_cell(grid3x3):
    """Test that cell 0's components come first, then cell 1's."""
    vals = np.arange(27.0).reshape(9, 3)
    U = Field(grid3x3, vals)
    v = field_to_vector(U)
    # cell 0 (x, y, z), then cell 1 (x, y, z), ...
    assert_allclose(v[:6], [0.0, 1.0, 2.0, 3.0, 4.0, 5.0])


def test_fields_to_matrix_columns(random_vector_fields):
    M = fields_to_matrix(random_vector_fields)
    assert M.shape == (27, 4)
    for j, f in enumerate(random_vector_fields):
        assert_allclose(M[:, j], field_to_vector(f))
    assert_allclose(fields_to_matrix(FieldSet(random_vector_fields)), M)
    assert fields_to_matrix(random_vector_fields[0]).shape == (27, 1)


def test_fields_to_matrix_failures(grid3x3, random_vector_fields):
    """Test that empty input, mixed component counts and mixed meshes are rejected."""
    with pytest.raises(EmptyInputError):
        fields_to_matrix([])
    with pytest.raises(ShapeMismatchError):
        fields_to_matrix([random_vector_fields[0], Field.zeros(grid3x3)])
    other = CellMesh.structured(3, 3)
    with pytest.raises(ShapeMismatchError):
        fields_to_matrix([Field.zeros(grid3x3), Field.zeros(other)])


def test_dof_weights(graded_mesh):
    assert_allclose(dof_weights(graded_mesh), graded_mesh.volumes)
    w = dof_weights(graded_mesh, 3)
    assert w.shape == (15,)
    assert_allclose(w[:6], [0.5, 0.5, 0.5, 1.0, 1.0, 1.0])


def test_vectorized_basis_from_matrix(grid3x3):
    """
    Test pre-vectorized bases.

    This test ensures that:
    - The component count is inferred from the dof count.
    - A 1-D array is one mode.
    - Missing meshes and inconsistent sizes are rejected.
    """
    phi, mesh, c = vectorized_basis(np.ones((27, 2)), grid3x3)
    assert mesh is grid3x3 and c == 3 and phi.shape == (27, 2)
    _, _, c1 = vectorized_basis(np.ones(9), grid3x3)
    assert c1 == 1
    with pytest.raises(ShapeMismatchError):
        vectorized_basis(np.ones((10, 2)), grid3x3)
    with pytest.raises(ShapeMismatchError):
        vectorized_basis(np.ones((27, 2)))
    with pytest.raises(ShapeMismatchError):
        vectorized_basis(np.ones((27, 2)), grid3x3, n_components=1)
