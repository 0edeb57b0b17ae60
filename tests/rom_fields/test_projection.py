"""Unit tests for the projection engine.

This test suite verifies:
- Self-projection of an orthonormal basis gives unit coefficient vectors
- Galerkin projection round-trips snapshots spanned by the basis
- Orthogonal projection divides by the recomputed mode norms
- Single-snapshot variants return vectors
- Widely scaled orthogonal modes pass the conditioning check
- Singular bases, zero modes and layout mismatches are rejected
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from rom_fields import (
    CellMesh,
    Field,
    FieldSet,
    GalerkinProjector,
    project,
    project_orthogonal,
    project_snapshot,
    project_snapshot_orthogonal,
)
from rom_fields.exceptions import EmptyInputError, NumericalError, ShapeMismatchError
from rom_fields.vectorize import dof_weights, fields_to_matrix


def _weighted_orthonormal(mesh, n_modes, n_components=1, seed=3):
    """Modes orthonormal under the volume-weighted inner product."""
    gen = np.random.default_rng(seed)
    w = dof_weights(mesh, n_components)
    raw = gen.normal(size=(w.shape[0], n_modes))
    q, _ = np.linalg.qr(np.sqrt(w)[:, None] * raw)
    return q / np.sqrt(w)[:, None]


def _as_fields(mesh, phi, n_components=1, name="mode"):
    return [
        Field(mesh, phi[:, j].reshape(mesh.n_cells, n_components), name=f"{name}{j}")
        for j in range(phi.shape[1])
    ]


def test_orthonormal_self_projection_gives_unit_vectors(graded_mesh):
    """Test that projecting an orthonormal basis onto itself gives the identity."""
    phi = _weighted_orthonormal(graded_mesh, 3)
    modes = _as_fields(graded_mesh, phi)
    C = project(modes, modes)
    assert_allclose(C, np.eye(3), atol=1e-12)
    C_ortho = project_orthogonal(modes, modes)
    assert_allclose(C_ortho, np.eye(3), atol=1e-12)


def test_galerkin_roundtrip_when_basis_spans_snapshots(random_vector_fields, grid3x3):
    """
    Test the Galerkin round trip for snapshots spanned by the basis.

    This test ensures that:
    - The coefficients recover the combination matrix A.
    - Reconstruction reproduces the snapshot matrix and its fields.
    """
    modes = random_vector_fields[:3]
    phi = fields_to_matrix(modes)
    A = np.array([[1.0, -2.0], [0.5, 0.0], [3.0, 1.5]])
    S = phi @ A
    snaps = _as_fields(grid3x3, S, n_components=3, name="snap")

    proj = GalerkinProjector(modes)
    C = proj.coefficients(snaps)
    assert C.shape == (3, 2)
    assert_allclose(C, A, atol=1e-10)
    assert_allclose(proj.reconstruct(C), S, atol=1e-10)

    rec = proj.reconstruct_fields(C)
    assert len(rec) == 2
    assert_allclose(rec[1].internal, snaps[1].internal, atol=1e-10)


def test_galerkin_is_weighted_least_squares(graded_mesh):
    """Test that Galerkin coefficients equal the volume-weighted least-squares fit."""
    gen = np.random.default_rng(11)
    phi = gen.normal(size=(5, 2))
    s = gen.normal(size=5)
    w = graded_mesh.volumes
    expected, *_ = np.linalg.lstsq(np.sqrt(w)[:, None] * phi, np.sqrt(w) * s, rcond=None)
    c = project_snapshot(s, phi, graded_mesh)
    assert c.shape == (2,)
    assert_allclose(c, expected, rtol=1e-10)


def test_orthogonal_projection_divides_by_mode_norms(graded_mesh):
    """Test that orthogonal, non-normalized modes are corrected by their squared norms."""
    phi = _weighted_orthonormal(graded_mesh, 3) * np.array([2.0, 0.5, 10.0])
    A = np.array([0.3, -1.0, 2.0])
    s = phi @ A
    c = project_snapshot_orthogonal(s, phi, graded_mesh)
    assert_allclose(c, A, atol=1e-12)
    # Galerkin projection agrees for an orthogonal basis
    assert_allclose(project_snapshot(s, phi, graded_mesh), A, atol=1e-12)


def test_single_field_snapshot_returns_vector(random_vector_fields):
    """Test that a single Field snapshot yields a coefficient vector."""
    proj = GalerkinProjector(FieldSet(random_vector_fields))
    c = proj.coefficients(random_vector_fields[2])
    assert c.shape == (4,)
    assert_allclose(c, [0.0, 0.0, 1.0, 0.0], atol=1e-10)
    assert proj.coefficients_orthogonal(random_vector_fields[2]).shape == (4,)


def test_factorization_is_reused(random_vector_fields):
    proj = GalerkinProjector(random_vector_fields)
    proj.coefficients(random_vector_fields)
    factor = proj._factor
    proj.coefficients(random_vector_fields[0])
    assert proj._factor is factor


def test_dependent_modes_raise_numerical_error(random_vector_fields):
    """Test that a mode duplicated up to scaling makes the mass matrix singular."""
    modes = random_vector_fields[:2] + [random_vector_fields[0] * 2.0]
    with pytest.raises(NumericalError):
        project(random_vector_fields, modes)


def test_zero_mode_orthogonal_raises(grid3x3):
    modes = [Field(grid3x3, np.ones(9)), Field.zeros(grid3x3)]
    with pytest.raises(NumericalError):
        project_orthogonal(modes[0], modes)


def test_layout_mismatches_raise(random_vector_fields, grid3x3):
    """Test rejection of wrong dof counts, component counts, meshes and coefficient shapes."""
    proj = GalerkinProjector(random_vector_fields)
    with pytest.raises(ShapeMismatchError):
        proj.coefficients(np.ones(26))
    with pytest.raises(ShapeMismatchError):
        proj.coefficients(Field.zeros(grid3x3, 1))
    with pytest.raises(ShapeMismatchError):
        proj.coefficients(Field.zeros(CellMesh.structured(3, 3), 3))
    with pytest.raises(ShapeMismatchError):
        proj.reconstruct(np.ones(3))
    with pytest.raises(ShapeMismatchError):
        project_snapshot(np.ones((27, 2)), random_vector_fields)


def test_empty_inputs_raise(random_vector_fields):
    with pytest.raises(EmptyInputError):
        GalerkinProjector([])
    with pytest.raises(EmptyInputError):
        project([], random_vector_fields)


def test_rcond_limit_is_configurable(graded_mesh, rf_cpu):
    """Test that nearly dependent modes pass the default limit but fail a stricter one."""
    phi = np.array([[1.0, 1.0], [0.0, 1e-4], [0.0, 0.0], [0.0, 0.0], [0.0, 0.0]])
    s = phi @ np.array([1.0, 1.0])
    with rf_cpu.use("cpu", rcond_limit=1e-6):
        with pytest.raises(NumericalError):
            project_snapshot(s, phi, graded_mesh)
    assert_allclose(project_snapshot(s, phi, graded_mesh), [1.0, 1.0], rtol=1e-6)


def test_widely_scaled_orthogonal_modes_project(graded_mesh):
    """
    Test that mode scaling alone does not trip the conditioning check.

    This test ensures that:
    - An orthogonal basis with mode norms 1 and 1e-7 is accepted.
    - Galerkin and orthogonal coefficients both recover the combination.
    """
    phi = _weighted_orthonormal(graded_mesh, 2) * np.array([1.0, 1e-7])
    s = phi @ np.array([1.0, 2.0])
    assert_allclose(project_snapshot(s, phi, graded_mesh), [1.0, 2.0], rtol=1e-6)
    assert_allclose(project_snapshot_orthogonal(s, phi, graded_mesh), [1.0, 2.0], rtol=1e-6)


def test_zero_mode_galerkin_raises(grid3x3):
    """Test that a zero-norm mode is rejected before factorization."""
    modes = [Field(grid3x3, np.ones(9)), Field.zeros(grid3x3)]
    with pytest.raises(NumericalError, match="zero norm"):
        project(modes[0], modes)
