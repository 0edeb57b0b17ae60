from __future__ import annotations
import pytest

import numpy as np
from rom_fields.mesh import CellMesh
from rom_fields.fields import Field


def _gpu_available() -> bool:
    try:
        import cupy

        return cupy.cuda.runtime.getDeviceCount() > 0
    except Exception:
        return False


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Auto-skip tests marked 'gpu' when no CUDA device is present."""
    if _gpu_available():
        return
    skip_marker = pytest.mark.skip(reason="GPU not available for CuPy.")
    for item in items:
        if "gpu" in item.keywords:
            item.add_marker(skip_marker)


@pytest.fixture(autouse=True)
def rf_cpu():
    """Pin every test to the NumPy backend with default seed and limits."""
    import rom_fields as rf

    with rf.use("cpu", seed=1234, rcond_limit=1e-12):
        yield rf


@pytest.fixture()
def rf_gpu():
    if not _gpu_available():
        pytest.skip("No CUDA device available for CuPy.")
    import rom_fields as rf

    with rf.use("gpu", strict=True):
        yield rf


@pytest.fixture
def grid3x3():
    """
    3x3 grid of unit cells numbered row-major:
        6 7 8
        3 4 5
        0 1 2
    """
    return CellMesh.structured(3, 3)


@pytest.fixture
def graded_mesh():
    """
    1-D chain of 5 cells with unequal volumes, as a hand-built CellMesh:
        0 - 1 - 2 - 3 - 4
    """
    volumes = np.array([0.5, 1.0, 2.0, 1.5, 0.25])
    centroids = np.cumsum(volumes) - 0.5 * volumes
    faces = np.array([[0, 1], [1, 2], [2, 3], [3, 4]])
    return CellMesh(
        volumes=volumes,
        centroids=centroids,
        faces=faces,
        boundary_patches={"inlet": [0], "outlet": [4]},
    )


@pytest.fixture
def random_vector_fields(grid3x3):
    """Four reproducible 3-component fields on the 3x3 grid."""
    gen = np.random.default_rng(7)
    return [
        Field(grid3x3, gen.normal(size=(grid3x3.n_cells, 3)), name=f"U{i}")
        for i in range(4)
    ]
