"""The rom_fields package provides field utilities for reduced-order modeling.

This package offers:
  - Vectorization of cell fields into snapshot matrices.
  - Volume-weighted mass matrices of reduced bases.
  - Orthogonal and Galerkin (non-orthogonal) projection coefficients.
  - L2 norms, H1 seminorms and relative errors of fields.
  - Breadth-first cell stencils on the mesh adjacency graph.
  - Reproducible uniform sampling of parameter matrices.

Submodules:
  - config: Array backend (NumPy/CuPy), logging and numerical defaults.
  - exceptions: Error types.
  - mesh: CellMesh with volumes, adjacency, patches and gradient.
  - fields: Field and FieldSet.
  - vectorize: Field-to-matrix conversion and dof weights.
  - mass_matrix: Mass matrix assembly.
  - projection: GalerkinProjector and projection functions.
  - norms: Norms and errors.
  - stencil: Cell stencils.
  - sampling: RandomSampler.
"""

from .config import (
    config,
    configure,
    use,
    is_gpu,
    backend_name,
    xp,
    to_cpu,
    to_device,
    set_log_level,
)

from rom_fields.exceptions import (
    DivideByZeroError,
    EmptyInputError,
    IndexOutOfRangeError,
    InvalidArgumentError,
    LengthMismatchError,
    NumericalError,
    RomFieldsError,
    ShapeMismatchError,
)
from rom_fields.mesh import CellMesh
from rom_fields.fields import Field, FieldSet
from rom_fields.vectorize import dof_weights, field_to_vector, fields_to_matrix
from rom_fields.mass_matrix import mass_matrix
from rom_fields.projection import (
    GalerkinProjector,
    project,
    project_orthogonal,
    project_snapshot,
    project_snapshot_orthogonal,
)
from rom_fields.norms import NORM_TOLERANCE, h1_seminorm, l2_norm, list_errors, relative_error
from rom_fields.stencil import cell_stencil
from rom_fields.sampling import RandomSampler, rand, rand_bounded

__all__ = [
    # Core classes
    "CellMesh",
    "Field",
    "FieldSet",
    "GalerkinProjector",
    "RandomSampler",
    # Operations
    "field_to_vector",
    "fields_to_matrix",
    "dof_weights",
    "mass_matrix",
    "project",
    "project_orthogonal",
    "project_snapshot",
    "project_snapshot_orthogonal",
    "l2_norm",
    "h1_seminorm",
    "relative_error",
    "list_errors",
    "NORM_TOLERANCE",
    "cell_stencil",
    "rand",
    "rand_bounded",
    # Errors
    "RomFieldsError",
    "ShapeMismatchError",
    "EmptyInputError",
    "NumericalError",
    "DivideByZeroError",
    "LengthMismatchError",
    "IndexOutOfRangeError",
    "InvalidArgumentError",
    # Configuration and backend
    "config",
    "configure",
    "use",
    "is_gpu",
    "backend_name",
    "xp",
    "to_cpu",
    "to_device",
    "set_log_level",
]
