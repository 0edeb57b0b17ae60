"""Module defining discretized cell fields and ordered field collections.

This module provides:
  - Field: per-cell values with a fixed component count (1 for scalars,
    3 for 3-D vectors) plus optional per-patch boundary values.
  - FieldSet: an ordered, contiguous collection of fields sharing a mesh and
    component count (snapshots or basis modes).

Only the internal (cell) values take part in vectorization, projection and
norms; boundary values are carried for the field contract.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Optional, Sequence, Union
from numpy.typing import NDArray

import numpy as np

from .config import to_cpu
from .exceptions import (
    EmptyInputError,
    IndexOutOfRangeError,
    InvalidArgumentError,
    ShapeMismatchError,
)
from .mesh import CellMesh

_LOGGER = logging.getLogger(__name__)


class Field:
    """A discretized field over the cells of a `CellMesh`.

    Args:
        mesh (CellMesh): Owning mesh.
        values (NDArray[Any]): Internal values, shape (n_cells,) for a scalar
            field or (n_cells, c) for a c-component field.
        name (str): Field name, used on export.
        boundary (Optional[Dict[str, NDArray[Any]]]): Patch name to face
            values, each of shape (n_patch_faces, c).

    Attributes:
        mesh (CellMesh): Owning mesh.
        name (str): Field name.
        internal (NDArray[Any]): Internal values, shape (n_cells, c).
        boundary (Dict[str, NDArray[Any]]): Patch name to face values.
    """

    mesh: CellMesh
    name: str
    internal: NDArray[Any]
    boundary: Dict[str, NDArray[Any]]

    def __init__(
        self,
        mesh: CellMesh,
        values: NDArray[Any],
        name: str = "field",
        boundary: Optional[Dict[str, NDArray[Any]]] = None,
    ) -> None:
        vals = np.array(to_cpu(values), dtype=float)
        if vals.ndim == 1:
            vals = vals[:, None]
        if vals.ndim != 2 or vals.shape[0] != mesh.n_cells or vals.shape[1] < 1:
            msg = (
                f"field '{name}' values must be (n_cells, c) with "
                f"n_cells={mesh.n_cells}; got {np.shape(values)}"
            )
            _LOGGER.error("Field: %s", msg)
            raise ShapeMismatchError(msg)

        self.mesh = mesh
        self.name = name
        self.internal = vals
        self.boundary = {}
        for patch, patch_vals in (boundary or {}).items():
            self.assign_boundary(patch, patch_vals)

    @classmethod
    def zeros(cls, mesh: CellMesh, n_components: int = 1, name: str = "field") -> Field:
        """Create a field of zeros with `n_components` components per cell."""
        if n_components < 1:
            raise InvalidArgumentError(f"n_components must be >= 1; got {n_components}")
        return cls(mesh, np.zeros((mesh.n_cells, n_components)), name=name)

    @property
    def n_components(self) -> int:
        """Number of components per cell (1 scalar, 3 vector)."""
        return int(self.internal.shape[1])

    @property
    def is_scalar(self) -> bool:
        return self.n_components == 1

    @property
    def n_dofs(self) -> int:
        """Number of degrees of freedom (n_cells * n_components)."""
        return int(self.internal.size)

    def value(self, cell: int) -> NDArray[Any]:
        """Return the c-component value of `cell`."""
        return self.internal[self.mesh.check_cell(cell)]

    def copy(self, name: Optional[str] = None) -> Field:
        return Field(
            self.mesh,
            self.internal,
            name=self.name if name is None else name,
            boundary={k: v.copy() for k, v in self.boundary.items()},
        )

    def check_compatible(self, other: Field) -> None:
        """Raise ShapeMismatchError unless `other` shares mesh and components."""
        if other.mesh is not self.mesh:
            _LOGGER.error(
                "fields '%s' and '%s' live on different meshes", self.name, other.name
            )
            raise ShapeMismatchError(
                f"fields '{self.name}' and '{other.name}' live on different meshes"
            )
        if other.n_components != self.n_components:
            _LOGGER.error(
                "fields '%s' (c=%d) and '%s' (c=%d) differ in component count",
                self.name,
                self.n_components,
                other.name,
                other.n_components,
            )
            raise ShapeMismatchError(
                f"fields '{self.name}' and '{other.name}' differ in component count "
                f"({self.n_components} != {other.n_components})"
            )

    # ------------------------------------------------------------------
    # Arithmetic (internal values only)
    # ------------------------------------------------------------------
    def __add__(self, other: Field) -> Field:
        self.check_compatible(other)
        return Field(self.mesh, self.internal + other.internal, name=self.name)

    def __sub__(self, other: Field) -> Field:
        self.check_compatible(other)
        return Field(self.mesh, self.internal - other.internal, name=self.name)

    def __mul__(self, scalar: float) -> Field:
        return Field(self.mesh, self.internal * float(scalar), name=self.name)

    __rmul__ = __mul__

    def __neg__(self) -> Field:
        return Field(self.mesh, -self.internal, name=self.name)

    def __repr__(self) -> str:
        return (
            f"Field(name={self.name!r}, n_cells={self.mesh.n_cells}, "
            f"n_components={self.n_components})"
        )

    # ------------------------------------------------------------------
    # Value assignment
    # ------------------------------------------------------------------
    def assign_internal(self, value: Union[float, Sequence[float]]) -> None:
        """Set every internal value to `value` (scalar or c-vector)."""
        val = np.asarray(value, dtype=float).ravel()
        if val.size not in (1, self.n_components):
            raise ShapeMismatchError(
                f"value has {val.size} components; field has {self.n_components}"
            )
        self.internal[:] = val[None, :]

    def assign_one(self, cells: Sequence[int]) -> None:
        """Set the listed cells of a scalar field to one."""
        if not self.is_scalar:
            raise ShapeMismatchError("assign_one is only defined for scalar fields")
        idx = [self.mesh.check_cell(c) for c in cells]
        self.internal[idx, 0] = 1.0

    def assign_boundary(self, patch: str, value: Any) -> None:
        """Set the face values of boundary `patch`.

        Args:
            patch: Patch name; must exist on the mesh.
            value: Uniform value (scalar or c-vector) or per-face values of
                shape (n_patch_faces, c); scalar fields also accept
                (n_patch_faces,).
        """
        if patch not in self.mesh.boundary_patches:
            _LOGGER.error("assign_boundary: unknown patch '%s'", patch)
            raise KeyError(f"unknown boundary patch '{patch}'")
        n_faces = self.mesh.boundary_patches[patch].shape[0]
        c = self.n_components
        val = np.asarray(to_cpu(value), dtype=float)

        if val.size == 1 or (c > 1 and val.shape == (c,)):
            out = np.broadcast_to(val.reshape(1, -1), (n_faces, c)).copy()
        elif val.shape == (n_faces, c) or (c == 1 and val.shape == (n_faces,)):
            out = val.reshape(n_faces, c).copy()
        else:
            msg = (
                f"boundary value for patch '{patch}' has shape {val.shape}; "
                f"expected scalar, ({c},) or ({n_faces}, {c})"
            )
            _LOGGER.error("assign_boundary: %s", msg)
            raise ShapeMismatchError(msg)
        self.boundary[patch] = out
        _LOGGER.debug(
            "assign_boundary: field '%s' patch '%s' (%d faces)", self.name, patch, n_faces
        )

    def set_box_to_value(self, box: NDArray[Any], value: float) -> int:
        """Set scalar values of cells whose centroid lies inside a box.

        Args:
            box: Shape (2, dim); row 0 and row 1 are two opposite corners.
            value: Value to assign.

        Returns:
            int: Number of cells assigned.
        """
        if not self.is_scalar:
            raise ShapeMismatchError("set_box_to_value is only defined for scalar fields")
        b = np.asarray(box, dtype=float)
        if b.shape != (2, self.mesh.dim):
            raise ShapeMismatchError(
                f"box must have shape (2, {self.mesh.dim}); got {b.shape}"
            )
        lo, hi = b.min(axis=0), b.max(axis=0)
        cents = self.mesh.centroids
        inside = np.all((cents >= lo) & (cents <= hi), axis=1)
        self.internal[inside, 0] = float(value)
        count = int(np.count_nonzero(inside))
        _LOGGER.debug("set_box_to_value: %d cells set to %g", count, value)
        return count


class FieldSet:
    """Ordered, contiguous collection of fields (snapshots or modes).

    All fields share one mesh and one component count. Values are stored in a
    single array of shape (n_fields, n_cells, c); `Field` objects returned by
    indexing are views onto that storage.

    Args:
        fields (Sequence[Field]): Fields to collect, in order.

    Raises:
        EmptyInputError: If `fields` is empty.
        ShapeMismatchError: If meshes or component counts differ.
    """

    mesh: CellMesh
    data: NDArray[Any]
    names: List[str]

    def __init__(self, fields: Sequence[Field]) -> None:
        fields = list(fields)
        if not fields:
            raise EmptyInputError("FieldSet requires at least one field")
        first = fields[0]
        for f in fields[1:]:
            first.check_compatible(f)

        self.mesh = first.mesh
        self.data = np.stack([f.internal for f in fields])
        self.names = [f.name for f in fields]
        _LOGGER.debug(
            "FieldSet: %d fields x %d cells x %d components",
            *self.data.shape,
        )

    @classmethod
    def from_array(
        cls,
        mesh: CellMesh,
        data: NDArray[Any],
        name: str = "field",
    ) -> FieldSet:
        """Wrap an array of shape (n_fields, n_cells[, c]) without copying fields one by one."""
        arr = np.asarray(to_cpu(data), dtype=float)
        if arr.ndim == 2:
            arr = arr[:, :, None]
        if arr.ndim != 3 or arr.shape[0] == 0:
            raise EmptyInputError(f"expected (n_fields, n_cells[, c]); got {arr.shape}")
        return cls([Field(mesh, arr[i], name=f"{name}{i}") for i in range(arr.shape[0])])

    @property
    def n_components(self) -> int:
        return int(self.data.shape[2])

    def __len__(self) -> int:
        return int(self.data.shape[0])

    def __getitem__(self, index: int) -> Field:
        n = len(self)
        if not -n <= index < n:
            raise IndexOutOfRangeError(f"field index {index} out of range [0, {n})")
        f = Field.__new__(Field)
        f.mesh = self.mesh
        f.name = self.names[index]
        f.internal = self.data[index]
        f.boundary = {}
        return f

    def __iter__(self) -> Iterator[Field]:
        for i in range(len(self)):
            yield self[i]

    def __repr__(self) -> str:
        return (
            f"FieldSet(n_fields={len(self)}, n_cells={self.mesh.n_cells}, "
            f"n_components={self.n_components})"
        )
