"""Module defining the CellMesh class for unstructured finite-volume meshes.

This module provides:
  - Construction from cell volumes, centroids and internal-face pairs.
  - Construction from a meshio mesh or a structured Cartesian block.
  - Face-adjacency (cell-to-cell) connectivity as a sparse CSR graph.
  - Named boundary patches.
  - A cell-centred least-squares gradient operator.
  - KD-tree nearest-cell queries and VTU export of cell fields.

The mesh is read-only once built; every rom_fields operation treats it as an
immutable collaborator.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
from numpy.typing import NDArray

import numpy as np
import meshio
import scipy.sparse as sp
from scipy.spatial import cKDTree

from .config import backend_name, to_cpu
from .exceptions import IndexOutOfRangeError, ShapeMismatchError

_LOGGER = logging.getLogger(__name__)

# Topological dimension of the supported meshio cell types.
_CELL_DIMS: Dict[str, int] = {
    "triangle": 2,
    "quad": 2,
    "tetra": 3,
    "hexahedron": 3,
}

# Local vertex lists of the faces of each cell type (edges in 2-D).
_CELL_FACES: Dict[str, Tuple[Tuple[int, ...], ...]] = {
    "triangle": ((0, 1), (1, 2), (2, 0)),
    "quad": ((0, 1), (1, 2), (2, 3), (3, 0)),
    "tetra": ((0, 1, 2), (0, 1, 3), (1, 2, 3), (0, 2, 3)),
    "hexahedron": (
        (0, 1, 2, 3),
        (4, 5, 6, 7),
        (0, 1, 5, 4),
        (1, 2, 6, 5),
        (2, 3, 7, 6),
        (3, 0, 4, 7),
    ),
}

# Six tetrahedra sharing the 0-6 diagonal of a VTK-ordered hexahedron.
_HEX_TETS = np.array(
    [[0, 6, 1, 2], [0, 6, 2, 3], [0, 6, 3, 7], [0, 6, 7, 4], [0, 6, 4, 5], [0, 6, 5, 1]],
    dtype=int,
)


def _triangle_areas(a: NDArray[Any], b: NDArray[Any], c: NDArray[Any]) -> NDArray[Any]:
    return 0.5 * np.linalg.norm(np.cross(b - a, c - a), axis=1)


def _tetra_volumes(
    a: NDArray[Any], b: NDArray[Any], c: NDArray[Any], d: NDArray[Any]
) -> NDArray[Any]:
    return np.abs(np.einsum("ij,ij->i", b - a, np.cross(c - a, d - a))) / 6.0


def _block_volumes(cell_type: str, pts: NDArray[Any], con: NDArray[Any]) -> NDArray[Any]:
    """Return the measure (area or volume) of every cell in one meshio block."""
    if cell_type == "triangle":
        return _triangle_areas(pts[con[:, 0]], pts[con[:, 1]], pts[con[:, 2]])
    if cell_type == "quad":
        return _triangle_areas(
            pts[con[:, 0]], pts[con[:, 1]], pts[con[:, 2]]
        ) + _triangle_areas(pts[con[:, 0]], pts[con[:, 2]], pts[con[:, 3]])
    if cell_type == "tetra":
        return _tetra_volumes(
            pts[con[:, 0]], pts[con[:, 1]], pts[con[:, 2]], pts[con[:, 3]]
        )
    # hexahedron
    vols = np.zeros(con.shape[0], dtype=float)
    for tet in _HEX_TETS:
        vols += _tetra_volumes(
            pts[con[:, tet[0]]],
            pts[con[:, tet[1]]],
            pts[con[:, tet[2]]],
            pts[con[:, tet[3]]],
        )
    return vols


class CellMesh:
    """Read-only cell-centred mesh: volumes, centroids, adjacency and patches.

    Cells are identified by integers ``0..n_cells-1``. Two cells are adjacent
    when they share an internal face. Boundary patches map a patch name to the
    ids of the cells owning the patch faces (one entry per face, so a cell may
    appear more than once in a patch).

    Args:
        volumes (NDArray[Any]): Cell volumes, shape (n_cells,). Must be > 0.
        centroids (NDArray[Any]): Cell centroids, shape (n_cells, dim).
        faces (Optional[NDArray[Any]]): Internal faces as (owner, neighbour)
            pairs, shape (n_faces, 2).
        boundary_patches (Optional[Mapping[str, Sequence[int]]]): Patch name
            to face-cell ids.
        points (Optional[NDArray[Any]]): Vertex coordinates, only needed for
            `write_vtu`.
        cells (Optional[List[Tuple[str, NDArray[Any]]]]): meshio-style cell
            blocks matching the cell ordering, only needed for `write_vtu`.

    Attributes:
        volumes (NDArray[Any]): Cell volumes, shape (n_cells,).
        centroids (NDArray[Any]): Cell centroids, shape (n_cells, dim).
        faces (NDArray[Any]): Internal face pairs, shape (n_faces, 2).
        adjacency (sp.csr_matrix): Symmetric cell-to-cell graph; column indices
            of each row are sorted ascending.
        boundary_patches (Dict[str, NDArray[Any]]): Patch name to face-cells.

    Raises:
        ValueError: If volumes/centroids are malformed or non-positive.
        IndexOutOfRangeError: If a face or patch references an unknown cell.
    """

    volumes: NDArray[Any]
    centroids: NDArray[Any]
    faces: NDArray[Any]
    adjacency: sp.csr_matrix
    boundary_patches: Dict[str, NDArray[Any]]
    points: Optional[NDArray[Any]]
    cells: Optional[List[Tuple[str, NDArray[Any]]]]

    def __init__(
        self,
        volumes: NDArray[Any],
        centroids: NDArray[Any],
        faces: Optional[NDArray[Any]] = None,
        boundary_patches: Optional[Mapping[str, Sequence[int]]] = None,
        points: Optional[NDArray[Any]] = None,
        cells: Optional[List[Tuple[str, NDArray[Any]]]] = None,
    ) -> None:
        vols = np.array(to_cpu(volumes), dtype=float)
        if vols.ndim != 1 or vols.shape[0] == 0:
            raise ValueError(f"volumes must be a non-empty 1-D array; got {vols.shape}")
        if not np.all(np.isfinite(vols)) or np.any(vols <= 0.0):
            _LOGGER.error("CellMesh: non-positive or non-finite cell volumes.")
            raise ValueError("Cell volumes must be finite and strictly positive.")
        n_cells = int(vols.shape[0])

        cents = np.array(to_cpu(centroids), dtype=float)
        if cents.ndim == 1:
            cents = cents[:, None]
        if cents.shape[0] != n_cells:
            msg = f"centroids has {cents.shape[0]} rows != n_cells {n_cells}"
            _LOGGER.error("CellMesh: %s", msg)
            raise ShapeMismatchError(msg)

        if faces is None:
            face_arr = np.zeros((0, 2), dtype=int)
        else:
            face_arr = np.array(to_cpu(faces), dtype=int).reshape(-1, 2)
        if face_arr.size and ((face_arr < 0).any() or (face_arr >= n_cells).any()):
            _LOGGER.error("CellMesh: faces reference out-of-range cells.")
            raise IndexOutOfRangeError("Faces contain out-of-range cell ids.")
        if np.any(face_arr[:, 0] == face_arr[:, 1]):
            raise ValueError("Faces must connect two distinct cells.")

        # Symmetric 0/1 adjacency; duplicate faces collapse to one edge.
        rows = np.concatenate([face_arr[:, 0], face_arr[:, 1]])
        cols = np.concatenate([face_arr[:, 1], face_arr[:, 0]])
        adj = sp.coo_matrix(
            (np.ones(rows.shape[0], dtype=np.int8), (rows, cols)),
            shape=(n_cells, n_cells),
        ).tocsr()
        adj.sum_duplicates()
        adj.sort_indices()
        adj.data[:] = 1

        patches: Dict[str, NDArray[Any]] = {}
        for name, ids in (boundary_patches or {}).items():
            arr = np.array(ids, dtype=int).ravel()
            if arr.size and ((arr < 0).any() or (arr >= n_cells).any()):
                _LOGGER.error("CellMesh: patch '%s' has out-of-range cells.", name)
                raise IndexOutOfRangeError(
                    f"Boundary patch '{name}' contains out-of-range cell ids."
                )
            arr.setflags(write=False)
            patches[str(name)] = arr

        for arr in (vols, cents, face_arr):
            arr.setflags(write=False)

        self.volumes = vols
        self.centroids = cents
        self.faces = face_arr
        self.adjacency = adj
        self.boundary_patches = patches
        self.points = None if points is None else np.asarray(points, dtype=float)
        self.cells = cells
        self._tree: Optional[cKDTree] = None
        self._grad_op: Optional[sp.csr_matrix] = None

        _LOGGER.info(
            "CellMesh initialized with %d cells, %d internal faces and %d patches",
            n_cells,
            face_arr.shape[0],
            len(patches),
        )

    # ------------------------------------------------------------------
    # Alternative constructors
    # ------------------------------------------------------------------
    @classmethod
    def from_meshio(cls, mesh: meshio.Mesh) -> CellMesh:
        """Build a CellMesh from a meshio mesh.

        Only the cell blocks of the highest topological dimension are used
        (lower-dimensional blocks such as boundary triangles of a tetrahedral
        mesh are ignored). Faces shared by two cells become internal faces;
        faces owned by a single cell form the ``"boundary"`` patch.

        Args:
            mesh (meshio.Mesh): Mesh with triangle, quad, tetra or hexahedron
                cells.

        Returns:
            CellMesh: The cell mesh, exportable with `write_vtu`.

        Raises:
            ValueError: If the mesh has no supported cell block.
        """
        pts = np.asarray(mesh.points, dtype=float)
        if pts.ndim != 2 or pts.shape[1] not in (2, 3):
            raise ValueError(f"points must be (n_points, 2|3); got {pts.shape}")
        if pts.shape[1] == 2:
            pts = np.hstack([pts, np.zeros((pts.shape[0], 1))])

        blocks = [(b.type, np.asarray(b.data, dtype=int)) for b in mesh.cells]
        dims = [_CELL_DIMS[t] for t, _ in blocks if t in _CELL_DIMS]
        if not dims:
            raise ValueError(
                "from_meshio: no supported cell block "
                f"(expected one of {sorted(_CELL_DIMS)})."
            )
        tdim = max(dims)
        used: List[Tuple[str, NDArray[Any]]] = []
        for cell_type, con in blocks:
            if _CELL_DIMS.get(cell_type) == tdim:
                used.append((cell_type, con))
            else:
                _LOGGER.debug(
                    "from_meshio: ignoring block '%s' (%d cells)", cell_type, len(con)
                )

        volumes: List[NDArray[Any]] = []
        centroids: List[NDArray[Any]] = []
        face_owner: Dict[Tuple[int, ...], List[int]] = {}
        offset = 0
        for cell_type, con in used:
            volumes.append(_block_volumes(cell_type, pts, con))
            centroids.append(pts[con].mean(axis=1))
            for local_idx in range(con.shape[0]):
                cell_id = offset + local_idx
                for face in _CELL_FACES[cell_type]:
                    key = tuple(sorted(int(con[local_idx, v]) for v in face))
                    face_owner.setdefault(key, []).append(cell_id)
            offset += con.shape[0]

        internal: List[Tuple[int, int]] = []
        boundary: List[int] = []
        nonmanifold = 0
        for owners in face_owner.values():
            if len(owners) == 1:
                boundary.append(owners[0])
            elif len(owners) == 2:
                internal.append((owners[0], owners[1]))
            else:
                nonmanifold += 1

        if nonmanifold:
            _LOGGER.warning(
                "from_meshio: %d non-manifold face(s) (shared by >2 cells) ignored.",
                nonmanifold,
            )

        _LOGGER.debug(
            "from_meshio: cells=%d internal_faces=%d boundary_faces=%d (tdim=%d)",
            offset,
            len(internal),
            len(boundary),
            tdim,
        )

        return cls(
            volumes=np.concatenate(volumes),
            centroids=np.vstack(centroids),
            faces=np.asarray(internal, dtype=int).reshape(-1, 2),
            boundary_patches={"boundary": boundary},
            points=pts,
            cells=used,
        )

    @classmethod
    def structured(
        cls,
        nx: int,
        ny: int,
        nz: int = 1,
        spacing: Sequence[float] = (1.0, 1.0, 1.0),
    ) -> CellMesh:
        """Build a Cartesian block of hexahedral cells.

        Cells are numbered row-major: ``id = i + nx * (j + ny * k)``. Patches
        are ``left``/``right`` (x), ``bottom``/``top`` (y) and, when
        ``nz > 1``, ``back``/``front`` (z).

        Args:
            nx (int): Cells along x.
            ny (int): Cells along y.
            nz (int): Cells along z.
            spacing (Sequence[float]): Cell size (dx, dy, dz).

        Returns:
            CellMesh: The structured mesh, exportable with `write_vtu`.
        """
        if min(nx, ny, nz) < 1:
            raise ValueError(f"grid sizes must be >= 1; got {(nx, ny, nz)}")
        dx, dy, dz = (float(s) for s in spacing)
        if min(dx, dy, dz) <= 0.0:
            raise ValueError(f"spacing must be > 0; got {tuple(spacing)}")

        k, j, i = np.meshgrid(np.arange(nz), np.arange(ny), np.arange(nx), indexing="ij")
        i, j, k = i.ravel(), j.ravel(), k.ravel()
        ids = i + nx * (j + ny * k)
        n_cells = nx * ny * nz

        centroids = np.empty((n_cells, 3), dtype=float)
        centroids[ids] = np.column_stack(
            [(i + 0.5) * dx, (j + 0.5) * dy, (k + 0.5) * dz]
        )
        volumes = np.full(n_cells, dx * dy * dz, dtype=float)

        faces: List[NDArray[Any]] = []
        for mask, step in ((i < nx - 1, 1), (j < ny - 1, nx), (k < nz - 1, nx * ny)):
            owners = ids[mask]
            faces.append(np.column_stack([owners, owners + step]))

        patches: Dict[str, NDArray[Any]] = {
            "left": np.sort(ids[i == 0]),
            "right": np.sort(ids[i == nx - 1]),
            "bottom": np.sort(ids[j == 0]),
            "top": np.sort(ids[j == ny - 1]),
        }
        if nz > 1:
            patches["back"] = np.sort(ids[k == 0])
            patches["front"] = np.sort(ids[k == nz - 1])

        # Vertex grid and VTK-ordered hexahedra for export.
        px, py, pz = nx + 1, ny + 1, nz + 1
        pk, pj, pi = np.meshgrid(np.arange(pz), np.arange(py), np.arange(px), indexing="ij")
        points = np.column_stack([pi.ravel() * dx, pj.ravel() * dy, pk.ravel() * dz])

        def vid(ii: NDArray[Any], jj: NDArray[Any], kk: NDArray[Any]) -> NDArray[Any]:
            return ii + px * (jj + py * kk)

        order = np.argsort(ids)
        ci, cj, ck = i[order], j[order], k[order]
        hexes = np.column_stack(
            [
                vid(ci, cj, ck),
                vid(ci + 1, cj, ck),
                vid(ci + 1, cj + 1, ck),
                vid(ci, cj + 1, ck),
                vid(ci, cj, ck + 1),
                vid(ci + 1, cj, ck + 1),
                vid(ci + 1, cj + 1, ck + 1),
                vid(ci, cj + 1, ck + 1),
            ]
        )

        return cls(
            volumes=volumes,
            centroids=centroids,
            faces=np.vstack(faces),
            boundary_patches=patches,
            points=points,
            cells=[("hexahedron", hexes)],
        )

    # ------------------------------------------------------------------
    # Topology queries
    # ------------------------------------------------------------------
    @property
    def n_cells(self) -> int:
        """Number of cells."""
        return int(self.volumes.shape[0])

    @property
    def dim(self) -> int:
        """Spatial dimension of the centroids."""
        return int(self.centroids.shape[1])

    def check_cell(self, cell: int) -> int:
        """Validate a cell id and return it as a Python int.

        Raises:
            IndexOutOfRangeError: If `cell` is not an integer id in ``[0, n_cells)``.
        """
        idx = -1
        if not isinstance(cell, (bool, np.bool_)):
            try:
                idx = int(cell)
            except (TypeError, ValueError, OverflowError):
                idx = -1
            else:
                if idx != cell:
                    idx = -1
        if idx < 0 or idx >= self.n_cells:
            _LOGGER.error("cell id %r out of range [0, %d)", cell, self.n_cells)
            raise IndexOutOfRangeError(
                f"cell id {cell!r} out of range [0, {self.n_cells})"
            )
        return idx

    def neighbours(self, cell: int) -> NDArray[Any]:
        """Return the face neighbours of `cell`, sorted by id."""
        idx = self.check_cell(cell)
        start, stop = self.adjacency.indptr[idx], self.adjacency.indptr[idx + 1]
        return self.adjacency.indices[start:stop]

    def nearest_cell(self, point: NDArray[Any]) -> int:
        """Return the id of the cell whose centroid is closest to `point`.

        Args:
            point (NDArray[Any]): Coordinates, length `dim`.

        Returns:
            int: Nearest cell id.
        """
        p = np.asarray(to_cpu(point), dtype=float).ravel()
        if p.shape[0] != self.dim:
            raise ShapeMismatchError(
                f"point has {p.shape[0]} coordinates; mesh dim is {self.dim}"
            )
        if self._tree is None:
            # KD-tree stays CPU (SciPy)
            self._tree = cKDTree(self.centroids)
            _LOGGER.debug("nearest_cell: built KD-tree over %d centroids", self.n_cells)
        dist, idx = self._tree.query(p)
        _LOGGER.debug("nearest_cell(%s) -> %d (dist=%.6g)", p.tolist(), int(idx), dist)
        return int(idx)

    # ------------------------------------------------------------------
    # Discrete gradient
    # ------------------------------------------------------------------
    @property
    def gradient_operator(self) -> sp.csr_matrix:
        """Sparse least-squares gradient operator, shape (n_cells*dim, n_cells).

        Row ``i*dim + d`` gives the d-th gradient component in cell i as a
        combination of cell values. Exact for linear fields whenever the
        neighbour offsets of a cell span the space; directions without any
        neighbour offset get a zero component.
        """
        if self._grad_op is None:
            self._grad_op = self._assemble_gradient()
        return self._grad_op

    def _assemble_gradient(self) -> sp.csr_matrix:
        n, dim = self.n_cells, self.dim
        owner = self.faces[:, 0]
        neigh = self.faces[:, 1]
        d = self.centroids[neigh] - self.centroids[owner]  # (n_faces, dim)

        # Per-cell normal matrices sum(d d^T), counted from both sides.
        dd = np.einsum("fi,fj->fij", d, d)
        normal = np.zeros((n, dim, dim), dtype=float)
        np.add.at(normal, owner, dd)
        np.add.at(normal, neigh, dd)
        normal_inv = np.linalg.pinv(normal)

        w_owner = np.einsum("fij,fj->fi", normal_inv[owner], d)  # owner -> neigh
        w_neigh = np.einsum("fij,fj->fi", normal_inv[neigh], -d)  # neigh -> owner

        comp = np.arange(dim)
        rows: List[NDArray[Any]] = []
        cols: List[NDArray[Any]] = []
        data: List[NDArray[Any]] = []
        for cell, other, w in ((owner, neigh, w_owner), (neigh, owner, w_neigh)):
            r = (cell[:, None] * dim + comp[None, :]).ravel()
            rows.extend([r, r])
            cols.extend([np.repeat(other, dim), np.repeat(cell, dim)])
            data.extend([w.ravel(), -w.ravel()])

        G = sp.coo_matrix(
            (np.concatenate(data), (np.concatenate(rows), np.concatenate(cols))),
            shape=(n * dim, n),
            dtype=float,
        ).tocsr()

        _LOGGER.debug(
            "gradient_operator: assembled (cells=%d, dim=%d, nnz=%d)",
            n,
            dim,
            G.nnz,
        )
        return G

    def gradient(self, values: NDArray[Any]) -> NDArray[Any]:
        """Apply the discrete gradient to cell values.

        Args:
            values (NDArray[Any]): Cell values, shape (n_cells,) or
                (n_cells, c).

        Returns:
            NDArray[Any]: Gradient, shape (n_cells, c, dim).
        """
        vals = np.asarray(to_cpu(values), dtype=float)
        if vals.ndim == 1:
            vals = vals[:, None]
        if vals.ndim != 2 or vals.shape[0] != self.n_cells:
            raise ShapeMismatchError(
                f"values must be (n_cells, c) with n_cells={self.n_cells}; "
                f"got {vals.shape}"
            )
        g = self.gradient_operator @ vals  # (n*dim, c)
        return g.reshape(self.n_cells, self.dim, vals.shape[1]).transpose(0, 2, 1)

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------
    def write_vtu(self, filename: str, cell_data: Mapping[str, Any]) -> None:
        """Export cell fields in VTU format through meshio.

        Values may be Fields (their internal values are written) or arrays of
        shape (n_cells,) or (n_cells, k).

        Args:
            filename: Output path (e.g., ``"fields.vtu"``).
            cell_data: Name to per-cell values.

        Raises:
            ValueError: If the mesh carries no vertex geometry.
            ShapeMismatchError: If a data array does not have n_cells rows.
        """
        if self.points is None or not self.cells:
            raise ValueError(
                "write_vtu: mesh has no vertex geometry; build it with "
                "from_meshio() or structured()."
            )

        sizes = [con.shape[0] for _, con in self.cells]
        split_at = np.cumsum(sizes)[:-1]
        normalized: Dict[str, List[NDArray[Any]]] = {}
        for name, values in cell_data.items():
            arr = np.asarray(to_cpu(getattr(values, "internal", values)))
            if arr.ndim == 2 and arr.shape[1] == 1:
                arr = arr[:, 0]
            if arr.shape[0] != self.n_cells:
                msg = f"cell_data['{name}'] length {arr.shape[0]} != n_cells {self.n_cells}"
                _LOGGER.error("write_vtu: %s", msg)
                raise ShapeMismatchError(msg)
            normalized[name] = np.split(arr, split_at)

        try:
            m = meshio.Mesh(points=self.points, cells=self.cells, cell_data=normalized)
            m.write(filename)
        except Exception:
            _LOGGER.exception("write_vtu failed for '%s'.", filename)
            raise

        _LOGGER.info(
            "VTU written to '%s' (cells=%d, fields=%d, backend=%s)",
            filename,
            self.n_cells,
            len(normalized),
            backend_name(),
        )
