"""Breadth-first gathering of cell neighbourhoods (stencils).

A stencil of `layers` layers around a seed cell holds every cell reachable in
at most `layers` hops over the face-adjacency graph. With two seeds the result
is the union of both stencils: the first seed's cells in discovery order
followed by the second seed's cells not already present.
"""
from __future__ import annotations

import collections
import logging
from typing import List, Optional, Set

import numpy as np

from .exceptions import InvalidArgumentError
from .mesh import CellMesh

_LOGGER = logging.getLogger(__name__)


def _check_layers(layers: int) -> int:
    if isinstance(layers, (bool, np.bool_)) or not isinstance(layers, (int, np.integer)):
        raise InvalidArgumentError(f"layers must be an integer; got {layers!r}")
    if layers < 0:
        _LOGGER.error("stencil: negative layer count %d", layers)
        raise InvalidArgumentError(f"layers must be >= 0; got {layers}")
    return int(layers)


def _bfs(mesh: CellMesh, seed: int, layers: int, out: List[int], seen: Set[int]) -> None:
    indptr, indices = mesh.adjacency.indptr, mesh.adjacency.indices
    depth = {seed: 0}
    queue = collections.deque([seed])
    if seed not in seen:
        seen.add(seed)
        out.append(seed)
    while queue:
        cell = queue.popleft()
        d = depth[cell]
        if d == layers:
            continue
        for nb in indices[indptr[cell] : indptr[cell + 1]]:
            nb = int(nb)
            if nb in depth:
                continue
            depth[nb] = d + 1
            queue.append(nb)
            if nb not in seen:
                seen.add(nb)
                out.append(nb)


def cell_stencil(
    mesh: CellMesh,
    seed: int,
    layers: int,
    second_seed: Optional[int] = None,
) -> List[int]:
    """Return the cells within `layers` hops of `seed` (and `second_seed`).

    Args:
        mesh: Mesh providing the adjacency graph.
        seed: First seed cell id.
        layers: Non-negative number of hops; 0 returns only the seed(s).
        second_seed: Optional second seed cell id.

    Returns:
        List[int]: De-duplicated cell ids in breadth-first discovery order.

    Raises:
        IndexOutOfRangeError: If a seed is not a valid cell id.
        InvalidArgumentError: If `layers` is negative or not an integer.
    """
    n_layers = _check_layers(layers)
    seeds = [mesh.check_cell(seed)]
    if second_seed is not None:
        seeds.append(mesh.check_cell(second_seed))

    out: List[int] = []
    seen: Set[int] = set()
    for s in seeds:
        _bfs(mesh, s, n_layers, out, seen)

    _LOGGER.debug(
        "cell_stencil: seeds=%s layers=%d -> %d cells", seeds, n_layers, len(out)
    )
    return out
