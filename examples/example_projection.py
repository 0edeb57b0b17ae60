"""Project parametric snapshots onto a reduced basis and report the errors.

Builds a 20x20 structured grid, samples a handful of parameter pairs, makes
one scalar snapshot per pair, takes the leading SVD modes as the basis and
projects the snapshots onto it. Writes the first snapshot and its
reconstruction to ``projection.vtu``.
"""
import numpy as np

import rom_fields as rf
from rom_fields import CellMesh, Field, FieldSet, GalerkinProjector, RandomSampler

rf.set_log_level("INFO")

mesh = CellMesh.structured(20, 20, spacing=(0.05, 0.05, 1.0))
x, y, _ = mesh.centroids.T

# Parameters: amplitude in [1, 2), wave number in [1, 4)
bounds = np.array([[1.0, 1.0], [2.0, 4.0]])
params = RandomSampler(seed=2024).uniform_bounded(12, bounds)

snapshots = FieldSet(
    [
        Field(mesh, a * np.sin(k * np.pi * x) * np.cos(np.pi * y), name=f"s{i}")
        for i, (a, k) in enumerate(params)
    ]
)

# Leading left singular vectors of the snapshot matrix as modes
S = rf.fields_to_matrix(snapshots)
U, _, _ = np.linalg.svd(S, full_matrices=False)
modes = FieldSet.from_array(mesh, U[:, :4].T, name="mode")

proj = GalerkinProjector(modes)
coeffs = proj.coefficients(snapshots)
recon = proj.reconstruct_fields(coeffs)

errors = rf.list_errors(list(snapshots), list(recon))
for i, err in enumerate(errors):
    print(f"snapshot {i}: relative L2 error {err:.3e}")

print("stencil around the centre cell:", rf.cell_stencil(mesh, mesh.nearest_cell([0.5, 0.5, 0.5]), 1))

mesh.write_vtu("projection.vtu", {"snapshot": snapshots[0], "reconstruction": recon[0]})
