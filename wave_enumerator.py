"""
Wave enumeration on the reciprocal grid of a mesh.

Every grid point k of the mesh is a wave. Its squared magnitude is taken at
the minimum-image ("Brillouin zone") representative of k modulo the mesh,
so that aliases of one DFT mode share one |k|^2.
"""

from dataclasses import dataclass
from itertools import product
from typing import List, Tuple

import numpy as np

from basis_errors import ConfigurationError
from fft_mesh import Mesh
from unit_cell import UnitCell


@dataclass
class Wave:
    """
    One reciprocal-grid point.

    Attributes:
        indices: DFT indices, each in [0, N_i)
        indices_bz: Minimum-image indices (shortest alias under the metric)
        sq_norm: |k|^2 from the reciprocal metric
        implicit: True if not stored in the half-complex DFT array
        coeff: Coefficient of this wave in its star's basis function
        star_id: Index of the owning star
    """
    indices: Tuple[int, ...]
    indices_bz: Tuple[int, ...]
    sq_norm: float
    implicit: bool
    coeff: complex = 0j
    star_id: int = -1

    def __repr__(self):
        flag = ", implicit" if self.implicit else ""
        return f"Wave({self.indices_bz}, ksq={self.sq_norm:.6g}, star={self.star_id}{flag})"


def sq_norms(indices: np.ndarray, metric: np.ndarray) -> np.ndarray:
    """|k|^2 = k G* k^T for each row of an (n, D) index array."""
    k = np.asarray(indices, dtype=np.float64)
    return np.einsum('ni,ij,nj->n', k, metric, k)


def sq_norm_derivatives(indices: np.ndarray, metric_derivatives: np.ndarray) -> np.ndarray:
    """d|k|^2/dp for each parameter p and each row k, shape (n_params, n)."""
    k = np.asarray(indices, dtype=np.float64)
    return np.einsum('ni,pij,nj->pn', k, metric_derivatives, k)


def shift_to_minimum(indices: np.ndarray, mesh: Mesh, metric: np.ndarray,
                     tol: float = 1e-10) -> np.ndarray:
    """
    Minimum-image representatives of wave indices.

    Each component is first moved into (-N/2, N/2]. For oblique cells a
    neighbouring alias (k + N s, s in {-1, 0, 1}^D) can be shorter; it
    replaces the current choice only if strictly shorter, so ties keep the
    (-N/2, N/2] representative.

    Args:
        indices: (n, D) integer array
        mesh: Mesh giving the periodicity
        metric: Reciprocal metric G*

    Returns:
        (n, D) integer array
    """
    dims = np.array(mesh.dimensions, dtype=np.int64)
    k = np.asarray(indices, dtype=np.int64) % dims
    k = np.where(k > dims // 2, k - dims, k)

    best = k.copy()
    best_norm = sq_norms(best, metric)
    for s in product((-1, 0, 1), repeat=mesh.dimension):
        if not any(s):
            continue
        cand = k + np.array(s, dtype=np.int64) * dims
        norm = sq_norms(cand, metric)
        better = norm < best_norm - tol * (1.0 + best_norm)
        best[better] = cand[better]
        best_norm[better] = norm[better]
    return best


def enumerate_waves(mesh: Mesh, unit_cell: UnitCell) -> List[Wave]:
    """
    Enumerate all waves of the mesh in row-major order of DFT indices.

    Raises:
        ConfigurationError: unset lattice system or mesh/cell dimension mismatch
    """
    unit_cell.require_set()
    if unit_cell.dimension != mesh.dimension:
        raise ConfigurationError(
            f"Mesh {mesh.dimensions} is {mesh.dimension}D but unit cell is {unit_cell.dimension}D"
        )

    metric = unit_cell.reciprocal_metric()
    dft = mesh.index_array()
    bz = shift_to_minimum(dft, mesh, metric)
    ksq = sq_norms(bz, metric)
    half = mesh.dimensions[-1] // 2

    return [
        Wave(
            indices=tuple(int(x) for x in dft[i]),
            indices_bz=tuple(int(x) for x in bz[i]),
            sq_norm=float(ksq[i]),
            implicit=bool(dft[i, -1] > half),
        )
        for i in range(mesh.size)
    ]
