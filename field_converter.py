"""
Field Converter
===============

Conversions between symmetry-adapted basis components, half-complex DFT
arrays and real-space grids.

basis -> DFT:
    closed star:   V(k) = a c(k)
    pair (+1, -1): V(k) = (a - i b)/sqrt(2) c(k)   on the +1 star
                   V(k) = (a + i b)/sqrt(2) c(k)   on the -1 star
    cancelled stars contribute nothing and consume no component.

DFT -> basis projects onto the basis functions; the non-symmetric part of
the input is discarded.

Components for several monomer species are passed as a 2-D array with the
species on the leading axis. A 1-D input is a single component and gives a
result with no leading axis.
"""

import logging
import warnings
from typing import List, Optional, Tuple

import numpy as np
from scipy import fft as sp_fft

from basis_errors import ConsistencyError, PrecisionWarning
from fft_mesh import Mesh
from star_classifier import Star
from wave_enumerator import Wave


logger = logging.getLogger(__name__)

SQRT2 = np.sqrt(2.0)


# =============================================================================
# ARGUMENT CHECKING
# =============================================================================

def as_components(components, n_basis: int,
                  n_components: Optional[int] = None) -> Tuple[np.ndarray, bool]:
    """
    Coerce basis components to a (n_components, n_basis) float array.

    Returns:
        (array, single): single is True if the input was 1-D
    """
    arr = np.asarray(components, dtype=np.float64)
    single = arr.ndim == 1
    if single:
        arr = arr[np.newaxis, :]
    if arr.ndim != 2 or arr.shape[1] != n_basis:
        raise ConsistencyError(
            f"Basis components must have shape ({n_basis},) or (n, {n_basis}), got {np.shape(components)}"
        )
    if n_components is not None and arr.shape[0] != n_components:
        raise ConsistencyError(f"Expected {n_components} components, got {arr.shape[0]}")
    return arr, single


def as_dft(dft, mesh: Mesh, n_components: Optional[int] = None) -> Tuple[np.ndarray, bool]:
    """
    Coerce half-complex DFT data to a (n_components, dft_size) complex array.

    Returns:
        (array, single): single is True if the input had exactly mesh.dft_shape
    """
    arr = np.asarray(dft, dtype=np.complex128)
    single = arr.shape == mesh.dft_shape
    if single:
        arr = arr[np.newaxis]
    if arr.ndim != mesh.dimension + 1 or arr.shape[1:] != mesh.dft_shape:
        raise ConsistencyError(
            f"DFT array must have shape {mesh.dft_shape} or (n, *{mesh.dft_shape}), got {np.shape(dft)}"
        )
    if n_components is not None and arr.shape[0] != n_components:
        raise ConsistencyError(f"Expected {n_components} components, got {arr.shape[0]}")
    return arr.reshape(arr.shape[0], -1), single


def _shape_dft(flat: np.ndarray, mesh: Mesh, single: bool) -> np.ndarray:
    out = flat.reshape((flat.shape[0],) + mesh.dft_shape)
    return out[0] if single else out


# =============================================================================
# HOST PATH: LOOP OVER STARS
# =============================================================================

def basis_to_dft(components, waves: List[Wave], stars: List[Star], mesh: Mesh,
                 n_basis: int, n_components: Optional[int] = None) -> np.ndarray:
    """
    Expand basis components into half-complex DFT arrays.

    Only explicit waves are written; every other entry of the output is zero.
    """
    comps, single = as_components(components, n_basis, n_components)
    out = np.zeros((comps.shape[0], mesh.dft_size), dtype=np.complex128)

    for c in range(comps.shape[0]):
        rank = 0
        i = 0
        while i < len(stars):
            star = stars[i]
            if star.invert_flag == 0:
                amplitudes = [(star, comps[c, rank] + 0j)] if not star.cancel else []
                step = 1
            else:
                partner = stars[i + 1]
                if star.cancel:
                    amplitudes = []
                else:
                    a, b = comps[c, rank], comps[c, rank + 1]
                    amplitudes = [(star, complex(a, -b) / SQRT2), (partner, complex(a, b) / SQRT2)]
                step = 2

            for target, amplitude in amplitudes:
                for wave in waves[target.begin_id:target.end_id]:
                    if not wave.implicit:
                        out[c, mesh.dft_offset(wave.indices)] = amplitude * wave.coeff
            rank += len(amplitudes)
            i += step

    return _shape_dft(out, mesh, single)


def _star_projection(block: List[Wave], flat: np.ndarray, mesh: Mesh) -> complex:
    """sum over the star of V(k) conj(c(k)), using V(k) = conj(V(-k)) for implicit waves."""
    total = 0j
    for wave in block:
        if wave.implicit:
            value = flat[mesh.dft_offset(mesh.negate(wave.indices))].conjugate()
        else:
            value = flat[mesh.dft_offset(wave.indices)]
        total += value * wave.coeff.conjugate()
    return total


def dft_to_basis(dft, waves: List[Wave], stars: List[Star], mesh: Mesh,
                 n_basis: int, n_components: Optional[int] = None) -> np.ndarray:
    """Project half-complex DFT arrays onto the basis functions."""
    data, single = as_dft(dft, mesh, n_components)
    out = np.zeros((data.shape[0], n_basis), dtype=np.float64)

    for c in range(data.shape[0]):
        rank = 0
        i = 0
        while i < len(stars):
            star = stars[i]
            if star.invert_flag == 0:
                if not star.cancel:
                    s = _star_projection(waves[star.begin_id:star.end_id], data[c], mesh)
                    out[c, rank] = s.real
                    rank += 1
                i += 1
                continue

            partner = stars[i + 1]
            if not star.cancel:
                s_plus = _star_projection(waves[star.begin_id:star.end_id], data[c], mesh)
                s_minus = _star_projection(waves[partner.begin_id:partner.end_id], data[c], mesh)
                z = 0.5 * (s_plus + s_minus.conjugate())
                out[c, rank] = SQRT2 * z.real
                out[c, rank + 1] = -SQRT2 * z.imag
                rank += 2
            i += 2

    return out[0] if single else out


def check_projection(original, projected, tol: float = 1e-8) -> float:
    """
    Relative norm of the part of `original` discarded by a projection.

    Emits a PrecisionWarning if it exceeds tol.
    """
    original = np.asarray(original)
    reference = np.linalg.norm(original)
    if reference == 0.0:
        return 0.0
    residual = float(np.linalg.norm(original - np.asarray(projected)) / reference)
    if residual > tol:
        logger.warning("Field is not symmetric under the group: relative residual %.3e", residual)
        warnings.warn(
            f"Non-symmetric part of the field discarded (relative residual {residual:.3e})",
            PrecisionWarning,
            stacklevel=3,
        )
    return residual


# =============================================================================
# REAL-SPACE GRIDS
# =============================================================================

def _mesh_axes(mesh: Mesh) -> Tuple[int, ...]:
    return tuple(range(-mesh.dimension, 0))


def rgrid_to_dft(rgrid, mesh: Mesh) -> np.ndarray:
    """
    Half-complex DFT of real fields, normalized so that
    f(r) = sum_k V(k) exp(2 pi i k.r).

    The trailing D axes of rgrid are the mesh axes.
    """
    arr = np.asarray(rgrid, dtype=np.float64)
    if arr.shape[-mesh.dimension:] != mesh.dimensions:
        raise ConsistencyError(f"Real-space grid must end with shape {mesh.dimensions}, got {arr.shape}")
    return sp_fft.rfftn(arr, axes=_mesh_axes(mesh)) / mesh.size


def dft_to_rgrid(dft, mesh: Mesh) -> np.ndarray:
    """Inverse of rgrid_to_dft."""
    arr = np.asarray(dft, dtype=np.complex128)
    if arr.shape[-mesh.dimension:] != mesh.dft_shape:
        raise ConsistencyError(f"DFT array must end with shape {mesh.dft_shape}, got {arr.shape}")
    return sp_fft.irfftn(arr * mesh.size, s=mesh.dimensions, axes=_mesh_axes(mesh))
