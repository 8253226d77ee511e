"""
Unit Cell
=========

Periodic unit cells for 1D, 2D and 3D simulation boxes.

A unit cell is a lattice system (which fixes the shape constraints) plus a
short list of real parameters: lengths and, for the low-symmetry systems,
angles in degrees. The cell supplies the reciprocal metric G* used to
compute squared wavevector magnitudes |k|^2 = k G* k^T for integer
(Miller-like) indices k, and the derivatives of G* with respect to each
parameter, which the PDE solver needs for stress calculations.

Conventions:
- Lattice vectors are returned row-wise: A[i] is the i-th Bravais vector.
- Reciprocal vectors satisfy a_i . b_j = 2*pi*delta_ij.
"""

from __future__ import annotations

import numpy as np
from dataclasses import dataclass, replace
from functools import lru_cache
from typing import Callable, Dict, List, Optional, Tuple

from basis_errors import ConfigurationError


_DEG = np.pi / 180.0
_SQRT3_2 = np.sqrt(3.0) / 2.0

# Step for complex-step differentiation; exact to machine precision.
_COMPLEX_STEP = 1.0e-20


# =============================================================================
# LATTICE SYSTEM CATALOGUE
# =============================================================================

@dataclass(frozen=True)
class LatticeSystem:
    """A lattice system: parameter names and the builder for its vectors."""
    name: str
    dimension: int
    parameter_names: Tuple[str, ...]
    builder: Callable  # params array -> rows of lattice vectors

    @property
    def angle_names(self) -> Tuple[str, ...]:
        return tuple(n for n in self.parameter_names if n in ('alpha', 'beta', 'gamma'))


# Builders are written with plain numpy arithmetic so that they also accept
# complex parameters (complex-step derivatives of the metric).

def _lamellar(p):
    a, = p
    return np.array([[a]])


def _square(p):
    a, = p
    return np.array([[a, 0.0 * a], [0.0 * a, a]])


def _rectangular(p):
    a, b = p
    return np.array([[a, 0.0 * a], [0.0 * b, b]])


def _rhombic(p):
    a, gamma = p
    return np.array([
        [a, 0.0 * a],
        [a * np.cos(gamma * _DEG), a * np.sin(gamma * _DEG)],
    ])


def _hexagonal_2d(p):
    a, = p
    return np.array([[a, 0.0 * a], [-0.5 * a, _SQRT3_2 * a]])


def _oblique(p):
    a, b, gamma = p
    return np.array([
        [a, 0.0 * a],
        [b * np.cos(gamma * _DEG), b * np.sin(gamma * _DEG)],
    ])


def _cubic(p):
    a, = p
    z = 0.0 * a
    return np.array([[a, z, z], [z, a, z], [z, z, a]])


def _tetragonal(p):
    a, c = p
    z = 0.0 * a
    return np.array([[a, z, z], [z, a, z], [z, z, c]])


def _orthorhombic(p):
    a, b, c = p
    z = 0.0 * a
    return np.array([[a, z, z], [z, b, z], [z, z, c]])


def _hexagonal_3d(p):
    a, c = p
    z = 0.0 * a
    return np.array([[a, z, z], [-0.5 * a, _SQRT3_2 * a, z], [z, z, c]])


def _monoclinic(p):
    a, b, c, beta = p
    z = 0.0 * a
    return np.array([
        [a, z, z],
        [z, b, z],
        [c * np.cos(beta * _DEG), z, c * np.sin(beta * _DEG)],
    ])


def _rhombohedral(p):
    """
    Three vectors of length a with mutual angle beta, symmetric about z.

    With polar angle theta of each vector: cos^2(theta) = (1 + 2 cos(beta)) / 3.
    """
    a, beta = p
    cos_t = np.sqrt((1.0 + 2.0 * np.cos(beta * _DEG)) / 3.0)
    sin_t = np.sqrt(1.0 - cos_t ** 2)
    return np.array([
        [a * sin_t, 0.0 * a, a * cos_t],
        [-0.5 * a * sin_t, _SQRT3_2 * a * sin_t, a * cos_t],
        [-0.5 * a * sin_t, -_SQRT3_2 * a * sin_t, a * cos_t],
    ])


def _triclinic(p):
    """General cell: a along x, b in the xy-plane, c general."""
    a, b, c, alpha, beta, gamma = p
    cos_alpha = np.cos(alpha * _DEG)
    cos_beta = np.cos(beta * _DEG)
    cos_gamma = np.cos(gamma * _DEG)
    sin_gamma = np.sin(gamma * _DEG)

    cx = c * cos_beta
    cy = c * (cos_alpha - cos_beta * cos_gamma) / sin_gamma
    cz = np.sqrt(c ** 2 - cx ** 2 - cy ** 2)
    z = 0.0 * a
    return np.array([
        [a, z, z],
        [b * cos_gamma, b * sin_gamma, z],
        [cx, cy, cz],
    ])


def _system(name, dimension, params, builder):
    return (dimension, name), LatticeSystem(name, dimension, params, builder)


LATTICE_SYSTEMS: Dict[Tuple[int, str], LatticeSystem] = dict([
    # 1D
    _system('lamellar', 1, ('a',), _lamellar),
    # 2D
    _system('square', 2, ('a',), _square),
    _system('rectangular', 2, ('a', 'b'), _rectangular),
    _system('rhombic', 2, ('a', 'gamma'), _rhombic),
    _system('hexagonal', 2, ('a',), _hexagonal_2d),
    _system('oblique', 2, ('a', 'b', 'gamma'), _oblique),
    # 3D
    _system('cubic', 3, ('a',), _cubic),
    _system('tetragonal', 3, ('a', 'c'), _tetragonal),
    _system('orthorhombic', 3, ('a', 'b', 'c'), _orthorhombic),
    _system('monoclinic', 3, ('a', 'b', 'c', 'beta'), _monoclinic),
    _system('hexagonal', 3, ('a', 'c'), _hexagonal_3d),
    _system('rhombohedral', 3, ('a', 'beta'), _rhombohedral),
    _system('triclinic', 3, ('a', 'b', 'c', 'alpha', 'beta', 'gamma'), _triclinic),
])


def get_lattice_systems(dimension: int) -> List[str]:
    """Names of the lattice systems available in a given dimension."""
    return [name for (dim, name) in LATTICE_SYSTEMS if dim == dimension]


# =============================================================================
# CACHED GEOMETRY
# =============================================================================

@lru_cache(maxsize=256)
def _lattice_vectors_cached(dimension: int, name: str,
                            parameters: Tuple[float, ...]) -> Tuple[Tuple[float, ...], ...]:
    """Return lattice vectors as a tuple-of-tuples for caching."""
    system = LATTICE_SYSTEMS[(dimension, name)]
    rows = system.builder(np.array(parameters, dtype=np.float64))
    return tuple(tuple(float(x) for x in row) for row in rows)


def _reciprocal_from_rows(rows: np.ndarray) -> np.ndarray:
    """b_i rows with a_i . b_j = 2 pi delta_ij."""
    return 2.0 * np.pi * np.linalg.inv(rows).T


# =============================================================================
# UNIT CELL
# =============================================================================

@dataclass(frozen=True)
class UnitCell:
    """
    Lattice system plus parameters.

    A cell constructed without a lattice system is "unset"; it can be passed
    around but any geometric query raises ConfigurationError.

    Attributes:
        dimension: Spatial dimension (1, 2 or 3)
        lattice_system: Lattice system name, e.g. 'cubic' or 'hexagonal'
        parameters: Lengths and angles (degrees) in the order of
                    LATTICE_SYSTEMS[(dimension, lattice_system)].parameter_names
    """
    dimension: int
    lattice_system: Optional[str] = None
    parameters: Tuple[float, ...] = ()

    def __post_init__(self):
        if self.dimension not in (1, 2, 3):
            raise ConfigurationError(f"Unit cell dimension must be 1, 2 or 3, got {self.dimension}")
        object.__setattr__(self, 'parameters', tuple(float(p) for p in self.parameters))

        if not self.lattice_system:
            if self.parameters:
                raise ConfigurationError("Unit cell parameters given without a lattice system")
            object.__setattr__(self, 'lattice_system', None)
            return

        name = str(self.lattice_system).strip().lower()
        object.__setattr__(self, 'lattice_system', name)

        system = LATTICE_SYSTEMS.get((self.dimension, name))
        if system is None:
            raise ConfigurationError(
                f"Unknown {self.dimension}D lattice system '{name}'. "
                f"Available: {get_lattice_systems(self.dimension)}"
            )
        if len(self.parameters) != len(system.parameter_names):
            raise ConfigurationError(
                f"Lattice system '{name}' takes {len(system.parameter_names)} parameters "
                f"{system.parameter_names}, got {len(self.parameters)}"
            )
        self._validate(system)

    def _validate(self, system: LatticeSystem):
        for pname, value in zip(system.parameter_names, self.parameters):
            if pname in system.angle_names:
                if not (0.0 < value < 180.0):
                    raise ConfigurationError(f"Angle {pname}={value} must lie in (0, 180) degrees")
            elif value <= 0.0:
                raise ConfigurationError(f"Length {pname}={value} must be positive")

        with np.errstate(invalid='ignore'):
            rows = system.builder(np.array(self.parameters, dtype=np.float64))
        if not np.all(np.isfinite(rows)):
            raise ConfigurationError(f"Degenerate {system.name} cell: parameters {self.parameters}")
        det = abs(np.linalg.det(rows))
        scale = np.prod([np.linalg.norm(r) for r in rows])
        if det <= 1e-10 * scale:
            raise ConfigurationError(f"Degenerate {system.name} cell: zero volume")

    # -------------------------------------------------------------------------

    @property
    def is_set(self) -> bool:
        return self.lattice_system is not None

    def require_set(self):
        """Raise ConfigurationError if no lattice system has been chosen."""
        if not self.is_set:
            raise ConfigurationError("Unit cell lattice system is unset")

    @property
    def system(self) -> LatticeSystem:
        self.require_set()
        return LATTICE_SYSTEMS[(self.dimension, self.lattice_system)]

    @property
    def parameter_names(self) -> Tuple[str, ...]:
        return self.system.parameter_names

    @property
    def n_parameters(self) -> int:
        return len(self.parameters)

    def with_parameters(self, parameters) -> 'UnitCell':
        """Same lattice system, new parameter values (validated)."""
        return replace(self, parameters=tuple(parameters))

    # -------------------------------------------------------------------------

    def lattice_vectors(self) -> np.ndarray:
        """Bravais vectors as rows, shape (D, D)."""
        self.require_set()
        return np.array(
            _lattice_vectors_cached(self.dimension, self.lattice_system, self.parameters),
            dtype=np.float64,
        )

    def reciprocal_vectors(self) -> np.ndarray:
        """Reciprocal vectors b_i as rows, a_i . b_j = 2 pi delta_ij."""
        return _reciprocal_from_rows(self.lattice_vectors())

    def reciprocal_metric(self) -> np.ndarray:
        """G*_ij = b_i . b_j, so that |k|^2 = k G* k^T."""
        b = self.reciprocal_vectors()
        return b @ b.T

    def reciprocal_metric_derivatives(self) -> np.ndarray:
        """
        Derivatives dG*/dp for each parameter p, shape (n_parameters, D, D).

        Uses complex-step differentiation: evaluating the metric at p + ih
        gives Im(G*)/h = dG*/dp with no subtractive cancellation.
        """
        system = self.system
        base = np.array(self.parameters, dtype=np.complex128)
        derivs = np.zeros((len(base), self.dimension, self.dimension), dtype=np.float64)
        for j in range(len(base)):
            p = base.copy()
            p[j] += 1j * _COMPLEX_STEP
            b = _reciprocal_from_rows(system.builder(p).astype(np.complex128))
            derivs[j] = (b @ b.T).imag / _COMPLEX_STEP
        return derivs

    @property
    def volume(self) -> float:
        """Cell volume (area in 2D, length in 1D)."""
        return float(abs(np.linalg.det(self.lattice_vectors())))

    def __repr__(self):
        if not self.is_set:
            return f"UnitCell({self.dimension}D, unset)"
        params = ", ".join(f"{n}={v:g}" for n, v in zip(self.parameter_names, self.parameters))
        return f"UnitCell({self.dimension}D {self.lattice_system}: {params})"
