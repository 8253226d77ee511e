"""
Star Classification
===================

Partitions the waves of a mesh into stars: orbits of wavevectors under the
operations of a space group, with indices taken modulo the mesh.

Key concepts:
- A wave k is mapped by (R, t) to k R (mod N) and picks up the phase k.t
- A star is closed under inversion if -k is in the star for every k in it;
  otherwise its negation is a different star, and the two form a pair
- Stars are ordered by non-increasing |k|^2. Within one |k|^2 shell, stars
  (or pairs) are ordered by their lexicographically greatest minimum-image
  wave, descending. Paired stars are adjacent: invert_flag +1 then -1
- Waves within a star are in descending lexicographic order of their
  minimum-image indices, most significant index first
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from basis_errors import ConfigurationError
from fft_mesh import Mesh
from space_groups import SpaceGroup
from wave_enumerator import Wave


logger = logging.getLogger(__name__)

SQ_NORM_TOL = 1e-8


@dataclass
class Star:
    """
    A block of waves related by space-group symmetry.

    Attributes:
        size: Number of waves
        begin_id: Index of the first wave in the ordered wave list
        end_id: One past the last wave
        invert_flag: 0 if closed under inversion, +1 / -1 for the first /
                     second star of a pair related by inversion
        sq_norm: |k|^2 shared by all waves of the star
        characteristic: Minimum-image indices of the characteristic wave
                        (first wave, or last wave if invert_flag == -1)
        sign_flag: +1 if the basis function is even under inversion, -1 if
                   odd, 0 if it has no definite parity
        cancel: True if no nonzero basis function exists for this star
    """
    size: int
    begin_id: int
    end_id: int
    invert_flag: int
    sq_norm: float
    characteristic: Tuple[int, ...]
    sign_flag: int = 1
    cancel: bool = False

    def __repr__(self):
        flag = " cancelled" if self.cancel else ""
        return (f"Star(size={self.size}, waves=[{self.begin_id},{self.end_id}), "
                f"invert={self.invert_flag:+d}, sign={self.sign_flag:+d}, "
                f"ksq={self.sq_norm:.6g}{flag})")


# =============================================================================
# IMAGE TABLES
# =============================================================================

@dataclass(frozen=True)
class OrbitTables:
    """
    Action of every group operation on every wave, by row-major rank.

    Attributes:
        images: (n_ops, n_wave) rank of k R_g mod N
        phases: (n_ops, n_wave) numerator of k.t_g mod 1, over `denominator`
        denominator: Common denominator L of all translations
        negation: (n_wave,) rank of -k mod N
    """
    images: np.ndarray
    phases: np.ndarray
    denominator: int
    negation: np.ndarray


def build_orbit_tables(mesh: Mesh, group: SpaceGroup) -> OrbitTables:
    """
    Precompute the images and phases of all waves under all operations.

    Raises:
        ConfigurationError: if the group does not act on this mesh
    """
    group.check_mesh(mesh)

    dims = np.array(mesh.dimensions, dtype=np.int64)
    K = mesh.index_array()
    L = group.translation_denominator

    images = np.empty((group.order, mesh.size), dtype=np.int64)
    for g, R in enumerate(group.rotation_stack()):
        KR = (K @ R) % dims
        images[g] = np.ravel_multi_index(tuple(KR.T), mesh.dimensions)

    phases = (K @ group.translation_numerators().T).T % L
    negation = np.ravel_multi_index(tuple(((-K) % dims).T), mesh.dimensions)
    return OrbitTables(images=images, phases=phases, denominator=L, negation=negation)


# =============================================================================
# CLASSIFICATION
# =============================================================================

@dataclass
class _Unit:
    """A closed star, or a pair of stars related by inversion (sorting unit)."""
    parts: List[Tuple[np.ndarray, int]]  # (member ranks, invert_flag)
    sq_norm: float
    key: Tuple[int, ...]


def _find_orbits(waves: List[Wave], tables: OrbitTables) -> Tuple[List[np.ndarray], np.ndarray]:
    """Partition wave ranks into orbits; returns (orbits, orbit id per rank)."""
    n_wave = len(waves)
    assigned = np.full(n_wave, -1, dtype=np.int64)
    orbits: List[np.ndarray] = []

    for w in range(n_wave):
        if assigned[w] >= 0:
            continue
        members = np.unique(tables.images[:, w])
        if not np.all(np.isin(tables.images[:, members], members)):
            raise ConfigurationError(
                f"Symmetry operations do not act as a closed group on the grid "
                f"(orbit of wave {waves[w].indices} is not closed)"
            )
        if np.any(assigned[members] >= 0):
            raise ConfigurationError(
                f"Orbit of wave {waves[w].indices} overlaps an existing star"
            )
        norms = np.array([waves[m].sq_norm for m in members])
        if np.ptp(norms) > SQ_NORM_TOL * (1.0 + norms.max()):
            raise ConfigurationError(
                f"Waves in the orbit of {waves[w].indices} have different magnitudes: "
                f"the group does not preserve the unit cell metric"
            )
        assigned[members] = len(orbits)
        orbits.append(members)

    return orbits, assigned


def _make_units(waves: List[Wave], orbits: List[np.ndarray], assigned: np.ndarray,
                negation: np.ndarray) -> List[_Unit]:
    """Group orbits into closed stars and inversion pairs."""
    units = []
    for o, members in enumerate(orbits):
        partner = int(assigned[negation[members[0]]])
        if partner < o:
            continue  # second orbit of an already recorded pair

        sq_norm = float(np.mean([waves[m].sq_norm for m in members]))
        if partner == o:
            key = max(waves[m].indices_bz for m in members)
            units.append(_Unit([(members, 0)], sq_norm, key))
            continue

        other = orbits[partner]
        if set(negation[members].tolist()) != set(other.tolist()):
            raise ConfigurationError(
                f"Inverse of the star of {waves[members[0]].indices} is not a single star"
            )
        key_a = max(waves[m].indices_bz for m in members)
        key_b = max(waves[m].indices_bz for m in other)
        if key_a >= key_b:
            units.append(_Unit([(members, 1), (other, -1)], sq_norm, key_a))
        else:
            units.append(_Unit([(other, 1), (members, -1)], sq_norm, key_b))
    return units


def _order_units(units: List[_Unit]) -> List[_Unit]:
    """Descending |k|^2; within a shell of equal |k|^2, descending key."""
    units = sorted(units, key=lambda u: -u.sq_norm)
    shells: List[List[_Unit]] = []
    for u in units:
        if shells and abs(shells[-1][0].sq_norm - u.sq_norm) <= SQ_NORM_TOL * (1.0 + abs(u.sq_norm)):
            shells[-1].append(u)
        else:
            shells.append([u])
    return [u for shell in shells for u in sorted(shell, key=lambda u: u.key, reverse=True)]


def classify_stars(waves: List[Wave], mesh: Mesh, group: SpaceGroup,
                   tables: Optional[OrbitTables] = None) -> Tuple[List[Wave], List[Star]]:
    """
    Classify waves into ordered stars.

    Args:
        waves: All waves of the mesh in row-major order (from enumerate_waves)
        mesh: The mesh
        group: Space group acting on the mesh
        tables: Precomputed image tables (built if not given)

    Returns:
        (ordered_waves, stars): waves re-ordered so that every star is a
        contiguous block, with each wave's star_id set

    Raises:
        ConfigurationError: malformed or mismatched group
    """
    if len(waves) != mesh.size:
        raise ConfigurationError(f"Expected {mesh.size} waves for mesh {mesh.dimensions}, got {len(waves)}")
    if tables is None:
        tables = build_orbit_tables(mesh, group)

    orbits, assigned = _find_orbits(waves, tables)
    units = _order_units(_make_units(waves, orbits, assigned, tables.negation))
    logger.debug("Found %d orbits in %d sorting units", len(orbits), len(units))

    ordered: List[Wave] = []
    stars: List[Star] = []
    for unit in units:
        for members, invert_flag in unit.parts:
            block = sorted((waves[m] for m in members), key=lambda w: w.indices_bz, reverse=True)
            star_id = len(stars)
            begin = len(ordered)
            for wave in block:
                wave.star_id = star_id
                ordered.append(wave)
            characteristic = block[-1].indices_bz if invert_flag == -1 else block[0].indices_bz
            stars.append(Star(
                size=len(block),
                begin_id=begin,
                end_id=begin + len(block),
                invert_flag=invert_flag,
                sq_norm=unit.sq_norm,
                characteristic=characteristic,
            ))

    return ordered, stars
