"""
Basis function assembly: one real, normalized function per star.

For a root wave k0 and an operation (R, t), invariance of the field under
r -> R r + t requires

    c(k0 R) = c(k0) exp(2 pi i k0.t)

Phases are kept as exact integer numerators over the common translation
denominator L, so the cancellation test (two operations sending k0 to the
same wave with different phases) involves no floating-point tolerance.

Conventions:
- Coefficients are normalized so that sum |c|^2 = 1 over each star.
- Closed star: a global phase makes the function real. The characteristic
  coefficient has positive real part, or is +i when purely imaginary.
  sign_flag = +1 if every coefficient is real (even function), -1 if every
  coefficient is imaginary (odd), 0 otherwise.
- Pair (+1, -1): the +1 star stores c(k) and the -1 star stores
  conj(c(-k)). The +1 star carries the cosine-like function (F + F*)/sqrt(2),
  the -1 star the sine-like function (F - F*)/(i sqrt(2)).
"""

from typing import Dict, List, Tuple

import numpy as np

from fft_mesh import Mesh
from star_classifier import OrbitTables, Star
from wave_enumerator import Wave


_QUARTER_TURNS = (1.0 + 0.0j, 1.0j, -1.0 + 0.0j, -1.0j)


def unit_phase(numerator: int, denominator: int) -> complex:
    """exp(2 pi i numerator/denominator), exact at multiples of a quarter turn."""
    numerator %= denominator
    if (4 * numerator) % denominator == 0:
        return _QUARTER_TURNS[(4 * numerator) // denominator]
    return complex(np.exp(2j * np.pi * numerator / denominator))


def orbit_phases(root_rank: int, tables: OrbitTables) -> Tuple[Dict[int, int], bool]:
    """
    Phase numerators of every wave in the orbit of a root wave.

    Returns:
        (phases, cancel): phases maps wave rank -> numerator over
        tables.denominator; cancel is True if two operations send the root
        to the same wave with different phases.
    """
    images = tables.images[:, root_rank]
    phases = tables.phases[:, root_rank]

    order = np.argsort(images, kind='stable')
    sorted_images = images[order]
    sorted_phases = phases[order]
    unique, starts = np.unique(sorted_images, return_index=True)
    low = np.minimum.reduceat(sorted_phases, starts)
    high = np.maximum.reduceat(sorted_phases, starts)

    cancel = bool(np.any(low != high))
    return {int(k): int(p) for k, p in zip(unique, low)}, cancel


def _closed_star(block: List[Wave], ranks: List[int], phases: Dict[int, int],
                 negation: np.ndarray, L: int) -> int:
    """Set real-function coefficients of a closed star; returns sign_flag."""
    f_neg = phases[int(negation[ranks[0]])]
    D = 4 * L
    nums = [(4 * phases[r] - 2 * f_neg) % D for r in ranks]
    if L < nums[0] <= 3 * L:
        nums = [(n + 2 * L) % D for n in nums]

    norm = 1.0 / np.sqrt(len(block))
    for wave, num in zip(block, nums):
        wave.coeff = unit_phase(num, D) * norm

    if all(n in (0, 2 * L) for n in nums):
        return 1
    if all(n in (L, 3 * L) for n in nums):
        return -1
    return 0


def assemble_basis_functions(waves: List[Wave], stars: List[Star], mesh: Mesh,
                             tables: OrbitTables) -> int:
    """
    Compute wave coefficients, sign flags and cancel flags for all stars.

    Args:
        waves: Ordered waves (from classify_stars)
        stars: Ordered stars
        mesh: The mesh
        tables: Image tables of the group on this mesh

    Returns:
        Number of nonzero basis functions (stars with cancel = False)
    """
    ranks = [mesh.rank(w.indices) for w in waves]
    position = {r: i for i, r in enumerate(ranks)}
    L = tables.denominator

    for s, star in enumerate(stars):
        if star.invert_flag == -1:
            continue  # filled together with its +1 partner

        block = waves[star.begin_id:star.end_id]
        block_ranks = ranks[star.begin_id:star.end_id]
        phases, cancel = orbit_phases(block_ranks[0], tables)

        partner = stars[s + 1] if star.invert_flag == 1 else None
        if cancel:
            star.cancel = True
            for wave in block:
                wave.coeff = 0j
            if partner is None:
                star.sign_flag = 0
            else:
                partner.cancel = True
                star.sign_flag, partner.sign_flag = 1, -1
                for wave in waves[partner.begin_id:partner.end_id]:
                    wave.coeff = 0j
            continue

        if partner is None:
            star.sign_flag = _closed_star(block, block_ranks, phases, tables.negation, L)
            continue

        norm = 1.0 / np.sqrt(star.size)
        for wave, r in zip(block, block_ranks):
            wave.coeff = unit_phase(phases[r], L) * norm
        for i in range(partner.begin_id, partner.end_id):
            mirror = waves[position[int(tables.negation[ranks[i]])]]
            waves[i].coeff = mirror.coeff.conjugate()
        star.sign_flag, partner.sign_flag = 1, -1

    return sum(1 for star in stars if not star.cancel)
