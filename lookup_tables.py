"""
Flat lookup tables for vectorized basis <-> DFT conversion.

The tables carry the same information as the wave and star lists, as numpy
arrays indexed by wave or star position, so conversions need no Python loop
over stars and never touch Wave or Star objects.
"""

from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from field_converter import SQRT2, as_components, as_dft
from fft_mesh import Mesh
from star_classifier import Star
from wave_enumerator import Wave


@dataclass(frozen=True)
class LookupTables:
    """
    Attributes:
        star_ids: (n_wave,) owning star of each wave
        partner_ids: (n_wave,) position of the wave -k in the wave list
        coefficients: (n_wave,) complex basis-function coefficient
        implicit: (n_wave,) True if the wave is not stored in the DFT array
        dft_ids: (n_wave,) flat DFT offset of the wave, or of -k if implicit
        star_begins: (n_star,) first wave of each star
        star_ranks: (n_star,) basis index of the star, -1 if cancelled
        invert_flags: (n_star,) 0, +1 or -1
        n_basis: Number of basis functions
    """
    star_ids: np.ndarray
    partner_ids: np.ndarray
    coefficients: np.ndarray
    implicit: np.ndarray
    dft_ids: np.ndarray
    star_begins: np.ndarray
    star_ranks: np.ndarray
    invert_flags: np.ndarray
    n_basis: int

    @property
    def n_wave(self) -> int:
        return len(self.star_ids)

    @property
    def n_star(self) -> int:
        return len(self.star_begins)


def build_lookup_tables(waves: List[Wave], stars: List[Star], mesh: Mesh) -> LookupTables:
    """Flatten ordered waves and stars into a LookupTables."""
    ranks = np.array([mesh.rank(w.indices) for w in waves], dtype=np.int64)
    position = np.empty(len(waves), dtype=np.int64)
    position[ranks] = np.arange(len(waves))
    dims = np.array(mesh.dimensions, dtype=np.int64)
    negated = np.array([w.indices for w in waves], dtype=np.int64).reshape(len(waves), -1)
    negated = (-negated) % dims
    partner_ids = position[np.ravel_multi_index(tuple(negated.T), mesh.dimensions)]

    dft_ids = np.empty(len(waves), dtype=np.int64)
    for i, wave in enumerate(waves):
        target = mesh.negate(wave.indices) if wave.implicit else wave.indices
        dft_ids[i] = mesh.dft_offset(target)

    star_ranks = np.full(len(stars), -1, dtype=np.int64)
    rank = 0
    for s, star in enumerate(stars):
        if not star.cancel:
            star_ranks[s] = rank
            rank += 1

    return LookupTables(
        star_ids=np.array([w.star_id for w in waves], dtype=np.int64),
        partner_ids=partner_ids,
        coefficients=np.array([w.coeff for w in waves], dtype=np.complex128),
        implicit=np.array([w.implicit for w in waves], dtype=bool),
        dft_ids=dft_ids,
        star_begins=np.array([s.begin_id for s in stars], dtype=np.int64),
        star_ranks=star_ranks,
        invert_flags=np.array([s.invert_flag for s in stars], dtype=np.int64),
        n_basis=rank,
    )


def _live_stars(tables: LookupTables):
    """Indices of non-cancelled closed stars and of non-cancelled +1 stars."""
    live = tables.star_ranks >= 0
    closed = np.nonzero(live & (tables.invert_flags == 0))[0]
    plus = np.nonzero(live & (tables.invert_flags == 1))[0]
    return closed, plus


def tables_basis_to_dft(components, tables: LookupTables, mesh: Mesh,
                        n_components: Optional[int] = None) -> np.ndarray:
    """Vectorized equivalent of field_converter.basis_to_dft."""
    comps, single = as_components(components, tables.n_basis, n_components)
    n_comp = comps.shape[0]
    closed, plus = _live_stars(tables)

    amplitudes = np.zeros((n_comp, tables.n_star), dtype=np.complex128)
    amplitudes[:, closed] = comps[:, tables.star_ranks[closed]]
    a = comps[:, tables.star_ranks[plus]]
    b = comps[:, tables.star_ranks[plus] + 1]
    amplitudes[:, plus] = (a - 1j * b) / SQRT2
    amplitudes[:, plus + 1] = (a + 1j * b) / SQRT2

    explicit = ~tables.implicit
    out = np.zeros((n_comp, mesh.dft_size), dtype=np.complex128)
    out[:, tables.dft_ids[explicit]] = (
        amplitudes[:, tables.star_ids[explicit]] * tables.coefficients[explicit]
    )

    out = out.reshape((n_comp,) + mesh.dft_shape)
    return out[0] if single else out


def tables_dft_to_basis(dft, tables: LookupTables, mesh: Mesh,
                        n_components: Optional[int] = None) -> np.ndarray:
    """Vectorized equivalent of field_converter.dft_to_basis."""
    data, single = as_dft(dft, mesh, n_components)
    closed, plus = _live_stars(tables)

    values = data[:, tables.dft_ids]
    values[:, tables.implicit] = values[:, tables.implicit].conj()
    sums = np.add.reduceat(values * tables.coefficients.conj(), tables.star_begins, axis=1)

    out = np.zeros((data.shape[0], tables.n_basis), dtype=np.float64)
    out[:, tables.star_ranks[closed]] = sums[:, closed].real
    z = 0.5 * (sums[:, plus] + sums[:, plus + 1].conj())
    out[:, tables.star_ranks[plus]] = SQRT2 * z.real
    out[:, tables.star_ranks[plus] + 1] = -SQRT2 * z.imag

    return out[0] if single else out
