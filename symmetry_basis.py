"""
Symmetry-Adapted Basis
======================

The Basis aggregate: builds the ordered waves, stars, basis-function
coefficients and flat lookup tables for one (mesh, lattice system, space
group) triple, and exposes queries and field conversions.

A field on the mesh is a real function f(r) = sum_k V(k) exp(2 pi i k.r).
When f is invariant under the group, it is fully described by one real
number per non-cancelled star: its basis components.

Lifecycle:
- Basis() is empty; make_basis() builds it. A failed build raises and
  leaves the object empty, even if it held a basis before.
- update(unit_cell) recomputes |k|^2 and its parameter derivatives after a
  change of lattice parameters, without reclassifying waves. It is the only
  mutation after the build: no conversion may run concurrently with it.
- The mesh and unit cell are immutable and held by reference.

Projection is lossy by design: DFT -> basis discards any part of the input
that does not respect the group. Pass check_symmetry=True to measure it.

Usage:
------
    from fft_mesh import Mesh
    from unit_cell import UnitCell
    from symmetry_basis import Basis

    basis = Basis()
    basis.make_basis(Mesh((32, 32, 32)), UnitCell(3, 'cubic', (4.0,)), 'Im-3m')
    components = basis.convert_rgrid_to_basis(rgrid)
"""

import logging
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from basis_errors import ConfigurationError, ConsistencyError
from basis_functions import assemble_basis_functions
from fft_mesh import Mesh
from field_converter import (
    basis_to_dft, check_projection, dft_to_basis, dft_to_rgrid, rgrid_to_dft,
)
from lookup_tables import LookupTables, build_lookup_tables, tables_basis_to_dft, tables_dft_to_basis
from space_groups import SpaceGroup, resolve_group
from star_classifier import Star, build_orbit_tables, classify_stars
from unit_cell import UnitCell
from wave_enumerator import Wave, enumerate_waves, shift_to_minimum, sq_norm_derivatives, sq_norms


logger = logging.getLogger(__name__)


class Basis:
    """
    Symmetry-adapted Fourier basis for a periodic field.

    Attributes (after make_basis):
        mesh: The mesh
        unit_cell: Current unit cell
        group: The space group
    """

    def __init__(self):
        self._clear()

    def _clear(self):
        self.mesh: Optional[Mesh] = None
        self.unit_cell: Optional[UnitCell] = None
        self.group: Optional[SpaceGroup] = None
        self._waves: List[Wave] = []
        self._stars: List[Star] = []
        self._positions: Optional[np.ndarray] = None  # row-major rank -> wave position
        self._tables: Optional[LookupTables] = None
        self._dksq: Optional[np.ndarray] = None
        self._n_basis = 0

    # -------------------------------------------------------------------------
    # CONSTRUCTION
    # -------------------------------------------------------------------------

    def make_basis(self, mesh: Mesh, unit_cell: UnitCell, group: Union[str, SpaceGroup]):
        """
        Build the basis.

        Args:
            mesh: Real-space grid
            unit_cell: Unit cell with its lattice system set
            group: Catalogue name (e.g. 'p6mm') or a SpaceGroup

        Raises:
            ConfigurationError: invalid or mutually incompatible inputs
        """
        self._clear()
        unit_cell.require_set()
        if isinstance(group, str):
            group = resolve_group(group, mesh.dimension)
        if group.dimension != mesh.dimension:
            raise ConfigurationError(
                f"Group '{group.name}' is {group.dimension}D but mesh {mesh.dimensions} is {mesh.dimension}D"
            )
        group.check_unit_cell(unit_cell)

        logger.debug("Building basis: %r, %r, %r", mesh, unit_cell, group)
        waves = enumerate_waves(mesh, unit_cell)
        orbit_tables = build_orbit_tables(mesh, group)
        waves, stars = classify_stars(waves, mesh, group, orbit_tables)
        n_basis = assemble_basis_functions(waves, stars, mesh, orbit_tables)
        tables = build_lookup_tables(waves, stars, mesh)

        positions = np.empty(mesh.size, dtype=np.int64)
        positions[[mesh.rank(w.indices) for w in waves]] = np.arange(len(waves))

        self.mesh = mesh
        self.unit_cell = unit_cell
        self.group = group
        self._waves = waves
        self._stars = stars
        self._positions = positions
        self._tables = tables
        self._n_basis = n_basis
        self._dksq = self._star_derivatives()

        logger.info("Built basis for %s on %r: %d waves, %d stars, %d basis functions",
                    group.name, mesh, self.n_wave, self.n_star, self.n_basis)

    def _star_derivatives(self) -> np.ndarray:
        chars = np.array([self._waves[s.begin_id].indices_bz for s in self._stars], dtype=np.int64)
        return sq_norm_derivatives(chars, self.unit_cell.reciprocal_metric_derivatives())

    def update(self, unit_cell: UnitCell):
        """
        Refresh |k|^2, minimum-image indices and dksq for new lattice parameters.

        Stars keep their order and membership; only magnitude-dependent
        quantities change.

        Raises:
            ConfigurationError: different dimension or lattice system, or a
                cell whose metric the group does not preserve
        """
        self._require_initialized()
        if (unit_cell.dimension != self.unit_cell.dimension
                or unit_cell.lattice_system != self.unit_cell.lattice_system):
            raise ConfigurationError(
                f"Cannot update a {self.unit_cell.lattice_system} basis with {unit_cell}; rebuild it instead"
            )
        self.group.check_unit_cell(unit_cell)

        metric = unit_cell.reciprocal_metric()
        dft = np.array([w.indices for w in self._waves], dtype=np.int64)
        bz = shift_to_minimum(dft, self.mesh, metric)
        ksq = sq_norms(bz, metric)
        for wave, k, q in zip(self._waves, bz, ksq):
            wave.indices_bz = tuple(int(x) for x in k)
            wave.sq_norm = float(q)
        for star in self._stars:
            star.sq_norm = float(np.mean(ksq[star.begin_id:star.end_id]))
            char_id = star.end_id - 1 if star.invert_flag == -1 else star.begin_id
            star.characteristic = self._waves[char_id].indices_bz

        self.unit_cell = unit_cell
        self._dksq = self._star_derivatives()
        logger.debug("Updated basis to %r", unit_cell)

    # -------------------------------------------------------------------------
    # QUERIES
    # -------------------------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self._tables is not None

    def _require_initialized(self):
        if not self.is_initialized:
            raise ConsistencyError("Basis has not been built; call make_basis first")

    @property
    def n_wave(self) -> int:
        self._require_initialized()
        return len(self._waves)

    @property
    def n_star(self) -> int:
        self._require_initialized()
        return len(self._stars)

    @property
    def n_basis(self) -> int:
        self._require_initialized()
        return self._n_basis

    @property
    def waves(self) -> Tuple[Wave, ...]:
        self._require_initialized()
        return tuple(self._waves)

    @property
    def stars(self) -> Tuple[Star, ...]:
        self._require_initialized()
        return tuple(self._stars)

    @property
    def tables(self) -> LookupTables:
        self._require_initialized()
        return self._tables

    @property
    def dksq(self) -> np.ndarray:
        """d|k|^2/dp per unit-cell parameter and star, shape (n_parameters, n_star)."""
        self._require_initialized()
        return self._dksq

    @staticmethod
    def _check_rank(i: int, count: int, what: str) -> int:
        if isinstance(i, (bool, np.bool_)) or not isinstance(i, (int, np.integer)):
            raise ConsistencyError(f"{what} rank must be an integer, got {i!r}")
        if not 0 <= i < count:
            raise ConsistencyError(f"{what} rank {i} out of range [0, {count})")
        return int(i)

    def wave(self, i: int) -> Wave:
        """Wave at position i of the ordered wave list."""
        return self._waves[self._check_rank(i, self.n_wave, "Wave")]

    def wave_at(self, indices: Sequence[int]) -> Wave:
        """Wave with the given grid indices (reduced modulo the mesh)."""
        self._require_initialized()
        return self._waves[self._positions[self.mesh.rank(indices)]]

    def star(self, i: int) -> Star:
        return self._stars[self._check_rank(i, self.n_star, "Star")]

    def __repr__(self):
        if not self.is_initialized:
            return "Basis(empty)"
        return (f"Basis({self.group.name}, {self.mesh!r}: {self.n_wave} waves, "
                f"{self.n_star} stars, {self.n_basis} basis functions)")

    # -------------------------------------------------------------------------
    # CONVERSIONS
    # -------------------------------------------------------------------------

    def convert_basis_to_dft(self, components, n_components: Optional[int] = None,
                             use_tables: bool = True) -> np.ndarray:
        """
        Basis components -> half-complex DFT.

        Args:
            components: (n_basis,) or (n_components, n_basis)
            n_components: Expected number of components, if checked
            use_tables: Vectorized table kernel (True) or per-star loop (False)
        """
        self._require_initialized()
        if use_tables:
            return tables_basis_to_dft(components, self._tables, self.mesh, n_components)
        return basis_to_dft(components, self._waves, self._stars, self.mesh, self._n_basis, n_components)

    def convert_dft_to_basis(self, dft, n_components: Optional[int] = None,
                             use_tables: bool = True, check_symmetry: bool = False,
                             tol: float = 1e-8) -> np.ndarray:
        """
        Half-complex DFT -> basis components (projection onto the basis).

        With check_symmetry=True, a PrecisionWarning is issued if the
        discarded non-symmetric part exceeds tol relative to the input.
        """
        self._require_initialized()
        if use_tables:
            components = tables_dft_to_basis(dft, self._tables, self.mesh, n_components)
        else:
            components = dft_to_basis(dft, self._waves, self._stars, self.mesh, self._n_basis, n_components)
        if check_symmetry:
            check_projection(dft, self.convert_basis_to_dft(components), tol)
        return components

    def convert_rgrid_to_basis(self, rgrid, n_components: Optional[int] = None,
                               use_tables: bool = True, check_symmetry: bool = False,
                               tol: float = 1e-8) -> np.ndarray:
        """Real-space grid(s) -> basis components."""
        self._require_initialized()
        return self.convert_dft_to_basis(rgrid_to_dft(rgrid, self.mesh), n_components,
                                         use_tables, check_symmetry, tol)

    def convert_basis_to_rgrid(self, components, n_components: Optional[int] = None,
                               use_tables: bool = True) -> np.ndarray:
        """Basis components -> real-space grid(s)."""
        return dft_to_rgrid(self.convert_basis_to_dft(components, n_components, use_tables), self.mesh)


def make_basis(mesh: Mesh, unit_cell: UnitCell, group: Union[str, SpaceGroup]) -> Basis:
    """Build and return a Basis."""
    basis = Basis()
    basis.make_basis(mesh, unit_cell, group)
    return basis


# =============================================================================
# SELF-CHECK
# =============================================================================

def validate_basis(basis: Basis, n_samples: int = 3, seed: int = 0, verbose: bool = True) -> bool:
    """
    Check structural invariants and round trips of a built basis.

    Returns:
        True if every check passes
    """
    ok = True
    stars = basis.stars
    waves = basis.waves

    covered = sum(s.size for s in stars)
    if covered != basis.n_wave:
        if verbose:
            print(f"FAIL: stars cover {covered} waves, expected {basis.n_wave}")
        ok = False

    expected_begin = 0
    for i, s in enumerate(stars):
        if s.begin_id != expected_begin or s.end_id - s.begin_id != s.size:
            if verbose:
                print(f"FAIL: star {i} range [{s.begin_id}, {s.end_id}) is not contiguous")
            ok = False
        expected_begin = s.end_id
        if any(w.star_id != i for w in waves[s.begin_id:s.end_id]):
            if verbose:
                print(f"FAIL: star {i} contains waves owned by another star")
            ok = False
        if s.invert_flag == 1 and (i + 1 >= len(stars) or stars[i + 1].invert_flag != -1):
            if verbose:
                print(f"FAIL: star {i} has invert_flag +1 but no adjacent partner")
            ok = False

    for i in range(1, len(stars)):
        if stars[i].sq_norm > stars[i - 1].sq_norm * (1.0 + 1e-8) + 1e-8:
            if verbose:
                print(f"FAIL: star {i} has larger |k|^2 than star {i - 1}")
            ok = False

    n_live = sum(1 for s in stars if not s.cancel)
    if n_live != basis.n_basis:
        if verbose:
            print(f"FAIL: n_basis = {basis.n_basis} but {n_live} stars are not cancelled")
        ok = False

    rng = np.random.default_rng(seed)
    components = rng.standard_normal((n_samples, basis.n_basis))
    dft = basis.convert_basis_to_dft(components)
    dft_host = basis.convert_basis_to_dft(components, use_tables=False)
    if not np.allclose(dft, dft_host, atol=1e-12):
        if verbose:
            print("FAIL: table and host basis -> DFT disagree")
        ok = False
    back = basis.convert_dft_to_basis(dft)
    back_host = basis.convert_dft_to_basis(dft, use_tables=False)
    if not np.allclose(back, components, atol=1e-10) or not np.allclose(back_host, components, atol=1e-10):
        err = np.max(np.abs(back - components)) if components.size else 0.0
        if verbose:
            print(f"FAIL: basis -> DFT -> basis round trip error {err:.3e}")
        ok = False

    rgrid = basis.convert_basis_to_rgrid(components)
    if not np.allclose(basis.convert_rgrid_to_basis(rgrid), components, atol=1e-10):
        if verbose:
            print("FAIL: basis -> real grid -> basis round trip")
        ok = False

    return ok


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    print("=" * 70)
    print("SYMMETRY-ADAPTED BASIS")
    print("=" * 70)

    cases = [
        ("Lamellar", Mesh((16,)), UnitCell(1, 'lamellar', (2.0,)), 'p-1'),
        ("Square", Mesh((4, 4)), UnitCell(2, 'square', (1.0,)), 'p4mm'),
        ("Centered rectangular", Mesh((4, 4)), UnitCell(2, 'rectangular', (1.0, 1.5)), 'c2mm'),
        ("Hexagonal cylinders", Mesh((12, 12)), UnitCell(2, 'hexagonal', (1.7,)), 'p6mm'),
        ("BCC spheres", Mesh((8, 8, 8)), UnitCell(3, 'cubic', (1.9,)), 'Im-3m'),
        ("Double gyroid", Mesh((8, 8, 8)), UnitCell(3, 'cubic', (3.6,)), 'Ia-3d'),
    ]

    all_ok = True
    for label, mesh, cell, group_name in cases:
        print(f"\n{label}: {group_name} on {mesh!r}, {cell!r}")
        print("-" * 70)
        basis = make_basis(mesh, cell, group_name)
        cancelled = sum(1 for s in basis.stars if s.cancel)
        paired = sum(1 for s in basis.stars if s.invert_flag != 0)
        print(f"  Group order:      {basis.group.order}"
              f"{' (centrosymmetric)' if basis.group.is_centrosymmetric else ''}")
        print(f"  Waves:            {basis.n_wave}")
        print(f"  Stars:            {basis.n_star} ({paired} paired, {cancelled} cancelled)")
        print(f"  Basis functions:  {basis.n_basis}")
        passed = validate_basis(basis)
        print(f"  Self-check:       {'PASS ✓' if passed else 'FAIL ✗'}")
        all_ok = all_ok and passed

    print()
    print("All checks passed ✓" if all_ok else "*** SOME CHECKS FAILED ***")


if __name__ == "__main__":
    main()
