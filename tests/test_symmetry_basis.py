"""Tests for the Basis aggregate: lifecycle, queries, dksq and update."""

import numpy as np
import pytest

from basis_errors import ConfigurationError, ConsistencyError
from fft_mesh import Mesh
from space_groups import resolve_group
from symmetry_basis import Basis, make_basis, validate_basis
from unit_cell import UnitCell
from wave_enumerator import sq_norms


class TestLifecycle:
    """Use before and after construction."""

    def test_empty_basis(self):
        basis = Basis()
        assert not basis.is_initialized
        assert repr(basis) == "Basis(empty)"
        with pytest.raises(ConsistencyError):
            basis.n_wave
        with pytest.raises(ConsistencyError):
            basis.star(0)
        with pytest.raises(ConsistencyError):
            basis.convert_basis_to_dft(np.zeros(1))

    def test_build(self):
        basis = Basis()
        basis.make_basis(Mesh((4, 4)), UnitCell(2, 'square', (1.0,)), 'p4mm')
        assert basis.is_initialized
        assert basis.n_wave == 16
        assert basis.n_star == 6
        assert basis.n_basis == 6
        assert 'p4mm' in repr(basis)

    def test_group_object(self):
        group = resolve_group('p6mm', 2)
        basis = make_basis(Mesh((6, 6)), UnitCell(2, 'hexagonal', (1.0,)), group)
        assert basis.group is group

    @pytest.mark.parametrize("mesh,cell,group", [
        (Mesh((4, 4)), UnitCell(2, 'rectangular', (1.0, 2.0)), 'p4mm'),
        (Mesh((4, 6)), UnitCell(2, 'square', (1.0,)), 'p4mm'),
        (Mesh((4, 4)), UnitCell(2), 'p4mm'),
        (Mesh((4, 4)), UnitCell(2, 'square', (1.0,)), 'Im-3m'),
        (Mesh((4, 4, 4)), UnitCell(2, 'square', (1.0,)), 'p4mm'),
        (Mesh((5, 5, 5)), UnitCell(3, 'cubic', (1.0,)), 'Im-3m'),
    ])
    def test_failed_build_leaves_basis_empty(self, mesh, cell, group):
        basis = Basis()
        basis.make_basis(Mesh((4, 4)), UnitCell(2, 'square', (1.0,)), 'p4mm')
        with pytest.raises(ConfigurationError):
            basis.make_basis(mesh, cell, group)
        assert not basis.is_initialized


class TestQueries:
    """Wave and star lookup."""

    @pytest.fixture
    def basis(self):
        return make_basis(Mesh((4, 4)), UnitCell(2, 'square', (1.0,)), 'p4mm')

    def test_wave_by_rank(self, basis):
        assert basis.wave(0).indices_bz == (2, 2)
        assert basis.wave(basis.n_wave - 1).indices == (0, 0)

    def test_wave_by_indices(self, basis):
        wave = basis.wave_at((-1, 0))
        assert wave.indices == (3, 0)
        assert basis.star(wave.star_id).size == 4

    @pytest.mark.parametrize("rank", [-1, 16, 100, 1.0, True])
    def test_wave_out_of_range(self, basis, rank):
        with pytest.raises(ConsistencyError):
            basis.wave(rank)

    @pytest.mark.parametrize("rank", [-1, 6])
    def test_star_out_of_range(self, basis, rank):
        with pytest.raises(ConsistencyError):
            basis.star(rank)

    def test_wrong_dimension_indices(self, basis):
        with pytest.raises(ConsistencyError):
            basis.wave_at((1, 2, 3))

    def test_numpy_integer_rank(self, basis):
        assert basis.star(np.int64(1)).size == 4

    def test_read_only_views(self, basis):
        assert isinstance(basis.waves, tuple)
        assert isinstance(basis.stars, tuple)


class TestDerivatives:
    """dksq and update after a change of lattice parameters."""

    def test_dksq_finite_difference(self):
        cell = UnitCell(3, 'tetragonal', (1.2, 2.0))
        basis = make_basis(Mesh((4, 4, 6)), cell, 'P4/mmm')
        assert basis.dksq.shape == (2, basis.n_star)

        chars = np.array([s.characteristic for s in basis.stars])
        h = 1e-6
        for j in range(2):
            up = list(cell.parameters)
            down = list(cell.parameters)
            up[j] += h
            down[j] -= h
            fd = (sq_norms(chars, cell.with_parameters(up).reciprocal_metric())
                  - sq_norms(chars, cell.with_parameters(down).reciprocal_metric())) / (2 * h)
            np.testing.assert_allclose(basis.dksq[j], fd, rtol=1e-5, atol=1e-6)

    def test_update_scales_norms(self):
        basis = make_basis(Mesh((8, 8)), UnitCell(2, 'square', (1.0,)), 'p4mm')
        before = [(s.begin_id, s.end_id, s.sq_norm) for s in basis.stars]
        dksq = basis.dksq.copy()

        basis.update(UnitCell(2, 'square', (2.0,)))
        after = [(s.begin_id, s.end_id, s.sq_norm) for s in basis.stars]
        for (b0, e0, q0), (b1, e1, q1) in zip(before, after):
            assert (b0, e0) == (b1, e1)
            assert q1 == pytest.approx(q0 / 4.0)
        # d/da (c / a^2) = -2 c / a^3
        np.testing.assert_allclose(basis.dksq, dksq / 8.0, atol=1e-12)
        assert basis.unit_cell.parameters == (2.0,)

    def test_update_keeps_conversions(self):
        basis = make_basis(Mesh((6, 6)), UnitCell(2, 'hexagonal', (1.0,)), 'p6mm')
        components = np.random.default_rng(12).standard_normal(basis.n_basis)
        basis.update(UnitCell(2, 'hexagonal', (1.3,)))
        dft = basis.convert_basis_to_dft(components)
        np.testing.assert_allclose(basis.convert_dft_to_basis(dft), components, atol=1e-10)

    def test_update_rejects_other_system(self):
        basis = make_basis(Mesh((4, 4)), UnitCell(2, 'square', (1.0,)), 'p4mm')
        with pytest.raises(ConfigurationError):
            basis.update(UnitCell(2, 'rectangular', (1.0, 1.0)))
        with pytest.raises(ConfigurationError):
            basis.update(UnitCell(3, 'cubic', (1.0,)))

    def test_update_before_build(self):
        with pytest.raises(ConsistencyError):
            Basis().update(UnitCell(2, 'square', (1.0,)))


class TestValidate:
    """The built-in self-check."""

    @pytest.mark.parametrize("dims,lattice,params,group", [
        ((16,), 'lamellar', (1.0,), 'p-1'),
        ((4, 4), 'rectangular', (1.0, 1.5), 'c2mm'),
        ((6, 6), 'hexagonal', (1.0,), 'p3'),
        ((8, 8, 8), 'cubic', (1.0,), 'Fm-3m'),
    ])
    def test_validate_passes(self, dims, lattice, params, group):
        basis = make_basis(Mesh(dims), UnitCell(len(dims), lattice, params), group)
        assert validate_basis(basis, verbose=False)
