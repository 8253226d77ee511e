"""Unit tests for basis-function coefficients, sign and cancel flags."""

import numpy as np
import pytest

from basis_functions import unit_phase
from fft_mesh import Mesh
from space_groups import SpaceGroup
from symmetry_basis import make_basis
from unit_cell import UnitCell


def build(dims, lattice, params, group):
    return make_basis(Mesh(dims), UnitCell(len(dims), lattice, params), group)


class TestUnitPhase:
    """Exact phases at quarter turns."""

    def test_quarter_turns_exact(self):
        assert unit_phase(0, 4) == 1
        assert unit_phase(1, 4) == 1j
        assert unit_phase(2, 4) == -1
        assert unit_phase(3, 4) == -1j
        assert unit_phase(6, 8) == -1j
        assert unit_phase(-1, 4) == -1j

    def test_general_phase(self):
        assert unit_phase(1, 3) == pytest.approx(np.exp(2j * np.pi / 3))


class TestCancellation:
    """Stars whose basis function vanishes identically."""

    def test_c2mm_4x4(self):
        """Centering cancels every star with h + k odd."""
        basis = build((4, 4), 'rectangular', (1.0, 1.5), 'c2mm')
        assert basis.n_star == 9
        assert basis.n_basis == 5
        for star in basis.stars:
            h, k = star.characteristic
            assert star.cancel == ((h + k) % 2 == 1)
            if star.cancel:
                assert star.size == 2

    def test_p4gm_axial_extinctions(self):
        """Glide lines cancel (h, 0) and (0, k) with odd index."""
        basis = build((8, 8), 'square', (1.0,), 'p4gm')
        by_char = {s.characteristic: s for s in basis.stars}
        assert by_char[(1, 0)].cancel
        assert by_char[(3, 0)].cancel
        assert not by_char[(2, 0)].cancel
        assert not by_char[(2, 1)].cancel
        assert not by_char[(1, 1)].cancel

    def test_cancelled_coefficients_zero(self):
        basis = build((8, 8, 8), 'cubic', (1.0,), 'Ia-3d')
        cancelled = [s for s in basis.stars if s.cancel]
        assert cancelled
        for star in cancelled:
            for wave in basis.waves[star.begin_id:star.end_id]:
                assert wave.coeff == 0

    def test_body_centering(self):
        """Im-3m cancels every wave with odd h + k + l."""
        basis = build((8, 8, 8), 'cubic', (1.0,), 'Im-3m')
        for star in basis.stars:
            assert star.cancel == (sum(star.characteristic) % 2 == 1)


class TestCoefficients:
    """Normalization, reality and sign conventions."""

    CASES = [
        ((8, 8), 'square', (1.0,), 'p4gm'),
        ((12, 12), 'hexagonal', (1.0,), 'p6mm'),
        ((6, 6), 'hexagonal', (1.0,), 'p3'),
        ((4, 4, 6), 'tetragonal', (1.0, 1.7), 'P4'),
        ((8, 8, 8), 'cubic', (1.0,), 'Ia-3d'),
    ]

    @pytest.fixture(scope='class', params=CASES, ids=lambda c: c[3])
    def basis(self, request):
        return build(*request.param)

    def test_normalized(self, basis):
        for star in basis.stars:
            if star.cancel:
                continue
            block = basis.waves[star.begin_id:star.end_id]
            assert sum(abs(w.coeff) ** 2 for w in block) == pytest.approx(1.0)
            for w in block:
                assert abs(w.coeff) == pytest.approx(1.0 / np.sqrt(star.size))

    def test_closed_stars_real(self, basis):
        """c(-k) = conj(c(k)) within a closed star."""
        for star in basis.stars:
            if star.invert_flag != 0 or star.cancel:
                continue
            for w in basis.waves[star.begin_id:star.end_id]:
                partner = basis.wave_at(basis.mesh.negate(w.indices))
                assert partner.coeff == pytest.approx(w.coeff.conjugate())

    def test_pair_coefficients_conjugate(self, basis):
        """The -1 star carries conj(c(-k)) of its +1 partner."""
        for star in basis.stars:
            if star.invert_flag != -1:
                continue
            for w in basis.waves[star.begin_id:star.end_id]:
                partner = basis.wave_at(basis.mesh.negate(w.indices))
                assert basis.star(partner.star_id).invert_flag == 1
                assert w.coeff == pytest.approx(partner.coeff.conjugate())

    def test_pair_sign_flags(self, basis):
        for star in basis.stars:
            if star.invert_flag != 0:
                assert star.sign_flag == star.invert_flag

    def test_characteristic_phase_convention(self, basis):
        """First coefficient of a closed star has positive real part, or is +i."""
        for star in basis.stars:
            if star.invert_flag != 0 or star.cancel:
                continue
            c0 = basis.waves[star.begin_id].coeff
            assert c0.real > 1e-12 or (abs(c0.real) < 1e-12 and c0.imag > 0)

    def test_closed_sign_flags(self, basis):
        for star in basis.stars:
            if star.invert_flag != 0 or star.cancel:
                continue
            coeffs = np.array([w.coeff for w in basis.waves[star.begin_id:star.end_id]])
            if star.sign_flag == 1:
                np.testing.assert_allclose(coeffs.imag, 0.0, atol=1e-14)
            elif star.sign_flag == -1:
                np.testing.assert_allclose(coeffs.real, 0.0, atol=1e-14)


class TestParity:
    """Even and odd functions under a shifted inversion."""

    def test_shifted_inversion(self):
        """With the inversion center at x = 1/4, odd waves give sine functions."""
        group = SpaceGroup.from_generators('shifted', 1, ['-x+1/2'])
        basis = make_basis(Mesh((16,)), UnitCell(1, 'lamellar', (1.0,)), group)
        assert basis.n_star == 9
        assert basis.n_basis == 9
        for star in basis.stars:
            assert star.invert_flag == 0
            k = abs(star.characteristic[0])
            assert star.sign_flag == (-1 if k % 2 else 1)

        first = basis.wave_at((1,))
        assert first.indices_bz == (1,)
        assert first.coeff == pytest.approx(1j / np.sqrt(2))

    def test_centrosymmetric_even(self):
        basis = build((12, 12), 'hexagonal', (1.0,), 'p6mm')
        assert all(s.sign_flag == 1 for s in basis.stars if not s.cancel)

    def test_trivial_group_coefficients(self):
        """For p1 every star is one wave with coefficient 1."""
        basis = build((4, 5), 'rectangular', (1.0, 1.2), 'p1')
        assert basis.n_star == basis.n_wave == basis.n_basis == 20
        for w in basis.waves:
            assert w.coeff == 1
