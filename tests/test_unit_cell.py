"""Unit tests for UnitCell and Mesh."""

import numpy as np
import pytest

from basis_errors import ConfigurationError, ConsistencyError
from fft_mesh import Mesh
from unit_cell import UnitCell, get_lattice_systems


class TestUnitCell:
    """Tests for lattice systems and the reciprocal metric."""

    def test_square_metric(self):
        """Reciprocal metric of a square cell is (2 pi / a)^2 I."""
        cell = UnitCell(2, 'square', (2.0,))
        np.testing.assert_allclose(cell.reciprocal_metric(), np.pi ** 2 * np.eye(2))

    def test_reciprocal_vectors_dual(self):
        """a_i . b_j = 2 pi delta_ij for every lattice system."""
        examples = {
            (1, 'lamellar'): (1.5,),
            (2, 'hexagonal'): (1.0,),
            (2, 'oblique'): (1.0, 1.3, 75.0),
            (3, 'monoclinic'): (1.0, 1.2, 1.4, 100.0),
            (3, 'rhombohedral'): (1.0, 70.0),
            (3, 'triclinic'): (1.0, 1.1, 1.2, 80.0, 85.0, 95.0),
        }
        for (dim, name), params in examples.items():
            cell = UnitCell(dim, name, params)
            A = cell.lattice_vectors()
            B = cell.reciprocal_vectors()
            np.testing.assert_allclose(A @ B.T, 2 * np.pi * np.eye(dim), atol=1e-12)

    def test_volume(self):
        assert UnitCell(3, 'cubic', (2.0,)).volume == pytest.approx(8.0)
        assert UnitCell(2, 'hexagonal', (1.0,)).volume == pytest.approx(np.sqrt(3) / 2)
        assert UnitCell(1, 'lamellar', (3.0,)).volume == pytest.approx(3.0)

    def test_rhombohedral_angles(self):
        """All three rhombohedral vectors have length a and mutual angle beta."""
        A = UnitCell(3, 'rhombohedral', (2.0, 70.0)).lattice_vectors()
        np.testing.assert_allclose(np.linalg.norm(A, axis=1), [2.0, 2.0, 2.0])
        cos_beta = np.cos(np.radians(70.0))
        for i, j in [(0, 1), (1, 2), (0, 2)]:
            assert A[i] @ A[j] / 4.0 == pytest.approx(cos_beta)

    def test_metric_derivatives_match_finite_difference(self):
        """Complex-step derivatives agree with central differences."""
        cell = UnitCell(3, 'monoclinic', (2.0, 3.0, 4.0, 100.0))
        derivs = cell.reciprocal_metric_derivatives()
        assert derivs.shape == (4, 3, 3)

        h = 1e-6
        for j in range(4):
            up = list(cell.parameters)
            down = list(cell.parameters)
            up[j] += h
            down[j] -= h
            fd = (cell.with_parameters(up).reciprocal_metric()
                  - cell.with_parameters(down).reciprocal_metric()) / (2 * h)
            np.testing.assert_allclose(derivs[j], fd, rtol=1e-5, atol=1e-8)

    def test_lattice_system_names(self):
        assert get_lattice_systems(1) == ['lamellar']
        assert 'hexagonal' in get_lattice_systems(2)
        assert 'triclinic' in get_lattice_systems(3)

    def test_name_normalized(self):
        assert UnitCell(2, ' Square ', (1.0,)).lattice_system == 'square'

    @pytest.mark.parametrize("args", [
        (4, 'cubic', (1.0,)),
        (2, 'cubic', (1.0,)),
        (2, 'square', (1.0, 2.0)),
        (2, 'square', (-1.0,)),
        (2, 'rhombic', (1.0, 180.0)),
        (2, 'oblique', (1.0, 1.0, 0.0)),
        (3, 'triclinic', (1.0, 1.0, 1.0, 10.0, 10.0, 100.0)),
        (2, None, (1.0,)),
    ])
    def test_invalid_cells(self, args):
        with pytest.raises(ConfigurationError):
            UnitCell(*args)

    def test_unset_cell(self):
        """An unset cell can be constructed but not queried."""
        cell = UnitCell(3)
        assert not cell.is_set
        with pytest.raises(ConfigurationError):
            cell.reciprocal_metric()
        with pytest.raises(ConfigurationError):
            cell.require_set()

    def test_errors_are_value_errors(self):
        with pytest.raises(ValueError):
            UnitCell(2, 'square', (0.0,))


class TestMesh:
    """Tests for the Mesh dataclass."""

    def test_dft_shape(self):
        assert Mesh((4, 5)).dft_shape == (4, 3)
        assert Mesh((5,)).dft_shape == (3,)
        assert Mesh((8, 8, 8)).dft_size == 8 * 8 * 5

    def test_size_and_dimension(self):
        mesh = Mesh((3, 4, 5))
        assert mesh.size == 60
        assert mesh.dimension == 3

    @pytest.mark.parametrize("dims", [(), (0, 4), (4, -2), (2.5,), (2, 2, 2, 2)])
    def test_invalid_mesh(self, dims):
        with pytest.raises(ConfigurationError):
            Mesh(dims)

    def test_rank_and_offsets(self):
        mesh = Mesh((4, 6))
        assert mesh.rank((1, 2)) == 8
        assert mesh.rank((-1, 0)) == 18
        assert mesh.dft_offset((1, 2)) == 6
        assert mesh.is_implicit((0, 4))
        assert not mesh.is_implicit((0, 3))
        assert mesh.negate((1, 2)) == (3, 4)

    def test_implicit_wave_has_no_offset(self):
        with pytest.raises(ConsistencyError):
            Mesh((4, 6)).dft_offset((0, 5))

    def test_wrong_index_length(self):
        with pytest.raises(ConsistencyError):
            Mesh((4, 4)).rank((1, 2, 3))

    def test_index_array_row_major(self):
        K = Mesh((2, 3)).index_array()
        assert K.shape == (6, 2)
        assert K[:4].tolist() == [[0, 0], [0, 1], [0, 2], [1, 0]]
