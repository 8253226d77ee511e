"""Tests for tabular, JSON and plotted summaries."""

import json

import plotly.graph_objects as go
import pytest

from basis_reports import export_to_json, shell_counts, shell_figure, star_table
from fft_mesh import Mesh
from symmetry_basis import make_basis
from unit_cell import UnitCell


@pytest.fixture(scope='module')
def basis():
    return make_basis(Mesh((4, 4)), UnitCell(2, 'rectangular', (1.0, 1.5)), 'c2mm')


class TestStarTable:

    def test_one_row_per_star(self, basis):
        df = star_table(basis)
        assert len(df) == basis.n_star
        assert {'star', 'basis_rank', 'size', 'ksq', 'invert', 'sign', 'cancel'} <= set(df.columns)
        assert df['size'].sum() == basis.n_wave

    def test_basis_ranks(self, basis):
        df = star_table(basis)
        assert df['basis_rank'].notna().sum() == basis.n_basis
        assert df['cancel'].sum() == basis.n_star - basis.n_basis


class TestExport:

    def test_json_serializable(self, basis):
        data = export_to_json(basis, include_waves=True)
        text = json.dumps(data)
        assert json.loads(text)['group'] == 'c2mm'
        assert data['n_basis'] == 5
        assert data['cell_params'] == {'a': 1.0, 'b': 1.5}
        assert sum(len(s['waves']) for s in data['stars']) == basis.n_wave

    def test_without_waves(self, basis):
        data = export_to_json(basis)
        assert 'waves' not in data['stars'][0]
        assert data['mesh'] == [4, 4]


class TestShells:

    def test_shell_counts(self, basis):
        shells = shell_counts(basis)
        assert sum(s['n_waves'] for s in shells) == basis.n_wave
        assert sum(s['n_basis'] for s in shells) == basis.n_basis
        ksq = [s['ksq'] for s in shells]
        assert ksq == sorted(ksq, reverse=True)

    def test_figure(self, basis):
        fig = shell_figure(basis, title="c2mm")
        assert isinstance(fig, go.Figure)
        assert len(fig.data) == 2
        assert sum(fig.data[0].y) == basis.n_wave
