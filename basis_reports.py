"""
Tabular, JSON and plotted summaries of a built Basis.
"""

from typing import Dict, List

import numpy as np
import pandas as pd
import plotly.graph_objects as go

from star_classifier import SQ_NORM_TOL
from symmetry_basis import Basis


_INVERT_LABELS = {0: 'closed', 1: 'pair +', -1: 'pair -'}


def _format_indices(indices) -> str:
    return '(' + ', '.join(str(i) for i in indices) + ')'


def star_table(basis: Basis) -> pd.DataFrame:
    """One row per star, in basis order."""
    rows = []
    rank = 0
    for i, star in enumerate(basis.stars):
        rows.append({
            'star': i,
            'basis_rank': None if star.cancel else rank,
            'size': star.size,
            'ksq': star.sq_norm,
            '|k|': float(np.sqrt(star.sq_norm)),
            'characteristic': _format_indices(star.characteristic),
            'invert': _INVERT_LABELS[star.invert_flag],
            'sign': star.sign_flag,
            'cancel': star.cancel,
        })
        if not star.cancel:
            rank += 1
    return pd.DataFrame(rows)


def shell_counts(basis: Basis) -> List[Dict]:
    """
    Group stars into shells of equal |k|^2.

    Returns:
        List of {'ksq', 'n_waves', 'n_stars', 'n_basis'}, descending |k|^2
    """
    shells: List[Dict] = []
    for star in basis.stars:
        if shells and abs(shells[-1]['ksq'] - star.sq_norm) <= SQ_NORM_TOL * (1.0 + star.sq_norm):
            shell = shells[-1]
        else:
            shell = {'ksq': star.sq_norm, 'n_waves': 0, 'n_stars': 0, 'n_basis': 0}
            shells.append(shell)
        shell['n_waves'] += star.size
        shell['n_stars'] += 1
        shell['n_basis'] += 0 if star.cancel else 1
    return shells


def export_to_json(basis: Basis, include_waves: bool = False) -> dict:
    """
    Export the classification to a JSON-serializable dict.

    Suitable for web apps and data exchange.
    """
    stars_data = []
    for i, star in enumerate(basis.stars):
        star_data = {
            "star_index": i,
            "size": star.size,
            "begin_id": star.begin_id,
            "end_id": star.end_id,
            "sq_norm": star.sq_norm,
            "invert_flag": star.invert_flag,
            "sign_flag": star.sign_flag,
            "cancel": star.cancel,
            "characteristic": list(star.characteristic),
        }
        if include_waves:
            star_data["waves"] = [
                {
                    "indices": list(w.indices),
                    "indices_bz": list(w.indices_bz),
                    "coeff": [w.coeff.real, w.coeff.imag],
                    "implicit": w.implicit,
                }
                for w in basis.waves[star.begin_id:star.end_id]
            ]
        stars_data.append(star_data)

    cell = basis.unit_cell
    return {
        "group": basis.group.name,
        "group_order": basis.group.order,
        "mesh": list(basis.mesh.dimensions),
        "lattice_system": cell.lattice_system,
        "cell_params": dict(zip(cell.parameter_names, cell.parameters)),
        "cell_volume": cell.volume,
        "n_wave": basis.n_wave,
        "n_star": basis.n_star,
        "n_basis": basis.n_basis,
        "stars": stars_data,
    }


def shell_figure(basis: Basis, title: str = "") -> go.Figure:
    """Bar chart of wave and basis-function counts per |k| shell."""
    shells = shell_counts(basis)[::-1]
    k = [float(np.sqrt(s['ksq'])) for s in shells]
    labels = [f"{v:.3f}" for v in k]

    fig = go.Figure()
    fig.add_trace(go.Bar(
        x=labels, y=[s['n_waves'] for s in shells],
        name='Waves', marker_color='steelblue',
    ))
    fig.add_trace(go.Bar(
        x=labels, y=[s['n_basis'] for s in shells],
        name='Basis functions', marker_color='darkorange',
    ))
    fig.update_layout(
        barmode='group',
        xaxis=dict(title='|k|', type='category'),
        yaxis=dict(title='Count'),
        height=350,
        margin=dict(l=0, r=0, t=30, b=0),
        title=dict(text=title, font=dict(size=12)),
    )
    return fig
