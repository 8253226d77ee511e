"""
Symmetry-Adapted Basis Explorer
Streamlit application for building star classifications and checking field round trips
"""
import streamlit as st
import numpy as np
import pandas as pd
import json
from typing import Optional, Tuple

from basis_errors import BasisError
from basis_reports import export_to_json, shell_figure, star_table
from fft_mesh import Mesh
from space_groups import GROUP_CATALOGUE, get_group_names
from symmetry_basis import Basis, make_basis, validate_basis
from unit_cell import LATTICE_SYSTEMS, UnitCell

st.set_page_config(
    page_title="Symmetry-Adapted Basis Explorer",
    page_icon="🔷",
    layout="wide"
)

DEFAULT_LENGTH = 1.0
DEFAULT_ANGLE = 90.0

EXAMPLES = {
    'Lamellar (p-1)': {'dimension': 1, 'group': 'p-1', 'lattice': 'lamellar', 'mesh': (32,)},
    'Square (p4mm)': {'dimension': 2, 'group': 'p4mm', 'lattice': 'square', 'mesh': (16, 16)},
    'Hexagonal cylinders (p6mm)': {'dimension': 2, 'group': 'p6mm', 'lattice': 'hexagonal', 'mesh': (24, 24)},
    'BCC spheres (Im-3m)': {'dimension': 3, 'group': 'Im-3m', 'lattice': 'cubic', 'mesh': (16, 16, 16)},
    'Double gyroid (Ia-3d)': {'dimension': 3, 'group': 'Ia-3d', 'lattice': 'cubic', 'mesh': (16, 16, 16)},
}


@st.cache_resource(show_spinner=False)
def cached_basis(mesh_dims: Tuple[int, ...], lattice: str, params: Tuple[float, ...], group: str) -> Basis:
    """Build (and cache) a basis for one configuration."""
    return make_basis(Mesh(mesh_dims), UnitCell(len(mesh_dims), lattice, params), group)


def parameter_inputs(dimension: int, lattice: str) -> Tuple[float, ...]:
    system = LATTICE_SYSTEMS[(dimension, lattice)]
    cols = st.columns(len(system.parameter_names))
    values = []
    for col, name in zip(cols, system.parameter_names):
        with col:
            if name in system.angle_names:
                values.append(st.number_input(name, min_value=1.0, max_value=179.0,
                                              value=DEFAULT_ANGLE, step=1.0, key=f'param_{name}'))
            else:
                values.append(st.number_input(name, min_value=0.01, value=DEFAULT_LENGTH,
                                              step=0.1, key=f'param_{name}'))
    return tuple(values)


def round_trip_report(basis: Basis, n_samples: int, seed: int) -> pd.DataFrame:
    """Round-trip errors for random symmetric fields on both conversion paths."""
    rng = np.random.default_rng(seed)
    components = rng.standard_normal((n_samples, basis.n_basis))
    rows = []
    for label, use_tables in [('Lookup tables', True), ('Star loop', False)]:
        dft = basis.convert_basis_to_dft(components, use_tables=use_tables)
        back = basis.convert_dft_to_basis(dft, use_tables=use_tables)
        rgrid = basis.convert_basis_to_rgrid(components, use_tables=use_tables)
        back_r = basis.convert_rgrid_to_basis(rgrid, use_tables=use_tables)
        rows.append({
            'Path': label,
            'basis→DFT→basis': float(np.max(np.abs(back - components))) if components.size else 0.0,
            'basis→grid→basis': float(np.max(np.abs(back_r - components))) if components.size else 0.0,
        })
    return pd.DataFrame(rows)


def main():
    st.title("🔷 Symmetry-Adapted Basis Explorer")
    st.markdown("Classify the Fourier modes of a periodic cell into stars under a space group")

    if 'basis' not in st.session_state:
        st.session_state.basis = None
    if 'error' not in st.session_state:
        st.session_state.error = None
    if 'example' not in st.session_state:
        st.session_state.example = EXAMPLES['Square (p4mm)']

    with st.sidebar:
        st.header("📚 Examples")
        for name, config in EXAMPLES.items():
            if st.button(name, use_container_width=True):
                st.session_state.example = config
                st.session_state.basis = None
                st.session_state.error = None
                st.rerun()

    example = st.session_state.example

    col1, col2 = st.columns([1, 2])

    with col1:
        st.header("⚙️ Setup")
        dimension = st.selectbox("Dimension", [1, 2, 3], index=example['dimension'] - 1)

        groups = get_group_names(dimension)
        default_group = example['group'] if example['group'] in groups else groups[0]
        group = st.selectbox("Space group", groups, index=groups.index(default_group))
        entry = GROUP_CATALOGUE[(dimension, group)]
        if entry.description:
            st.caption(entry.description)

        lattices = list(entry.lattice_systems)
        default_lattice = example['lattice'] if example['lattice'] in lattices else lattices[0]
        lattice = st.selectbox("Lattice system", lattices, index=lattices.index(default_lattice))
        params = parameter_inputs(dimension, lattice)

        st.subheader("Mesh")
        mesh_cols = st.columns(dimension)
        default_mesh = example['mesh'] if len(example['mesh']) == dimension else (16,) * dimension
        mesh_dims = []
        for i, col in enumerate(mesh_cols):
            with col:
                mesh_dims.append(int(st.number_input(f"N{i}", min_value=1, max_value=128,
                                                     value=default_mesh[i], step=1, key=f'mesh_{i}')))

        if st.button("Build basis", type="primary", use_container_width=True):
            with st.spinner("Classifying waves..."):
                try:
                    st.session_state.basis = cached_basis(tuple(mesh_dims), lattice, params, group)
                    st.session_state.error = None
                except BasisError as e:
                    st.session_state.basis = None
                    st.session_state.error = str(e)

    with col2:
        basis: Optional[Basis] = st.session_state.basis
        if st.session_state.error:
            st.error(st.session_state.error)
        if basis is None:
            st.info("Choose a configuration and press **Build basis**")
            return

        metric_cols = st.columns(4)
        metric_cols[0].metric("Group order", basis.group.order)
        metric_cols[1].metric("Waves", basis.n_wave)
        metric_cols[2].metric("Stars", basis.n_star)
        metric_cols[3].metric("Basis functions", basis.n_basis)

        tab_stars, tab_shells, tab_check = st.tabs(["Stars", "Shells", "Round trip"])

        with tab_stars:
            df = star_table(basis)
            only_live = st.checkbox("Hide cancelled stars", value=False)
            if only_live:
                df = df[~df['cancel']]
            st.dataframe(df, use_container_width=True, hide_index=True)
            st.download_button(
                "Download JSON",
                data=json.dumps(export_to_json(basis), indent=2),
                file_name=f"basis_{basis.group.name.replace('/', '_')}.json",
                mime="application/json",
            )

        with tab_shells:
            st.plotly_chart(shell_figure(basis, title=f"{basis.group.name} on {basis.mesh!r}"),
                            use_container_width=True)

        with tab_check:
            check_cols = st.columns(2)
            with check_cols[0]:
                n_samples = st.number_input("Random fields", min_value=1, max_value=16, value=3)
            with check_cols[1]:
                seed = st.number_input("Seed", min_value=0, value=0)
            if st.button("Run check"):
                passed = validate_basis(basis, n_samples=int(n_samples), seed=int(seed), verbose=False)
                if passed:
                    st.success("All structural checks and round trips passed ✓")
                else:
                    st.error("Self-check failed ✗")
                st.dataframe(round_trip_report(basis, int(n_samples), int(seed)),
                             use_container_width=True, hide_index=True)


if __name__ == "__main__":
    main()
