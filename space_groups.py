"""
Space Group Catalogue
=====================

Space-group descriptors for the symmetry-adapted basis.

A symmetry operation acts on fractional coordinates as r -> R r + t, with R an
integer (unimodular) matrix in the lattice basis and t a rational
translation taken modulo 1. On integer wavevector indices k (row vectors)
the same operation acts as k -> k R, and a plane wave picks up the phase
exp(2 pi i k.t).

Groups are stored as the full list of operations modulo lattice translations.
Catalogue entries are given by generators in Jones-faithful notation
("-y+1/4,x+3/4,z+1/4") and closed by breadth-first composition.

Usage:
------
    from space_groups import resolve_group

    group = resolve_group('Im-3m', dimension=3)
    len(group)                 # 96
    group.check_mesh(mesh)     # raises ConfigurationError if incompatible
"""

import re
from dataclasses import dataclass
from fractions import Fraction
from functools import lru_cache, reduce
from math import gcd
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from basis_errors import ConfigurationError
from fft_mesh import Mesh
from unit_cell import UnitCell, get_lattice_systems


_VARIABLES = 'xyz'

# Largest group we are willing to generate before declaring the generators
# malformed (Fm-3m has 192 operations).
MAX_GROUP_ORDER = 1024


# =============================================================================
# SYMMETRY OPERATIONS
# =============================================================================

@dataclass(frozen=True)
class SymmetryOperation:
    """
    Space-group operation r -> R r + t in fractional coordinates.

    Attributes:
        rotation: D x D integer matrix as a tuple of rows
        translation: D fractions, reduced into [0, 1)
    """
    rotation: Tuple[Tuple[int, ...], ...]
    translation: Tuple[Fraction, ...]

    def __post_init__(self):
        rot = tuple(tuple(int(x) for x in row) for row in self.rotation)
        trans = tuple(Fraction(t) % 1 for t in self.translation)
        if any(len(row) != len(rot) for row in rot) or len(trans) != len(rot):
            raise ConfigurationError(f"Inconsistent operation shape: R={rot}, t={trans}")
        object.__setattr__(self, 'rotation', rot)
        object.__setattr__(self, 'translation', trans)

    @classmethod
    def identity(cls, dimension: int) -> 'SymmetryOperation':
        rot = tuple(tuple(int(i == j) for j in range(dimension)) for i in range(dimension))
        return cls(rot, (Fraction(0),) * dimension)

    @property
    def dimension(self) -> int:
        return len(self.rotation)

    @property
    def matrix(self) -> np.ndarray:
        return np.array(self.rotation, dtype=np.int64)

    @property
    def is_identity(self) -> bool:
        return self == SymmetryOperation.identity(self.dimension)

    @property
    def determinant(self) -> int:
        return int(round(np.linalg.det(self.matrix)))

    def compose(self, other: 'SymmetryOperation') -> 'SymmetryOperation':
        """self o other: r -> R1 (R2 r + t2) + t1."""
        r1, r2 = self.rotation, other.rotation
        n = self.dimension
        rot = tuple(
            tuple(sum(r1[i][k] * r2[k][j] for k in range(n)) for j in range(n))
            for i in range(n)
        )
        trans = tuple(
            sum((r1[i][k] * other.translation[k] for k in range(n)
                 if r1[i][k] and other.translation[k]), self.translation[i])
            for i in range(n)
        )
        return SymmetryOperation(rot, trans)

    def __str__(self):
        return format_operation(self)


def _format_fraction(f: Fraction) -> str:
    return f"{f.numerator}/{f.denominator}" if f.denominator != 1 else str(f.numerator)


def format_operation(op: SymmetryOperation) -> str:
    """Jones-faithful string, e.g. '-y+1/4,x+3/4,z+1/4'."""
    parts = []
    for row, t in zip(op.rotation, op.translation):
        s = ""
        for coeff, var in zip(row, _VARIABLES):
            if coeff == 0:
                continue
            sign = '-' if coeff < 0 else ('+' if s else '')
            mag = '' if abs(coeff) == 1 else str(abs(coeff))
            s += f"{sign}{mag}{var}"
        if t != 0:
            s += f"+{_format_fraction(t)}" if s else _format_fraction(t)
        parts.append(s or '0')
    return ','.join(parts)


_UNICODE_FRACTIONS = {
    '½': '1/2', '⅓': '1/3', '⅔': '2/3', '¼': '1/4', '¾': '3/4',
    '⅙': '1/6', '⅚': '5/6', '⅛': '1/8', '⅜': '3/8', '⅝': '5/8', '⅞': '7/8',
}

_TERM = re.compile(r'([+-]?)(\d+(?:/\d+)?)?([xyz]?)')


def parse_operation(text: str, dimension: int) -> SymmetryOperation:
    """
    Parse a Jones-faithful operation like '-x+1/2,-y,z+1/2'.

    Each comma-separated component is a sum of terms: an optional sign, an
    optional integer (or fraction) and an optional variable among the first
    `dimension` letters of 'xyz'.

    Raises:
        ConfigurationError: on malformed text
    """
    s = text.strip().replace(' ', '')
    for k, v in _UNICODE_FRACTIONS.items():
        s = s.replace(k, v)
    components = s.split(',')
    if len(components) != dimension:
        raise ConfigurationError(f"Operation '{text}' has {len(components)} components, expected {dimension}")

    allowed = _VARIABLES[:dimension]
    rotation = []
    translation = []
    for comp in components:
        row = [0] * dimension
        shift = Fraction(0)
        consumed = 0
        for m in _TERM.finditer(comp):
            if not m.group(0):
                continue
            if m.start() != consumed:
                break
            consumed = m.end()
            sign, number, var = m.groups()
            if not number and not var:
                raise ConfigurationError(f"Malformed term in operation '{text}'")
            value = Fraction(number) if number else Fraction(1)
            if sign == '-':
                value = -value
            if var:
                if var not in allowed or value.denominator != 1:
                    raise ConfigurationError(f"Invalid variable term '{m.group(0)}' in '{text}'")
                row[allowed.index(var)] += int(value)
            else:
                shift += value
        if consumed != len(comp) or not comp:
            raise ConfigurationError(f"Cannot parse component '{comp}' of operation '{text}'")
        rotation.append(tuple(row))
        translation.append(shift)
    return SymmetryOperation(tuple(rotation), tuple(translation))


# =============================================================================
# SPACE GROUP
# =============================================================================

def _operation_sort_key(op: SymmetryOperation):
    return (not op.is_identity, op.rotation, op.translation)


class SpaceGroup:
    """
    A finite group of symmetry operations modulo lattice translations.

    Construction validates the descriptor: identity present, every rotation
    unimodular, and closure under composition. A malformed or truncated
    operation list raises ConfigurationError.

    Attributes:
        name: Symbolic name, e.g. 'p4mm'
        dimension: Spatial dimension
        operations: All operations, identity first
        lattice_systems: Compatible lattice systems, or None for any
    """

    def __init__(self, name: str, dimension: int,
                 operations: Iterable[SymmetryOperation],
                 lattice_systems: Optional[Sequence[str]] = None,
                 check_closure: bool = True):
        self.name = name
        self.dimension = dimension
        ops = sorted(set(operations), key=_operation_sort_key)
        self.lattice_systems = tuple(lattice_systems) if lattice_systems is not None else None
        self.operations: List[SymmetryOperation] = ops
        self._validate(check_closure)

    @classmethod
    def from_generators(cls, name: str, dimension: int,
                        generators: Iterable, lattice_systems: Optional[Sequence[str]] = None
                        ) -> 'SpaceGroup':
        """
        Generate a group by closure of generators (strings or operations).

        Uses BFS-style closure: only products of new elements with the
        generators are formed. In a finite group every element is a word in
        the generators, so this reaches the whole group.
        """
        gens = set()
        for g in generators:
            gens.add(parse_operation(g, dimension) if isinstance(g, str) else g)

        group = {SymmetryOperation.identity(dimension)}
        frontier = gens - group
        group.update(gens)

        while frontier:
            new_frontier = set()
            for g in frontier:
                for s in gens:
                    prod = g.compose(s)
                    if prod not in group:
                        new_frontier.add(prod)
            group.update(new_frontier)
            if len(group) > MAX_GROUP_ORDER:
                raise ConfigurationError(
                    f"Generators of '{name}' do not close into a finite group "
                    f"(more than {MAX_GROUP_ORDER} operations)"
                )
            frontier = new_frontier

        # closed by construction
        return cls(name, dimension, group, lattice_systems, check_closure=False)

    def _validate(self, check_closure: bool = True):
        if not self.operations:
            raise ConfigurationError(f"Group '{self.name}' has no operations")
        for op in self.operations:
            if op.dimension != self.dimension:
                raise ConfigurationError(
                    f"Operation {op} in group '{self.name}' is {op.dimension}D, expected {self.dimension}D"
                )
            if abs(op.determinant) != 1:
                raise ConfigurationError(f"Operation {op} is not unimodular (det = {op.determinant})")
        if not self.operations[0].is_identity:
            raise ConfigurationError(f"Group '{self.name}' does not contain the identity")
        if not check_closure:
            return

        members = set(self.operations)
        for g in self.operations:
            for h in self.operations:
                if g.compose(h) not in members:
                    raise ConfigurationError(
                        f"Operations of '{self.name}' are not closed: {g} o {h} = {g.compose(h)} missing"
                    )

    # -------------------------------------------------------------------------

    @property
    def order(self) -> int:
        return len(self.operations)

    def __len__(self) -> int:
        return self.order

    def __iter__(self):
        return iter(self.operations)

    @property
    def is_centrosymmetric(self) -> bool:
        """True if some operation has R = -1 (an inversion center exists)."""
        minus_one = tuple(tuple(-int(i == j) for j in range(self.dimension)) for i in range(self.dimension))
        return any(op.rotation == minus_one for op in self.operations)

    @property
    def translation_denominator(self) -> int:
        """Least common denominator L of all translation components."""
        dens = [t.denominator for op in self.operations for t in op.translation]
        return reduce(lambda a, b: a * b // gcd(a, b), dens, 1)

    def rotation_stack(self) -> np.ndarray:
        """All rotation matrices, shape (order, D, D)."""
        return np.array([op.rotation for op in self.operations], dtype=np.int64)

    def translation_numerators(self) -> np.ndarray:
        """Translations scaled by translation_denominator, shape (order, D), integer."""
        L = self.translation_denominator
        return np.array(
            [[int(t * L) for t in op.translation] for op in self.operations], dtype=np.int64
        )

    # -------------------------------------------------------------------------

    def check_mesh(self, mesh: Mesh):
        """
        Check that every operation maps the real-space grid onto itself.

        Requires N_j | N_i R_ij (rotations respect the grid) and N_i t_i integer
        (translations land on grid points).
        """
        if mesh.dimension != self.dimension:
            raise ConfigurationError(
                f"Mesh {mesh.dimensions} is {mesh.dimension}D but group '{self.name}' is {self.dimension}D"
            )
        dims = mesh.dimensions
        for op in self.operations:
            for i in range(self.dimension):
                for j in range(self.dimension):
                    if (dims[i] * op.rotation[i][j]) % dims[j] != 0:
                        raise ConfigurationError(
                            f"Mesh {dims} is incompatible with operation {op} of group '{self.name}'"
                        )
                if (op.translation[i] * dims[i]).denominator != 1:
                    raise ConfigurationError(
                        f"Mesh {dims} is incompatible with translation of {op} in group '{self.name}'"
                    )

    def check_unit_cell(self, unit_cell: UnitCell, tol: float = 1e-8):
        """
        Check that the lattice system is supported and that every rotation
        preserves the reciprocal metric (R G* R^T = G*).
        """
        unit_cell.require_set()
        if unit_cell.dimension != self.dimension:
            raise ConfigurationError(
                f"Unit cell is {unit_cell.dimension}D but group '{self.name}' is {self.dimension}D"
            )
        if self.lattice_systems is not None and unit_cell.lattice_system not in self.lattice_systems:
            raise ConfigurationError(
                f"Group '{self.name}' is not supported for the {unit_cell.lattice_system} lattice system "
                f"(supported: {list(self.lattice_systems)})"
            )
        metric = unit_cell.reciprocal_metric()
        scale = np.max(np.abs(metric))
        for op in self.operations:
            R = op.matrix.astype(np.float64)
            if not np.allclose(R @ metric @ R.T, metric, atol=tol * scale, rtol=0.0):
                raise ConfigurationError(
                    f"Operation {op} of group '{self.name}' does not preserve the metric of {unit_cell}"
                )

    def __repr__(self):
        return f"SpaceGroup('{self.name}', {self.dimension}D, order={self.order})"


# =============================================================================
# CATALOGUE
# =============================================================================

@dataclass(frozen=True)
class GroupEntry:
    """A single catalogue entry."""
    name: str
    dimension: int
    generators: Tuple[str, ...]
    lattice_systems: Tuple[str, ...]
    description: str = ""


_ALL_2D = tuple(get_lattice_systems(2))
_ALL_3D = tuple(get_lattice_systems(3))

GROUP_CATALOGUE: Dict[Tuple[int, str], GroupEntry] = {
    (e.dimension, e.name): e for e in [
        # 1D
        GroupEntry('p1', 1, ('x',), ('lamellar',), 'No symmetry'),
        GroupEntry('p-1', 1, ('-x',), ('lamellar',), 'Inversion (symmetric lamellae)'),

        # 2D
        GroupEntry('p1', 2, ('x,y',), _ALL_2D, 'No symmetry'),
        GroupEntry('p2', 2, ('-x,-y',), _ALL_2D, '2-fold rotation'),
        GroupEntry('p2mm', 2, ('-x,y', 'x,-y'), ('rectangular', 'square'), 'Rectangular mirrors'),
        GroupEntry('c2mm', 2, ('-x,y', 'x,-y', 'x+1/2,y+1/2'), ('rectangular', 'square'),
                   'Centered rectangular'),
        GroupEntry('p4', 2, ('-y,x',), ('square',), '4-fold rotation'),
        GroupEntry('p4mm', 2, ('-y,x', 'x,-y'), ('square',), 'Square, full point symmetry'),
        GroupEntry('p4gm', 2, ('-y,x', '-x+1/2,y+1/2'), ('square',), 'Square with glide lines'),
        GroupEntry('p3', 2, ('-y,x-y',), ('hexagonal',), '3-fold rotation'),
        GroupEntry('p6', 2, ('x-y,x',), ('hexagonal',), '6-fold rotation'),
        GroupEntry('p6mm', 2, ('x-y,x', 'y,x'), ('hexagonal',), 'Hexagonal cylinders'),

        # 3D
        GroupEntry('P1', 3, ('x,y,z',), _ALL_3D, 'No symmetry'),
        GroupEntry('P-1', 3, ('-x,-y,-z',), _ALL_3D, 'Inversion'),
        GroupEntry('Pmmm', 3, ('-x,y,z', 'x,-y,z', 'x,y,-z'),
                   ('orthorhombic', 'tetragonal', 'cubic'), 'Orthorhombic mirrors'),
        GroupEntry('P4', 3, ('-y,x,z',), ('tetragonal', 'cubic'), '4-fold rotation about c'),
        GroupEntry('P4/mmm', 3, ('-y,x,z', 'x,-y,z', 'x,y,-z'), ('tetragonal', 'cubic'),
                   'Tetragonal, full point symmetry'),
        GroupEntry('P6/mmm', 3, ('x-y,x,z', 'y,x,z', 'x,y,-z'), ('hexagonal',),
                   'Hexagonal, full point symmetry'),
        GroupEntry('R-3m', 3, ('z,x,y', '-y,-x,-z', '-x,-y,-z'), ('rhombohedral', 'cubic'),
                   'Rhombohedral axes'),
        GroupEntry('Pm-3m', 3, ('z,x,y', '-y,x,z', '-x,-y,-z'), ('cubic',), 'Simple cubic'),
        GroupEntry('Im-3m', 3, ('z,x,y', '-y,x,z', '-x,-y,-z', 'x+1/2,y+1/2,z+1/2'), ('cubic',),
                   'Body-centered cubic spheres'),
        GroupEntry('Fm-3m', 3, ('z,x,y', '-y,x,z', '-x,-y,-z', 'x,y+1/2,z+1/2', 'x+1/2,y,z+1/2'),
                   ('cubic',), 'Face-centered cubic spheres'),
        GroupEntry('Ia-3d', 3, ('-x+1/2,-y,z+1/2', '-x,y+1/2,-z+1/2', 'z,x,y',
                                'y+3/4,x+1/4,-z+1/4', '-x,-y,-z', 'x+1/2,y+1/2,z+1/2'),
                   ('cubic',), 'Double gyroid'),
    ]
}


def get_group_names(dimension: int) -> List[str]:
    """Catalogue names available in a given dimension."""
    return [name for (dim, name) in GROUP_CATALOGUE if dim == dimension]


@lru_cache(maxsize=64)
def resolve_group(name: str, dimension: int) -> SpaceGroup:
    """
    Resolve a symbolic group name into a SpaceGroup.

    Raises:
        ConfigurationError: if the name is not in the catalogue for this dimension
    """
    entry = GROUP_CATALOGUE.get((dimension, name.strip()))
    if entry is None:
        raise ConfigurationError(
            f"Unknown {dimension}D space group '{name}'. Available: {get_group_names(dimension)}"
        )
    return SpaceGroup.from_generators(entry.name, entry.dimension, entry.generators, entry.lattice_systems)
