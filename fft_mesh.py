"""
FFT mesh: the regular real-space grid of a periodic cell and the matching
half-complex DFT layout (the layout of numpy / scipy ``rfftn``).

Wavevector indices on the mesh are integer tuples taken modulo the mesh
dimensions. A wave is "implicit" when its last index lies beyond N/2: the
rfftn array does not store it, because for a real field its value is the
complex conjugate of the value at the negated index.
"""

from __future__ import annotations

import numpy as np
from dataclasses import dataclass
from typing import Sequence, Tuple

from basis_errors import ConfigurationError, ConsistencyError


@dataclass(frozen=True)
class Mesh:
    """Grid dimensions (N_0, ..., N_{D-1}) of a periodic simulation cell."""
    dimensions: Tuple[int, ...]

    def __post_init__(self):
        dims = tuple(self.dimensions)
        if not dims:
            raise ConfigurationError("Mesh must have at least one dimension")
        if len(dims) > 3:
            raise ConfigurationError(f"Mesh dimension must be 1, 2 or 3, got {len(dims)}")
        for n in dims:
            if int(n) != n or n <= 0:
                raise ConfigurationError(f"Mesh dimensions must be positive integers, got {dims}")
        object.__setattr__(self, 'dimensions', tuple(int(n) for n in dims))

    @property
    def dimension(self) -> int:
        return len(self.dimensions)

    @property
    def size(self) -> int:
        """Number of real-space grid points (= number of waves)."""
        return int(np.prod(self.dimensions))

    @property
    def dft_shape(self) -> Tuple[int, ...]:
        """Shape of the half-complex DFT of a real field on this mesh."""
        return self.dimensions[:-1] + (self.dimensions[-1] // 2 + 1,)

    @property
    def dft_size(self) -> int:
        return int(np.prod(self.dft_shape))

    def reduce(self, indices: Sequence[int]) -> Tuple[int, ...]:
        """Reduce integer wave indices into [0, N_i) along each axis."""
        if len(indices) != self.dimension:
            raise ConsistencyError(
                f"Expected {self.dimension} indices for mesh {self.dimensions}, got {tuple(indices)}"
            )
        return tuple(int(k) % n for k, n in zip(indices, self.dimensions))

    def rank(self, indices: Sequence[int]) -> int:
        """Row-major rank of a wave on the full grid (indices reduced first)."""
        return int(np.ravel_multi_index(self.reduce(indices), self.dimensions))

    def is_implicit(self, indices: Sequence[int]) -> bool:
        """True if this wave is not stored in the half-complex DFT array."""
        return self.reduce(indices)[-1] > self.dimensions[-1] // 2

    def dft_offset(self, indices: Sequence[int]) -> int:
        """Flat offset of an explicit wave in the half-complex DFT array."""
        reduced = self.reduce(indices)
        if reduced[-1] > self.dimensions[-1] // 2:
            raise ConsistencyError(f"Wave {reduced} is implicit and has no DFT offset")
        return int(np.ravel_multi_index(reduced, self.dft_shape))

    def negate(self, indices: Sequence[int]) -> Tuple[int, ...]:
        """Indices of the Hermitian partner -k, reduced into the mesh."""
        return self.reduce(tuple(-int(k) for k in indices))

    def index_array(self) -> np.ndarray:
        """All grid points in row-major order, shape (size, D)."""
        grids = np.meshgrid(*[np.arange(n) for n in self.dimensions], indexing='ij')
        return np.stack([g.ravel() for g in grids], axis=1).astype(np.int64)

    def __repr__(self):
        return f"Mesh({'x'.join(str(n) for n in self.dimensions)})"
