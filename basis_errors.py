"""
Error taxonomy for the symmetry-adapted basis engine.

ConfigurationError  - bad mesh, unit cell or group (fatal, raised at build time)
ConsistencyError    - a field or query that does not match the built basis
PrecisionWarning    - symmetry-violating input was projected away (non-fatal)
"""


class BasisError(Exception):
    """Root of all errors raised by the basis engine."""


class ConfigurationError(BasisError, ValueError):
    """Invalid mesh, lattice or space group, or an incompatible combination."""


class ConsistencyError(BasisError, ValueError):
    """Input inconsistent with the basis, or basis used before it was built."""


class PrecisionWarning(UserWarning):
    """Projection onto the symmetric subspace discarded a significant part of a field."""
