"""
CRT-Homology Core: Modular arithmetic, moduli selection and reconstruction.

This module provides the exact number-theoretic foundation of the engine:
Bezout coefficients, modular inverses, coprime moduli selection, CRT
reconstruction, and configuration.
"""

from .errors import (
    CRTHomologyError,
    InvalidModuliError,
    NotInvertibleError,
    DimensionMismatchError,
)
from .modular import extended_gcd, mod_inverse, are_coprime, validate_moduli
from .coprime import CoprimeSelector, MODULI_PRESETS, first_n_primes
from .reconstructor import CRTReconstructor, CRTCoefficient, ReconstructionResult
from .config import CRTConfig, HomologyConfig, EDGE_POLICIES

__all__ = [
    "CRTHomologyError",
    "InvalidModuliError",
    "NotInvertibleError",
    "DimensionMismatchError",
    "extended_gcd",
    "mod_inverse",
    "are_coprime",
    "validate_moduli",
    "CoprimeSelector",
    "MODULI_PRESETS",
    "first_n_primes",
    "CRTReconstructor",
    "CRTCoefficient",
    "ReconstructionResult",
    "CRTConfig",
    "HomologyConfig",
    "EDGE_POLICIES",
]
