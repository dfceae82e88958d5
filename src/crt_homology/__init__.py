"""
CRT-Homology: Modular-residue fusion and consistency detection.

A numeric engine that reconstructs integers from per-modulus residue
estimates via the Chinese Remainder Theorem, projects score matrices onto
the Birkhoff polytope, and turns inconsistent residue estimates into a
graph-structural regularization signal.

The key idea is that a residue tuple with no exact integer witness is a
consistency failure. Batches of such failures form an inconsistency graph
whose components ("cycles") are penalized by a homology loss.

Pipeline:
    1. Encode features into one residue distribution per coprime modulus
    2. Take expected residues and reconstruct the latent integer via CRT
    3. Score distance from integrality; flag tuples above tau as kernel members
    4. Connect kernel members into a graph and penalize its components

Note:
    Cycle counts and Betti numbers are graph heuristics, not simplicial
    homology.

Example:
    >>> from crt_homology import CRTModularLayer
    >>> layer = CRTModularLayer([2, 3, 5, 7], hidden_dim=16)
    >>> out = layer.forward_batch(torch.rand(4, 16))
    >>> out.betti_numbers.beta0

License: MIT
"""

__version__ = "0.1.0"

from .core.errors import (
    CRTHomologyError,
    InvalidModuliError,
    NotInvertibleError,
    DimensionMismatchError,
)
from .core.modular import extended_gcd, mod_inverse, are_coprime
from .core.coprime import CoprimeSelector, MODULI_PRESETS
from .core.reconstructor import CRTReconstructor
from .core.config import CRTConfig, HomologyConfig
from .layers.encoder import ResidueEncoder
from .layers.birkhoff import BirkhoffProjector
from .layers.homology import HomologyLoss
from .layers.modular_layer import CRTModularLayer
from .layers.fused_attention import CRTFusedAttention
from .models.regularized import HomologyRegularizedBlock, HomologyRegularizedModel

__all__ = [
    # Errors
    "CRTHomologyError",
    "InvalidModuliError",
    "NotInvertibleError",
    "DimensionMismatchError",
    # Core
    "extended_gcd",
    "mod_inverse",
    "are_coprime",
    "CoprimeSelector",
    "MODULI_PRESETS",
    "CRTReconstructor",
    "CRTConfig",
    "HomologyConfig",
    # Layers
    "ResidueEncoder",
    "BirkhoffProjector",
    "HomologyLoss",
    "CRTModularLayer",
    "CRTFusedAttention",
    # Models
    "HomologyRegularizedBlock",
    "HomologyRegularizedModel",
    # Metadata
    "__version__",
]
