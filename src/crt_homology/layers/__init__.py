"""
CRT-Homology Layers: Building blocks of the engine.

This module provides the layer implementations:
    - ResidueEncoder: Features to per-modulus residue distributions
    - BirkhoffProjector: Sinkhorn-Knopp doubly-stochastic projection
    - HomologyLoss: Inconsistency-graph regularizer
    - CRTModularLayer: Encoder -> Reconstructor -> HomologyLoss
    - CRTFusedAttention: Per-modulus Birkhoff heads fused via CRT
"""

from .encoder import ResidueEncoder
from .birkhoff import BirkhoffProjector, ProjectionResult, BirkhoffValidation
from .homology import HomologyLoss, HomologyResult, BettiNumbers, Cycle, KernelPoint
from .modular_layer import CRTModularLayer, ModularOutput, BatchOutput
from .fused_attention import CRTFusedAttention, FusedAttentionOutput

__all__ = [
    "ResidueEncoder",
    "BirkhoffProjector",
    "ProjectionResult",
    "BirkhoffValidation",
    "HomologyLoss",
    "HomologyResult",
    "BettiNumbers",
    "Cycle",
    "KernelPoint",
    "CRTModularLayer",
    "ModularOutput",
    "BatchOutput",
    "CRTFusedAttention",
    "FusedAttentionOutput",
]
