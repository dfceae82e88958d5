"""
CRT Modular Layer: Encoder -> Reconstructor -> Homology in one module.

This is the main building block of the engine, combining:
    1. ResidueEncoder: features -> per-modulus residue distributions
    2. CRTReconstructor: expected residues -> latent integer + error
    3. BirkhoffProjector: optional doubly-stochastic attention over Q, K, V
    4. HomologyLoss: batch-level inconsistency regularization

Architecture:
    features -> Encoder -> E[r] -> CRT (latent, coherence)
    batch of E[r] -> HomologyLoss (loss, cycles, Betti numbers)
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import torch
import torch.nn as nn

from ..core.config import CRTConfig, HomologyConfig
from ..core.errors import DimensionMismatchError
from ..core.reconstructor import CRTReconstructor
from ..utils.tensors import DTYPE, to_tensor
from .birkhoff import BirkhoffProjector
from .encoder import ResidueEncoder
from .homology import BettiNumbers, HomologyLoss, HomologyResult


@dataclass(frozen=True)
class ModularOutput:
    """Result of a single-item forward pass."""

    residues: List[torch.Tensor]
    expected_residues: torch.Tensor
    latent: int
    in_kernel: bool
    reconstruction_error: float
    coherence: float
    attention: Optional[torch.Tensor]
    modulus_product: int


@dataclass(frozen=True)
class BatchOutput:
    """Result of a batched forward pass."""

    results: List[ModularOutput]
    homology_loss: float
    mse_loss: float
    total_loss: float
    homology: HomologyResult
    betti_numbers: BettiNumbers
    total_loss_tensor: torch.Tensor = field(default_factory=lambda: torch.zeros((), dtype=DTYPE))


def coherence_from_error(error: float, tau: float) -> float:
    """1 - min(1, error / tau); 1 means perfectly integral residues."""
    if tau <= 0:
        return 1.0 if error == 0 else 0.0
    return 1.0 - min(1.0, error / tau)


class CRTModularLayer(nn.Module):
    """
    Residue encoding with CRT reconstruction and homology regularization.

    Args:
        moduli: Pairwise-coprime moduli
        hidden_dim: Feature dimension
        homology: Homology settings (default: HomologyConfig())
        sinkhorn_iterations: Max iterations for Birkhoff attention
        birkhoff_tolerance: Tolerance for Birkhoff attention
        init_scale: Encoder init range
        seed: Encoder init seed

    Example:
        >>> layer = CRTModularLayer([2, 3, 5, 7], hidden_dim=16)
        >>> out = layer(torch.rand(16))
        >>> 0 <= out.latent < 210
        True
    """

    def __init__(
        self,
        moduli: Sequence[int],
        hidden_dim: int,
        homology: Optional[HomologyConfig] = None,
        sinkhorn_iterations: int = 10,
        birkhoff_tolerance: float = 1e-3,
        init_scale: float = 0.1,
        seed: int = 0,
    ):
        super().__init__()

        self.hidden_dim = hidden_dim

        self.encoder = ResidueEncoder(moduli, hidden_dim, init_scale=init_scale, seed=seed)
        self.reconstructor = CRTReconstructor(moduli)
        self.projector = BirkhoffProjector(sinkhorn_iterations, birkhoff_tolerance)
        self.homology = HomologyLoss(homology)

        self.moduli = self.reconstructor.moduli

    @classmethod
    def from_config(cls, config: CRTConfig) -> "CRTModularLayer":
        return cls(
            config.moduli,
            config.hidden_dim,
            homology=config.homology,
            sinkhorn_iterations=config.sinkhorn_iterations,
            birkhoff_tolerance=config.birkhoff_tolerance,
            init_scale=config.init_scale,
            seed=config.seed,
        )

    def forward(self, features, q=None, k=None, v=None) -> ModularOutput:
        """
        Single-item forward pass.

        Args:
            features: [hidden_dim] feature vector
            q, k, v: Optional matrices for Birkhoff attention

        Returns:
            ModularOutput
        """
        h = to_tensor(features)
        if h.dim() != 1:
            raise DimensionMismatchError(
                f"forward expects a single feature vector, got shape {tuple(h.shape)}; "
                "use forward_batch for batches"
            )

        # 1. Encode to residue distributions
        distributions = self.encoder.encode(h)
        expected = self.encoder.expected_residues(distributions)

        # 2. CRT reconstruction of the nearest integer witness
        error = self.reconstructor.reconstruction_error(expected)
        rounded = torch.round(expected.detach()).long().tolist()
        latent = self.reconstructor.reconstruct(rounded)
        tau = self.homology.tau

        # 3. Birkhoff attention (if Q, K, V provided)
        attention = None
        if q is not None and k is not None and v is not None:
            attention, _ = self.projector.attention(q, k, v)

        return ModularOutput(
            residues=distributions,
            expected_residues=expected,
            latent=latent,
            in_kernel=error > tau,
            reconstruction_error=error,
            coherence=coherence_from_error(error, tau),
            attention=attention,
            modulus_product=self.reconstructor.modulus_product,
        )

    def forward_batch(self, features, targets=None) -> BatchOutput:
        """
        Per-item forward passes plus one homology computation over the batch.

        Args:
            features: [batch, hidden_dim] feature vectors
            targets: Optional [batch] targets for an MSE term on the soft
                reconstruction

        Returns:
            BatchOutput with losses and Betti numbers
        """
        x = to_tensor(features)
        if x.numel() == 0:
            x = x.reshape(0, self.hidden_dim)
        if x.dim() != 2:
            raise DimensionMismatchError(f"Expected [batch, {self.hidden_dim}], got {tuple(x.shape)}")

        results = [self.forward(row) for row in x]

        if results:
            residue_batch = torch.stack([r.expected_residues for r in results])
        else:
            residue_batch = torch.zeros(0, len(self.moduli), dtype=DTYPE)

        homology = self.homology.compute(residue_batch, self.reconstructor)
        betti = self.homology.betti_from_cycles(homology.components)

        mse = torch.zeros((), dtype=DTYPE)
        if targets is not None and results:
            t = to_tensor(targets)
            if t.shape != (len(results),):
                raise DimensionMismatchError(
                    f"Expected {len(results)} targets, got shape {tuple(t.shape)}"
                )
            soft = self.reconstructor.soft_reconstruct(residue_batch)
            mse = ((soft - t) ** 2).mean()

        total = mse + homology.loss_tensor

        return BatchOutput(
            results=results,
            homology_loss=homology.loss,
            mse_loss=mse.item(),
            total_loss=total.item(),
            homology=homology,
            betti_numbers=betti,
            total_loss_tensor=total,
        )
