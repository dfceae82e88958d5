"""
CRT-Fused Attention: one Birkhoff attention head per modulus.

Each modulus m_k owns a head with its own Q/K/V projections. The head's
attention matrix is projected onto the Birkhoff polytope, and the head
output is reduced to a residue mod m_k. The residues of all heads are fused
through CRT reconstruction into a single latent integer, whose consistency
is reported alongside the averaged head outputs.
"""

from dataclasses import dataclass
from typing import List, Sequence, Tuple

import torch
import torch.nn as nn

from ..core.errors import DimensionMismatchError
from ..core.reconstructor import CRTReconstructor
from ..utils.tensors import DTYPE, to_tensor
from .birkhoff import BirkhoffProjector
from .encoder import seeded_uniform_
from .modular_layer import coherence_from_error


@dataclass(frozen=True)
class FusedAttentionOutput:
    """Result of a CRT-fused attention pass."""

    output: torch.Tensor
    per_head_outputs: List[torch.Tensor]
    attention_weights: List[torch.Tensor]
    residues: torch.Tensor
    latent: int
    in_kernel: bool
    coherence: float
    converged: bool
    modulus_product: int


class CRTFusedAttention(nn.Module):
    """
    Multi-head Birkhoff attention fused via CRT.

    Args:
        moduli: Pairwise-coprime moduli, one per head
        hidden_dim: Input feature dimension
        head_dim: Per-head projection dimension
        sinkhorn_iterations: Max Sinkhorn iterations per head
        birkhoff_tolerance: Sinkhorn tolerance
        tau: Kernel threshold for the fused residues
        init_scale: Uniform init range for projections
        seed: Seed for projection init

    Example:
        >>> attn = CRTFusedAttention([2, 3, 5], hidden_dim=8, head_dim=4)
        >>> out = attn(torch.rand(3, 8))
        >>> out.output.shape
        torch.Size([3, 4])
    """

    def __init__(
        self,
        moduli: Sequence[int],
        hidden_dim: int,
        head_dim: int,
        sinkhorn_iterations: int = 10,
        birkhoff_tolerance: float = 1e-3,
        tau: float = 0.1,
        init_scale: float = 0.1,
        seed: int = 0,
    ):
        super().__init__()

        self.reconstructor = CRTReconstructor(moduli)
        self.projector = BirkhoffProjector(sinkhorn_iterations, birkhoff_tolerance)

        self.moduli = self.reconstructor.moduli
        self.n_heads = len(self.moduli)
        self.hidden_dim = hidden_dim
        self.head_dim = head_dim
        self.tau = tau

        # Per-modulus projections
        self.q_proj = nn.ModuleList([self._linear() for _ in self.moduli])
        self.k_proj = nn.ModuleList([self._linear() for _ in self.moduli])
        self.v_proj = nn.ModuleList([self._linear() for _ in self.moduli])

        generator = torch.Generator().manual_seed(seed)
        for projs in zip(self.q_proj, self.k_proj, self.v_proj):
            for proj in projs:
                seeded_uniform_(proj.weight, init_scale, generator)

    def _linear(self) -> nn.Linear:
        return nn.Linear(self.hidden_dim, self.head_dim, bias=False, dtype=DTYPE)

    def project_head(self, x: torch.Tensor, k: int) -> Tuple[torch.Tensor, torch.Tensor, torch.Tensor]:
        """Q, K, V projections for head k."""
        return self.q_proj[k](x), self.k_proj[k](x), self.v_proj[k](x)

    def forward(self, x) -> FusedAttentionOutput:
        """
        Args:
            x: [seq_len, hidden_dim] input sequence

        Returns:
            FusedAttentionOutput with [seq_len, head_dim] fused output
        """
        x = to_tensor(x)
        if x.dim() != 2 or x.shape[-1] != self.hidden_dim:
            raise DimensionMismatchError(
                f"Expected [seq_len, {self.hidden_dim}], got {tuple(x.shape)}"
            )

        per_head_outputs = []
        attention_weights = []
        residues = []
        converged = True

        for k, m in enumerate(self.moduli):
            Q, K, V = self.project_head(x, k)
            head_out, projection = self.projector.attention(Q, K, V)

            per_head_outputs.append(head_out)
            attention_weights.append(projection.matrix)
            converged = converged and projection.converged

            # Head residue: output mass reduced mod m
            residues.append(torch.remainder(head_out.sum(), float(m)))

        residues = torch.stack(residues)

        error = self.reconstructor.reconstruction_error(residues)
        rounded = torch.round(residues.detach()).long().tolist()
        latent = self.reconstructor.reconstruct(rounded)

        # Uniform fusion of head outputs
        output = torch.stack(per_head_outputs).mean(dim=0)

        return FusedAttentionOutput(
            output=output,
            per_head_outputs=per_head_outputs,
            attention_weights=attention_weights,
            residues=residues,
            latent=latent,
            in_kernel=error > self.tau,
            coherence=coherence_from_error(error, self.tau),
            converged=converged,
            modulus_product=self.reconstructor.modulus_product,
        )

    def extra_repr(self) -> str:
        return f"moduli={list(self.moduli)}, hidden_dim={self.hidden_dim}, head_dim={self.head_dim}"
