"""
Residue Encoder: feature vectors to per-modulus residue distributions.

For each modulus m_k the encoder scores the feature vector against m_k
classes and normalizes with softmax:

    r_k = softmax(W_k h + b_k)  in  Delta(Z / m_k)

The expected residue E[r_k] = sum_v v * r_k[v] is the real-valued bridge
into CRT reconstruction. Sharp distributions give near-integer expectations;
diffuse ones give fractional expectations that the reconstructor flags.
"""

from typing import List, Sequence

import torch
import torch.nn as nn
import torch.nn.functional as F

from ..core.errors import DimensionMismatchError
from ..core.modular import validate_moduli
from ..utils.tensors import DTYPE, to_tensor


def seeded_uniform_(weight: torch.Tensor, scale: float, generator: torch.Generator) -> None:
    """Fill weight in-place with U(-scale, scale) drawn from generator."""
    with torch.no_grad():
        values = torch.rand(weight.shape, generator=generator, dtype=weight.dtype)
        weight.copy_((values * 2 - 1) * scale)


class ResidueEncoder(nn.Module):
    """
    Maps features to one probability distribution per modulus.

    Weights are initialized from a seeded generator so two encoders built
    with the same arguments are identical.

    Args:
        moduli: Pairwise-coprime moduli
        hidden_dim: Length of the input feature vector
        init_scale: Uniform init range for head weights
        seed: Seed for weight initialization

    Example:
        >>> encoder = ResidueEncoder([2, 3, 5], hidden_dim=8)
        >>> dists = encoder.encode(torch.ones(8))
        >>> [d.shape[-1] for d in dists]
        [2, 3, 5]
    """

    def __init__(
        self,
        moduli: Sequence[int],
        hidden_dim: int,
        init_scale: float = 0.1,
        seed: int = 0,
    ):
        super().__init__()

        self.moduli = validate_moduli(moduli)
        self.hidden_dim = hidden_dim

        self.heads = nn.ModuleList([nn.Linear(hidden_dim, m, dtype=DTYPE) for m in self.moduli])

        generator = torch.Generator().manual_seed(seed)
        for head in self.heads:
            seeded_uniform_(head.weight, init_scale, generator)
            nn.init.zeros_(head.bias)

        # Residue values 0..m-1 per modulus
        for k, m in enumerate(self.moduli):
            self.register_buffer(f"values_{k}", torch.arange(m, dtype=DTYPE), persistent=False)

    def forward(self, features) -> List[torch.Tensor]:
        return self.encode(features)

    def encode(self, features) -> List[torch.Tensor]:
        """
        Encode features into residue distributions.

        Args:
            features: [hidden_dim] or [batch, hidden_dim]

        Returns:
            K tensors of shape [..., m_k], each summing to 1
        """
        h = to_tensor(features)
        if h.dim() == 0 or h.shape[-1] != self.hidden_dim:
            raise DimensionMismatchError(
                f"Expected features of length {self.hidden_dim}, got shape {tuple(h.shape)}"
            )

        return [F.softmax(head(h), dim=-1) for head in self.heads]

    def expected_residues(self, distributions: Sequence[torch.Tensor]) -> torch.Tensor:
        """
        Per-modulus expectations E[r_k].

        Returns:
            [..., K] expected residues, each in [0, m_k - 1]
        """
        if len(distributions) != len(self.moduli):
            raise DimensionMismatchError(
                f"Expected {len(self.moduli)} distributions, got {len(distributions)}"
            )

        expectations = []
        for k, (dist, m) in enumerate(zip(distributions, self.moduli)):
            dist = to_tensor(dist)
            if dist.shape[-1] != m:
                raise DimensionMismatchError(
                    f"Distribution {k} has {dist.shape[-1]} entries, expected {m}"
                )
            expectations.append((dist * getattr(self, f"values_{k}")).sum(dim=-1))

        return torch.stack(expectations, dim=-1)
