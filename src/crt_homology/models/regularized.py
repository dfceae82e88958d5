"""
Homology-Regularized Model: transformer-style stack with CRT-fused attention.

Each block runs CRT-fused Birkhoff attention over a sequence and collects
the fused residues of every sequence in the batch. Those residues form a
batch for the homology regularizer, whose loss is returned alongside the
hidden states so it can be added to a task loss.

Architecture:
    Input -> LayerNorm -> CRTFusedAttention -> Proj -> Add -> LayerNorm -> FFN -> Add
"""

from typing import List, Optional, Tuple

import torch
import torch.nn as nn

from ..core.config import CRTConfig, HomologyConfig
from ..core.errors import DimensionMismatchError
from ..layers.fused_attention import CRTFusedAttention
from ..layers.homology import HomologyLoss
from ..utils.tensors import DTYPE, to_tensor


class FeedForward(nn.Module):
    """Standard feedforward network with GELU activation."""

    def __init__(self, d_model: int, d_ff: int, dropout: float = 0.1):
        super().__init__()

        self.net = nn.Sequential(
            nn.Linear(d_model, d_ff, dtype=DTYPE),
            nn.GELU(),
            nn.Dropout(dropout),
            nn.Linear(d_ff, d_model, dtype=DTYPE),
            nn.Dropout(dropout),
        )

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return self.net(x)


class HomologyRegularizedBlock(nn.Module):
    """
    Pre-norm block with CRT-fused attention and homology regularization.

    Args:
        moduli: Pairwise-coprime moduli (one attention head each)
        hidden_dim: Hidden dimension size
        head_dim: Per-head dimension
        d_ff: Feedforward dimension
        homology: Homology settings; its weight scales the block loss
        dropout: Dropout probability
        sinkhorn_iterations: Max Sinkhorn iterations per head
        birkhoff_tolerance: Sinkhorn tolerance
        init_scale: Attention projection init range
        seed: Attention projection init seed
        layer_norm_eps: LayerNorm epsilon

    Example:
        >>> block = HomologyRegularizedBlock([2, 3, 5], hidden_dim=8, head_dim=4, d_ff=32)
        >>> hidden = torch.rand(2, 6, 8, dtype=torch.float64)
        >>> output, loss, stats = block(hidden, return_stats=True)
    """

    def __init__(
        self,
        moduli,
        hidden_dim: int,
        head_dim: int,
        d_ff: int,
        homology: Optional[HomologyConfig] = None,
        dropout: float = 0.1,
        sinkhorn_iterations: int = 10,
        birkhoff_tolerance: float = 1e-3,
        init_scale: float = 0.1,
        seed: int = 0,
        layer_norm_eps: float = 1e-5,
    ):
        super().__init__()

        self.hidden_dim = hidden_dim
        self.homology = HomologyLoss(homology)

        # Layer norms
        self.norm1 = nn.LayerNorm(hidden_dim, eps=layer_norm_eps, dtype=DTYPE)
        self.norm2 = nn.LayerNorm(hidden_dim, eps=layer_norm_eps, dtype=DTYPE)

        self.attention = CRTFusedAttention(
            moduli,
            hidden_dim,
            head_dim,
            sinkhorn_iterations=sinkhorn_iterations,
            birkhoff_tolerance=birkhoff_tolerance,
            tau=self.homology.tau,
            init_scale=init_scale,
            seed=seed,
        )
        self.out_proj = nn.Linear(head_dim, hidden_dim, dtype=DTYPE)

        # Feedforward
        self.ffn = FeedForward(hidden_dim, d_ff, dropout)

        # Dropout
        self.dropout = nn.Dropout(dropout)

    def forward(
        self,
        hidden_states: torch.Tensor,
        return_stats: bool = False,
    ) -> Tuple[torch.Tensor, torch.Tensor, Optional[dict]]:
        """
        Forward pass with homology regularization.

        Args:
            hidden_states: [batch, seq_len, hidden_dim]
            return_stats: Return attention/homology statistics

        Returns:
            output: [batch, seq_len, hidden_dim]
            loss: Weighted homology loss (scalar tensor)
            stats: Optional dict with homology statistics
        """
        hidden_states = to_tensor(hidden_states)
        if (
            hidden_states.dim() != 3
            or hidden_states.shape[-1] != self.hidden_dim
            or hidden_states.shape[0] == 0
        ):
            raise DimensionMismatchError(
                f"Expected [batch, seq_len, {self.hidden_dim}], got {tuple(hidden_states.shape)}"
            )

        # Pre-norm
        normed = self.norm1(hidden_states)

        # Fused attention per sequence
        fused = [self.attention(seq) for seq in normed]
        attn_output = self.out_proj(torch.stack([f.output for f in fused]))

        # Residual connection
        hidden_states = hidden_states + self.dropout(attn_output)

        # FFN with pre-norm and residual
        hidden_states = hidden_states + self.dropout(self.ffn(self.norm2(hidden_states)))

        # Homology over the fused residues of the batch
        residue_batch = torch.stack([f.residues for f in fused])
        homology = self.homology.compute(residue_batch, self.attention.reconstructor)

        stats = None
        if return_stats:
            stats = {
                "homology_loss": homology.loss,
                "cycles": homology.cycles,
                "mean_coherence": sum(f.coherence for f in fused) / len(fused),
                "kernel_ratio": sum(f.in_kernel for f in fused) / len(fused),
                "converged": all(f.converged for f in fused),
            }

        return hidden_states, homology.loss_tensor, stats


class HomologyRegularizedModel(nn.Module):
    """
    Stack of homology-regularized blocks.

    Inputs are feature sequences produced upstream; the model returns the
    transformed sequences and the homology loss accumulated over blocks.

    Args:
        config: CRTConfig with model hyperparameters

    Example:
        >>> config = CRTConfig(preset="small", hidden_dim=16, n_layers=2)
        >>> model = HomologyRegularizedModel(config)
        >>> hidden, loss = model(torch.rand(2, 8, 16, dtype=torch.float64))
    """

    def __init__(self, config: CRTConfig):
        super().__init__()

        self.config = config
        self.hidden_dim = config.hidden_dim
        self.n_layers = config.n_layers

        # One init seed per block
        self.layers = nn.ModuleList([
            HomologyRegularizedBlock(
                config.moduli,
                config.hidden_dim,
                config.head_dim,
                config.d_ff,
                homology=config.homology,
                dropout=config.dropout,
                sinkhorn_iterations=config.sinkhorn_iterations,
                birkhoff_tolerance=config.birkhoff_tolerance,
                init_scale=config.init_scale,
                seed=config.seed + i,
                layer_norm_eps=config.layer_norm_eps,
            )
            for i in range(config.n_layers)
        ])

        # Final layer norm
        self.final_norm = nn.LayerNorm(config.hidden_dim, eps=config.layer_norm_eps, dtype=DTYPE)

    def forward(self, hidden_states, return_stats: bool = False):
        """
        Args:
            hidden_states: [batch, seq_len, hidden_dim]
            return_stats: Return per-block statistics

        Returns:
            hidden_states: [batch, seq_len, hidden_dim]
            homology_loss: Sum of block losses (scalar tensor)
            stats: Per-block stats list (only if return_stats)
        """
        hidden_states = to_tensor(hidden_states)

        total_loss = torch.zeros((), dtype=DTYPE)
        all_stats: Optional[List[dict]] = [] if return_stats else None

        for layer in self.layers:
            hidden_states, loss, stats = layer(hidden_states, return_stats)
            total_loss = total_loss + loss
            if return_stats:
                all_stats.append(stats)

        hidden_states = self.final_norm(hidden_states)

        if return_stats:
            return hidden_states, total_loss, all_stats
        return hidden_states, total_loss

    def num_parameters(self, trainable_only: bool = True) -> int:
        """Count model parameters."""
        if trainable_only:
            return sum(p.numel() for p in self.parameters() if p.requires_grad)
        return sum(p.numel() for p in self.parameters())
