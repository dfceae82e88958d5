"""
CRT-Homology Configuration: Moduli, thresholds and loss settings.

Provides dataclass-based configuration with sensible defaults. Configuration
objects are built once and passed explicitly to the components that need
them; nothing here is shared global state.
"""

from dataclasses import dataclass, fields
from typing import Optional, Tuple

from .coprime import CoprimeSelector

EDGE_POLICIES = ("threshold", "band", "sequential")


@dataclass(frozen=True)
class HomologyConfig:
    """
    Settings for the homology regularizer.

    Cycle cost:
        f(cycle) = sum_{i in cycle} sigmoid(error_i - tau) * |cycle|^alpha * beta^gamma

    Edge policies for the inconsistency graph:
        threshold: connect every pair of kernel members
        band: connect kernel members whose errors differ by <= similarity_band
        sequential: connect kernel members at consecutive batch indices
    """

    tau: float = 0.1
    alpha: float = 1.0
    beta: float = 1.0
    gamma: float = 0.5
    weight: float = 1.0
    edge_policy: str = "threshold"
    similarity_band: Optional[float] = None

    def __post_init__(self):
        assert self.tau >= 0, "tau must be non-negative"
        assert self.beta >= 0, "beta must be non-negative"
        assert self.weight >= 0, "weight must be non-negative"
        if self.edge_policy not in EDGE_POLICIES:
            raise ValueError(
                f"Unknown edge policy: {self.edge_policy}. Use one of {', '.join(EDGE_POLICIES)}."
            )
        if self.edge_policy == "band":
            assert self.similarity_band is not None and self.similarity_band >= 0, (
                "band policy requires a non-negative similarity_band"
            )


@dataclass
class CRTConfig:
    """
    Configuration for CRT modular layers and homology-regularized models.

    Moduli Parameters:
        moduli: Explicit pairwise-coprime moduli (overrides preset)
        preset: Named moduli preset used when moduli is None

    Architecture Parameters:
        hidden_dim: Feature dimension consumed by the encoder
        head_dim: Per-modulus attention head dimension (default: hidden_dim)
        n_layers: Number of regularized blocks in a model
        d_ff: Feedforward dimension (default: 4 * hidden_dim)
        dropout: Dropout probability

    Homology Parameters:
        tau: Kernel threshold on reconstruction error
        alpha: Cycle-length exponent
        beta, gamma: Cycle-cost scale beta^gamma
        homology_weight: Overall loss weight (lambda)
        edge_policy: Inconsistency-graph edge rule
        similarity_band: Error band for the "band" policy

    Projection Parameters:
        sinkhorn_iterations: Max Sinkhorn-Knopp iterations
        birkhoff_tolerance: Row/column sum tolerance

    Initialization:
        init_scale: Uniform init range for encoder/projection weights
        seed: Seed for deterministic weight init

    Example:
        >>> config = CRTConfig(preset="semantic", hidden_dim=32)
        >>> config.moduli
        (2, 3, 5, 7, 11)
    """

    # Moduli
    moduli: Optional[Tuple[int, ...]] = None
    preset: str = "small"

    # Architecture
    hidden_dim: int = 16
    head_dim: Optional[int] = None
    n_layers: int = 2
    d_ff: Optional[int] = None
    dropout: float = 0.1
    layer_norm_eps: float = 1e-5

    # Homology
    tau: float = 0.1
    alpha: float = 1.0
    beta: float = 1.0
    gamma: float = 0.5
    homology_weight: float = 1.0
    edge_policy: str = "threshold"
    similarity_band: Optional[float] = None

    # Projection
    sinkhorn_iterations: int = 10
    birkhoff_tolerance: float = 1e-3

    # Initialization
    init_scale: float = 0.1
    seed: int = 0

    def __post_init__(self):
        """Set derived defaults after initialization."""
        if self.moduli is None:
            self.moduli = tuple(CoprimeSelector().select_for_domain(self.preset))
        else:
            self.moduli = tuple(self.moduli)
        if self.head_dim is None:
            self.head_dim = self.hidden_dim
        if self.d_ff is None:
            self.d_ff = 4 * self.hidden_dim

        # Validate
        assert self.hidden_dim > 0, "hidden_dim must be positive"
        assert self.head_dim > 0, "head_dim must be positive"
        assert self.n_layers >= 1, "n_layers must be at least 1"
        assert 0 <= self.dropout < 1, "dropout must be in [0, 1)"
        assert self.sinkhorn_iterations >= 0, "sinkhorn_iterations must be non-negative"
        assert self.birkhoff_tolerance > 0, "birkhoff_tolerance must be positive"

    @property
    def homology(self) -> HomologyConfig:
        """Homology regularizer settings derived from this config."""
        return HomologyConfig(
            tau=self.tau,
            alpha=self.alpha,
            beta=self.beta,
            gamma=self.gamma,
            weight=self.homology_weight,
            edge_policy=self.edge_policy,
            similarity_band=self.similarity_band,
        )

    def to_dict(self) -> dict:
        """Convert config to dictionary."""
        d = {f.name: getattr(self, f.name) for f in fields(self)}
        d["moduli"] = list(self.moduli)
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "CRTConfig":
        """Create config from dictionary."""
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})

    @classmethod
    def small(cls, **kwargs) -> "CRTConfig":
        """Moduli [2, 3, 5, 7], P = 210."""
        return cls(preset="small", **kwargs)

    @classmethod
    def medium(cls, **kwargs) -> "CRTConfig":
        """Moduli [5, 7, 11, 13], P = 5005."""
        return cls(preset="medium", **kwargs)

    @classmethod
    def large(cls, **kwargs) -> "CRTConfig":
        """Moduli [11, 13, 17, 19], P = 46189."""
        return cls(preset="large", **kwargs)

    @classmethod
    def semantic(cls, **kwargs) -> "CRTConfig":
        """Moduli [2, 3, 5, 7, 11], P = 2310."""
        return cls(preset="semantic", **kwargs)

    @classmethod
    def temporal(cls, **kwargs) -> "CRTConfig":
        """Moduli [3, 5, 7, 11, 13], P = 15015."""
        return cls(preset="temporal", **kwargs)
