"""
Homology Loss: inconsistency detection over a batch of residue tuples.

Each tuple in a batch is scored by its CRT reconstruction error. Tuples
whose error exceeds tau are kernel members: they have no exact integer
witness. Kernel members become nodes of an inconsistency graph whose edges
are chosen by a configurable policy, and the connected components of that
graph are the detected cycles.

Loss:
    f(cycle) = sum_{i in cycle} sigmoid(error_i - tau) * |cycle|^alpha * beta^gamma
    L = weight * sum_{cycles} f(cycle)

Note:
    The "cycles" and Betti numbers reported here are graph statistics
    (component and closed-loop counts), not simplicial homology. They are
    meant only as a regularization signal.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import torch

from ..core.config import HomologyConfig
from ..core.reconstructor import CRTReconstructor
from ..utils.tensors import DTYPE, to_tensor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KernelPoint:
    """A batch item whose residues are inconsistent beyond tau."""

    index: int
    residues: Tuple[float, ...]
    error: float


@dataclass(frozen=True)
class Cycle:
    """
    A connected component of the inconsistency graph.

    A complete component (every pair of points connected) keeps its edges
    implicit; edges is empty and edge_count is V(V-1)/2.
    """

    points: Tuple[KernelPoint, ...]
    edges: Tuple[Tuple[int, int], ...] = ()
    complete: bool = False

    def __len__(self) -> int:
        return len(self.points)

    @property
    def indices(self) -> List[int]:
        return [p.index for p in self.points]

    @property
    def errors(self) -> List[float]:
        return [p.error for p in self.points]

    @property
    def mean_error(self) -> float:
        return sum(self.errors) / len(self.points) if self.points else 0.0

    @property
    def persistence(self) -> float:
        """Spread of errors across the cycle (max - min)."""
        if not self.points:
            return 0.0
        return max(self.errors) - min(self.errors)

    @property
    def edge_count(self) -> int:
        if self.complete:
            n = len(self.points)
            return n * (n - 1) // 2
        return len(self.edges)

    @property
    def independent_loops(self) -> int:
        """Cyclomatic number E - V + 1 of the component."""
        if not self.points:
            return 0
        return self.edge_count - len(self.points) + 1

    @property
    def closed(self) -> bool:
        """True if the component contains a loop (length >= 3 in a simple graph)."""
        return self.independent_loops > 0


@dataclass(frozen=True)
class HomologyResult:
    """Loss and cycle statistics for one batch."""

    loss: float
    cycles: int
    details: List[Dict] = field(default_factory=list)
    total_points: int = 0
    components: Tuple[Cycle, ...] = ()
    loss_tensor: torch.Tensor = field(default_factory=lambda: torch.zeros((), dtype=DTYPE))


@dataclass(frozen=True)
class BettiNumbers:
    """Heuristic Betti numbers of the inconsistency graph."""

    beta0: int
    beta1: int
    cycles: int
    independent_loops: int


class HomologyLoss:
    """
    Detects inconsistency cycles in a residue batch and scores them.

    Args:
        config: HomologyConfig with threshold, cost and edge-policy settings

    Example:
        >>> crt = CRTReconstructor([2, 3, 5])
        >>> homology = HomologyLoss(HomologyConfig(tau=0.1))
        >>> result = homology.compute([[0, 1, 2], [0.5, 1.5, 2.5]], crt)
        >>> result.cycles
        1
    """

    def __init__(self, config: Optional[HomologyConfig] = None):
        self.config = config if config is not None else HomologyConfig()

    @property
    def tau(self) -> float:
        return self.config.tau

    def __repr__(self) -> str:
        return f"HomologyLoss({self.config})"

    def detect_cycles(self, batch, reconstructor: CRTReconstructor) -> List[Cycle]:
        """
        Build the inconsistency graph and return its components.

        Args:
            batch: [B, K] residue tuples (list or tensor)
            reconstructor: CRTReconstructor for the batch's moduli

        Returns:
            Cycles ordered by their smallest batch index
        """
        _, cycles = self._analyze(batch, reconstructor)
        return cycles

    def cycle_loss(self, cycle: Cycle) -> float:
        """f(cycle) = sum sigmoid(error - tau) * |cycle|^alpha * beta^gamma."""
        if len(cycle) == 0:
            return 0.0
        errors = torch.tensor(cycle.errors, dtype=DTYPE)
        return float(self._cycle_cost(errors))

    def compute(self, batch, reconstructor: CRTReconstructor) -> HomologyResult:
        """
        Total homology loss over a batch.

        An empty batch, or one without kernel members, yields zero loss and
        zero cycles.
        """
        errors, cycles = self._analyze(batch, reconstructor)

        if not cycles:
            return HomologyResult(loss=0.0, cycles=0)

        total = torch.zeros((), dtype=DTYPE)
        details = []
        for cycle in cycles:
            index = torch.tensor(cycle.indices, dtype=torch.long)
            cost = self._cycle_cost(errors[index])
            total = total + cost
            details.append({
                "length": len(cycle),
                "loss": cost.item(),
                "points": cycle.indices,
                "mean_error": cycle.mean_error,
                "persistence": cycle.persistence,
                "closed": cycle.closed,
            })

        loss_tensor = self.config.weight * total
        return HomologyResult(
            loss=loss_tensor.item(),
            cycles=len(cycles),
            details=details,
            total_points=sum(len(c) for c in cycles),
            components=tuple(cycles),
            loss_tensor=loss_tensor,
        )

    def compute_betti_numbers(self, batch, reconstructor: CRTReconstructor) -> BettiNumbers:
        """
        beta0 = components among kernel members, beta1 = closed components.
        """
        return self.betti_from_cycles(self.detect_cycles(batch, reconstructor))

    @staticmethod
    def betti_from_cycles(cycles: Sequence[Cycle]) -> BettiNumbers:
        return BettiNumbers(
            beta0=len(cycles),
            beta1=sum(1 for c in cycles if c.closed),
            cycles=len(cycles),
            independent_loops=sum(c.independent_loops for c in cycles),
        )

    def _analyze(self, batch, reconstructor: CRTReconstructor) -> Tuple[torch.Tensor, List[Cycle]]:
        """Per-item errors (with grad) and the detected cycles."""
        residues = to_tensor(batch)
        errors = reconstructor.batch_reconstruction_error(residues)
        if errors.numel() == 0:
            return errors, []

        detached = errors.detach()
        points = [
            KernelPoint(index=i, residues=tuple(residues[i].detach().tolist()), error=detached[i].item())
            for i in torch.nonzero(detached > self.config.tau).flatten().tolist()
        ]
        if self.config.edge_policy == "threshold":
            # Complete graph: all kernel members form one component
            cycles = [Cycle(points=tuple(points), complete=True)] if points else []
        else:
            cycles = self._components(points, self._build_edges(points))

        logger.debug(
            "Homology batch=%d kernel=%d cycles=%d", errors.numel(), len(points), len(cycles)
        )
        return errors, cycles

    def _build_edges(self, points: List[KernelPoint]) -> List[Tuple[int, int]]:
        """Explicit edges between kernel members, as batch-index pairs."""
        policy = self.config.edge_policy

        if policy == "sequential":
            return [
                (a.index, b.index)
                for a, b in zip(points, points[1:])
                if b.index == a.index + 1
            ]

        if policy == "band":
            band = self.config.similarity_band
            return [
                (a.index, b.index)
                for i, a in enumerate(points)
                for b in points[i + 1:]
                if abs(a.error - b.error) <= band
            ]

        raise ValueError(f"Unknown edge policy: {policy}")

    @staticmethod
    def _components(points: List[KernelPoint], edges: List[Tuple[int, int]]) -> List[Cycle]:
        """Connected components via union-find, ordered by smallest index."""
        parent = {p.index: p.index for p in points}

        def find(i: int) -> int:
            while parent[i] != i:
                parent[i] = parent[parent[i]]
                i = parent[i]
            return i

        for a, b in edges:
            ra, rb = find(a), find(b)
            if ra != rb:
                parent[max(ra, rb)] = min(ra, rb)

        groups: Dict[int, List[KernelPoint]] = {}
        for p in points:
            groups.setdefault(find(p.index), []).append(p)

        edge_groups: Dict[int, List[Tuple[int, int]]] = {}
        for e in edges:
            edge_groups.setdefault(find(e[0]), []).append(e)

        return [
            Cycle(points=tuple(groups[root]), edges=tuple(edge_groups.get(root, ())))
            for root in sorted(groups)
        ]

    def _cycle_cost(self, errors: torch.Tensor) -> torch.Tensor:
        c = self.config
        n = errors.numel()
        scale = (n ** c.alpha) * (c.beta ** c.gamma)
        return torch.sigmoid(errors - c.tau).sum() * scale
