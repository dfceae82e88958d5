"""
Birkhoff Projector: Sinkhorn-Knopp projection onto doubly-stochastic matrices.

A doubly-stochastic matrix is nonnegative with every row and column summing
to 1; the set of them (the Birkhoff polytope) is the convex hull of the
permutation matrices. Alternating row and column normalization converges to
such a matrix for any positive input.

Iteration:
    1. Divide each row by its sum
    2. Divide each column by its sum
    3. Stop when max |sum - 1| over all rows and columns <= tolerance,
       or after max_iterations

Rows or columns that sum to zero are replaced by the uniform vector 1/n.
Non-finite input (NaN or inf entries) is returned unchanged with
converged=False and an infinite deviation.
"""

import logging
import math
from dataclasses import dataclass
from typing import Tuple

import torch

from ..core.errors import DimensionMismatchError
from ..utils.tensors import to_tensor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProjectionResult:
    """Projected matrix with convergence information."""

    matrix: torch.Tensor
    iterations_used: int
    converged: bool
    max_deviation: float


@dataclass(frozen=True)
class BirkhoffValidation:
    """Row and column sum errors of a candidate doubly-stochastic matrix."""

    is_doubly_stochastic: bool
    max_row_error: float
    max_col_error: float
    row_errors: torch.Tensor
    col_errors: torch.Tensor


def _normalize(matrix: torch.Tensor, dim: int) -> torch.Tensor:
    """Normalize along dim; zero-sum slices become uniform."""
    n = matrix.shape[dim]
    sums = matrix.sum(dim=dim, keepdim=True)
    nonzero = sums > 0
    safe = torch.where(nonzero, sums, torch.ones_like(sums))
    uniform = torch.full_like(matrix, 1.0 / n)
    return torch.where(nonzero, matrix / safe, uniform)


def _sum_errors(matrix: torch.Tensor) -> Tuple[torch.Tensor, torch.Tensor]:
    row_errors = (matrix.sum(dim=-1) - 1).abs()
    col_errors = (matrix.sum(dim=-2) - 1).abs()
    return row_errors, col_errors


class BirkhoffProjector:
    """
    Projects nonnegative square matrices onto the Birkhoff polytope.

    Non-convergence is not an error: the best-effort matrix is returned
    with converged=False.

    Args:
        max_iterations: Upper bound on Sinkhorn iterations
        tolerance: Max allowed deviation of any row/column sum from 1

    Example:
        >>> projector = BirkhoffProjector(max_iterations=20, tolerance=0.05)
        >>> result = projector.project([[1, 2, 3], [4, 5, 6], [7, 8, 9]])
        >>> result.converged
        True
    """

    def __init__(self, max_iterations: int = 10, tolerance: float = 1e-3):
        assert max_iterations >= 0, "max_iterations must be non-negative"
        assert tolerance > 0, "tolerance must be positive"

        self.max_iterations = max_iterations
        self.tolerance = tolerance

    def __repr__(self) -> str:
        return f"BirkhoffProjector(max_iterations={self.max_iterations}, tolerance={self.tolerance})"

    def project(self, matrix) -> ProjectionResult:
        """
        Sinkhorn-Knopp projection.

        Args:
            matrix: Nonnegative [..., n, n] matrix

        Returns:
            ProjectionResult with the projected matrix

        Raises:
            DimensionMismatchError: Non-square or empty input
            ValueError: Negative entries
        """
        P = self._check_square(to_tensor(matrix))
        if (P < 0).any():
            raise ValueError("Birkhoff projection requires a nonnegative matrix")
        if not torch.isfinite(P).all():
            logger.debug("Sinkhorn skipped: matrix has non-finite entries")
            return ProjectionResult(
                matrix=P, iterations_used=0, converged=False, max_deviation=math.inf
            )

        deviation = self._max_deviation(P)
        iterations = 0

        while deviation > self.tolerance and iterations < self.max_iterations:
            P = _normalize(P, dim=-1)
            P = _normalize(P, dim=-2)
            iterations += 1
            deviation = self._max_deviation(P)

        converged = deviation <= self.tolerance
        if not converged:
            logger.debug(
                "Sinkhorn did not converge after %d iterations (deviation=%.3g)",
                iterations,
                deviation,
            )

        return ProjectionResult(
            matrix=P,
            iterations_used=iterations,
            converged=converged,
            max_deviation=deviation,
        )

    def validate(self, matrix, tolerance: float = 0.01) -> BirkhoffValidation:
        """Check whether a matrix is doubly-stochastic within tolerance."""
        P = self._check_square(to_tensor(matrix)).detach()
        row_errors, col_errors = _sum_errors(P)

        max_row_error = row_errors.max().item()
        max_col_error = col_errors.max().item()
        nonnegative = bool((P >= -tolerance).all())

        return BirkhoffValidation(
            is_doubly_stochastic=(
                nonnegative and max_row_error <= tolerance and max_col_error <= tolerance
            ),
            max_row_error=max_row_error,
            max_col_error=max_col_error,
            row_errors=row_errors,
            col_errors=col_errors,
        )

    def attention(self, q, k, v) -> Tuple[torch.Tensor, ProjectionResult]:
        """
        Doubly-stochastic attention: Birkhoff(exp(QK^T / sqrt(d))) @ V.

        Scores are exponentiated (shifted by their max) so the projected
        matrix is strictly positive.

        Args:
            q: [..., n, d] queries
            k: [..., n, d] keys
            v: [..., n, d_v] values

        Returns:
            output: [..., n, d_v]
            projection: ProjectionResult for the attention matrix
        """
        q, k, v = to_tensor(q), to_tensor(k), to_tensor(v)
        if q.shape[-2] != k.shape[-2] or k.shape[-2] != v.shape[-2]:
            raise DimensionMismatchError(
                f"Q, K, V must have the same length, got {q.shape[-2]}, {k.shape[-2]}, {v.shape[-2]}"
            )
        if q.shape[-1] != k.shape[-1]:
            raise DimensionMismatchError(
                f"Q and K must share a feature dimension, got {q.shape[-1]} and {k.shape[-1]}"
            )

        scores = torch.matmul(q, k.transpose(-2, -1)) / math.sqrt(q.shape[-1])
        shift = scores.amax(dim=(-2, -1), keepdim=True).detach()
        projection = self.project(torch.exp(scores - shift))

        output = torch.matmul(projection.matrix, v)
        return output, projection

    @staticmethod
    def _check_square(P: torch.Tensor) -> torch.Tensor:
        if P.dim() < 2 or P.shape[-1] != P.shape[-2]:
            raise DimensionMismatchError(f"Expected a square matrix, got shape {tuple(P.shape)}")
        if P.shape[-1] == 0:
            raise DimensionMismatchError("Cannot project an empty matrix")
        return P

    @staticmethod
    def _max_deviation(P: torch.Tensor) -> float:
        """Largest row/column sum error; inf if any sum is NaN or inf."""
        row_errors, col_errors = _sum_errors(P.detach())
        errors = torch.cat([row_errors.flatten(), col_errors.flatten()])
        if not torch.isfinite(errors).all():
            return math.inf
        return errors.max().item()
