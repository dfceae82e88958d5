"""
CRT Reconstructor: integer reconstruction and consistency scoring.

Given pairwise-coprime moduli m_1..m_k with product P, every integer
x in [0, P) is uniquely determined by its residues x mod m_i:

    x = (sum_i r_i * M_i * M_i^{-1}) mod P,    M_i = P / m_i

Residues produced by a soft encoder are expectations over distributions and
are generally fractional. A fractional residue has no exact integer witness,
so its distance from integrality measures how inconsistent the tuple is:

    error(r) = sum_i |r_i - round(r_i)|

Tuples whose error exceeds a threshold tau are said to be in the kernel.
"""

import logging
import math
from dataclasses import dataclass
from numbers import Integral
from typing import Sequence, Tuple

import torch

from ..utils.tensors import DTYPE, to_tensor
from .errors import DimensionMismatchError, NotInvertibleError
from .modular import mod_inverse, validate_moduli

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CRTCoefficient:
    """Precomputed pair (M_i, M_i^{-1} mod m_i) for one modulus."""

    partial_product: int
    inverse: int


@dataclass(frozen=True)
class ReconstructionResult:
    """Outcome of validating one residue tuple."""

    valid: bool
    in_kernel: bool
    error: float
    reconstructed: int


class CRTReconstructor:
    """
    Reconstructs integers from residues over a fixed coprime moduli set.

    All coefficients are computed once here; the object is read-only
    afterwards and safe to share between threads.

    Args:
        moduli: Pairwise-coprime integers, at least two, each >= 2

    Raises:
        InvalidModuliError: If the moduli are unusable
        NotInvertibleError: If a coefficient cannot be inverted

    Example:
        >>> crt = CRTReconstructor([2, 3, 5, 7])
        >>> crt.modulus_product
        210
        >>> crt.reconstruct([1, 2, 3, 4])
        53
    """

    def __init__(self, moduli: Sequence[int]):
        self._moduli = validate_moduli(moduli)
        self._product = math.prod(self._moduli)

        coefficients = []
        for m in self._moduli:
            partial = self._product // m
            try:
                inverse = mod_inverse(partial, m)
            except NotInvertibleError:
                logger.error("CRT coefficient for modulus %d is not invertible", m)
                raise
            coefficients.append(CRTCoefficient(partial, inverse))
        self._coefficients = tuple(coefficients)

        # Basis e_i = M_i * M_i^{-1} mod P, used by the soft path
        self._basis = tuple(c.partial_product * c.inverse % self._product for c in coefficients)

        logger.debug("CRTReconstructor moduli=%s P=%d", self._moduli, self._product)

    @property
    def moduli(self) -> Tuple[int, ...]:
        return self._moduli

    @property
    def modulus_product(self) -> int:
        """P = product of all moduli."""
        return self._product

    @property
    def coefficients(self) -> Tuple[CRTCoefficient, ...]:
        return self._coefficients

    def __len__(self) -> int:
        return len(self._moduli)

    def __repr__(self) -> str:
        return f"CRTReconstructor(moduli={list(self._moduli)})"

    def decompose(self, x: int) -> Tuple[int, ...]:
        """Residues of integer x modulo each modulus."""
        return tuple(x % m for m in self._moduli)

    def reconstruct(self, residues: Sequence) -> int:
        """
        Exact CRT reconstruction from integer residues.

        Integral floats (e.g. 3.0) are accepted. Residues outside [0, m_i)
        are reduced first.

        Args:
            residues: One integer residue per modulus

        Returns:
            x in [0, P) with x = r_i (mod m_i) for all i

        Raises:
            DimensionMismatchError: Wrong number of residues
            ValueError: A residue is fractional
        """
        residues = self._integer_residues(residues)

        x = 0
        for r, m, c in zip(residues, self._moduli, self._coefficients):
            x += (r % m) * c.partial_product * c.inverse
        return x % self._product

    def soft_reconstruct(self, residues) -> torch.Tensor:
        """
        Differentiable reconstruction over real-valued residues.

        Computes (sum_i r_i * e_i) mod P in float64. Agrees with reconstruct
        for small integer residues; for fractional residues the result is a
        smooth surrogate, not a CRT witness.

        Args:
            residues: [..., K] expected residues

        Returns:
            [...] reconstructed values
        """
        r = self._check_last_dim(to_tensor(residues))
        basis = torch.tensor(self._basis, dtype=DTYPE, device=r.device)
        return torch.remainder((r * basis).sum(dim=-1), float(self._product))

    def reconstruction_error(self, residues) -> float:
        """
        Distance of a residue tuple from integrality.

        Zero for integer residues; grows monotonically as any residue moves
        away from its nearest integer.
        """
        r = self._check_last_dim(to_tensor(residues))
        if r.dim() != 1:
            raise DimensionMismatchError(
                f"Expected a single residue tuple, got shape {tuple(r.shape)}"
            )
        return float(self._error(r.detach()))

    def batch_reconstruction_error(self, batch) -> torch.Tensor:
        """
        Reconstruction error for each row of a [B, K] batch.

        The result keeps the autograd graph of the input.
        """
        r = to_tensor(batch)
        if r.numel() == 0:
            return torch.zeros(0, dtype=DTYPE)
        if r.dim() != 2:
            raise DimensionMismatchError(f"Expected [batch, {len(self)}], got {tuple(r.shape)}")
        return self._error(self._check_last_dim(r))

    def detect_kernel(self, residues, tau: float = 0.1) -> bool:
        """True if the tuple's reconstruction error exceeds tau."""
        return self.reconstruction_error(residues) > tau

    def validate(self, residues, tau: float = 0.1) -> ReconstructionResult:
        """Score a residue tuple and reconstruct its nearest integer witness."""
        error = self.reconstruction_error(residues)
        in_kernel = error > tau

        return ReconstructionResult(
            valid=not in_kernel,
            in_kernel=in_kernel,
            error=error,
            reconstructed=self.reconstruct(self._rounded_residues(residues)),
        )

    @staticmethod
    def _error(r: torch.Tensor) -> torch.Tensor:
        return (r - torch.round(r)).abs().sum(dim=-1)

    def _check_last_dim(self, r: torch.Tensor) -> torch.Tensor:
        if r.dim() == 0 or r.shape[-1] != len(self._moduli):
            raise DimensionMismatchError(
                f"Expected {len(self._moduli)} residues, got shape {tuple(r.shape)}"
            )
        return r

    @staticmethod
    def _rounded_residues(residues) -> list:
        """Nearest integers, keeping integer inputs exact."""
        if isinstance(residues, torch.Tensor):
            residues = residues.detach().tolist()
        return [int(r) if isinstance(r, Integral) else round(float(r)) for r in residues]

    def _integer_residues(self, residues: Sequence) -> Tuple[int, ...]:
        if isinstance(residues, torch.Tensor):
            residues = residues.tolist()

        residues = tuple(residues)
        if len(residues) != len(self._moduli):
            raise DimensionMismatchError(
                f"Expected {len(self._moduli)} residues, got {len(residues)}"
            )

        integers = []
        for r in residues:
            if isinstance(r, int):
                integers.append(r)
            elif float(r).is_integer():
                integers.append(int(r))
            else:
                raise ValueError(
                    f"reconstruct expects integer residues, got {r}; "
                    "use soft_reconstruct or validate for fractional residues"
                )
        return tuple(integers)
