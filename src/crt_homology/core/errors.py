"""
Exceptions raised by the CRT-homology engine.

Construction-time misconfiguration (bad moduli, failed inversions) is fatal
and raised immediately. Shape errors are raised at call time. Numeric edge
cases inside a call (non-convergence, empty batches) are never raised; they
are reported through the result records instead.
"""


class CRTHomologyError(Exception):
    """Base class for all engine errors."""


class InvalidModuliError(CRTHomologyError, ValueError):
    """Moduli are not pairwise coprime, too few, or not integers >= 2."""


class NotInvertibleError(CRTHomologyError, ArithmeticError):
    """A value has no multiplicative inverse modulo m."""

    def __init__(self, a: int, m: int, gcd: int):
        super().__init__(f"{a} has no inverse mod {m} (gcd={gcd})")
        self.a = a
        self.m = m
        self.gcd = gcd


class DimensionMismatchError(CRTHomologyError, ValueError):
    """An input's shape does not match the configured dimensions."""
