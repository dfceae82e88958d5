"""
Modular arithmetic primitives for CRT reconstruction.

All functions operate on Python integers, which are arbitrary precision, so
products of many moduli never overflow.

Key Identities:
    - Bezout: a*x + b*y = gcd(a, b)
    - Inverse: a * a^{-1} = 1 (mod m)  iff  gcd(a, m) = 1
"""

from itertools import combinations
from numbers import Integral
from typing import Iterable, Tuple

from .errors import InvalidModuliError, NotInvertibleError


def extended_gcd(a: int, b: int) -> Tuple[int, int, int]:
    """
    Extended Euclidean algorithm.

    Args:
        a: First integer (any sign)
        b: Second integer (any sign)

    Returns:
        (g, x, y) with a*x + b*y == g and g >= 0

    Example:
        >>> extended_gcd(35, 15)
        (5, 1, -2)
    """
    old_r, r = a, b
    old_x, x = 1, 0
    old_y, y = 0, 1

    while r != 0:
        q = old_r // r
        old_r, r = r, old_r - q * r
        old_x, x = x, old_x - q * x
        old_y, y = y, old_y - q * y

    if old_r < 0:
        return -old_r, -old_x, -old_y
    return old_r, old_x, old_y


def mod_inverse(a: int, m: int) -> int:
    """
    Modular multiplicative inverse.

    Negative inputs are normalized into [0, m) first.

    Args:
        a: Value to invert
        m: Positive modulus

    Returns:
        The unique value in [0, m) with (a * inverse) % m == 1 % m

    Raises:
        NotInvertibleError: If gcd(a, m) != 1
        ValueError: If m is not positive

    Example:
        >>> mod_inverse(3, 7)
        5
    """
    if m <= 0:
        raise ValueError(f"Modulus must be positive, got {m}")

    a = a % m
    g, x, _ = extended_gcd(a, m)
    if g != 1:
        raise NotInvertibleError(a, m, g)

    return x % m


def are_coprime(a: int, b: int) -> bool:
    """True if gcd(a, b) == 1."""
    return extended_gcd(a, b)[0] == 1


def validate_moduli(moduli: Iterable[int]) -> Tuple[int, ...]:
    """
    Check that a moduli set is usable for CRT.

    Requires at least two integers, each >= 2, pairwise coprime.

    Returns:
        The moduli as a tuple of Python ints

    Raises:
        InvalidModuliError: On any violation
    """
    moduli = tuple(moduli)

    if len(moduli) < 2:
        raise InvalidModuliError(f"Need at least 2 moduli, got {len(moduli)}")

    for m in moduli:
        if isinstance(m, bool) or not isinstance(m, Integral):
            raise InvalidModuliError(f"Moduli must be integers, got {m!r}")
        if m < 2:
            raise InvalidModuliError(f"Moduli must be >= 2, got {m}")

    for a, b in combinations(moduli, 2):
        if not are_coprime(a, b):
            raise InvalidModuliError(f"Moduli {a} and {b} are not coprime")

    return tuple(int(m) for m in moduli)
