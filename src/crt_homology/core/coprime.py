"""
Coprime moduli selection.

Primes are pairwise coprime by construction, so every strategy here draws
from the prime sequence. Named presets are kept in a read-only registry that
is handed to each selector explicitly.
"""

from types import MappingProxyType
from typing import List, Mapping, Optional, Sequence

MODULI_PRESETS: Mapping[str, Sequence[int]] = MappingProxyType({
    "small": (2, 3, 5, 7),  # P = 210
    "medium": (5, 7, 11, 13),  # P = 5005
    "large": (11, 13, 17, 19),  # P = 46189
    "semantic": (2, 3, 5, 7, 11),  # P = 2310
    "temporal": (3, 5, 7, 11, 13),  # P = 15015
})


def first_n_primes(n: int) -> List[int]:
    """Return the first n primes by trial division."""
    primes: List[int] = []
    candidate = 2
    while len(primes) < n:
        if all(candidate % p for p in primes if p * p <= candidate):
            primes.append(candidate)
        candidate += 1
    return primes


class CoprimeSelector:
    """
    Chooses pairwise-coprime moduli for CRT reconstruction.

    Args:
        count: Default number of moduli for select_minimal
        presets: Registry of named moduli sets (default: MODULI_PRESETS)

    Example:
        >>> selector = CoprimeSelector(count=4)
        >>> selector.select_minimal()
        [2, 3, 5, 7]
        >>> selector.select_for_product(1000)
        [2, 3, 5, 7]
    """

    def __init__(
        self,
        count: int = 4,
        presets: Optional[Mapping[str, Sequence[int]]] = None,
    ):
        assert count >= 1, "count must be positive"

        self.count = count
        self.presets = MODULI_PRESETS if presets is None else MappingProxyType(dict(presets))

    def select_minimal(self, k: Optional[int] = None) -> List[int]:
        """The k smallest pairwise-coprime moduli (the first k primes)."""
        if k is None:
            k = self.count
        return first_n_primes(k)

    def select_for_product(self, target: int, max_count: Optional[int] = None) -> List[int]:
        """
        Greedily take ascending primes while the running product stays <= target.

        Args:
            target: Product ceiling
            max_count: Optional cap on the number of moduli

        Returns:
            Selected primes, or [] if even 2 exceeds target
        """
        selected: List[int] = []
        product = 1
        candidate = 2

        while max_count is None or len(selected) < max_count:
            if all(candidate % p for p in selected):
                if product * candidate > target:
                    break
                selected.append(candidate)
                product *= candidate
            candidate += 1

        return selected

    def select_for_domain(self, name: str) -> List[int]:
        """Look up a named moduli preset."""
        if name not in self.presets:
            known = ", ".join(sorted(self.presets))
            raise ValueError(f"Unknown moduli preset: {name}. Use one of: {known}.")
        return list(self.presets[name])
