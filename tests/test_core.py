"""Tests for crt_homology.core module."""

import math

import torch
import pytest

from crt_homology.core.errors import (
    CRTHomologyError,
    DimensionMismatchError,
    InvalidModuliError,
    NotInvertibleError,
)
from crt_homology.core.modular import extended_gcd, mod_inverse, are_coprime, validate_moduli
from crt_homology.core.coprime import CoprimeSelector, MODULI_PRESETS, first_n_primes
from crt_homology.core.reconstructor import CRTReconstructor
from crt_homology.core.config import CRTConfig, HomologyConfig


class TestExtendedGCD:
    """Test the extended Euclidean algorithm."""

    def test_gcd_value(self):
        """Should compute gcd correctly."""
        g, _, _ = extended_gcd(48, 18)
        assert g == 6

    def test_bezout_identity(self):
        """a*x + b*y == g for a spread of integers, including negatives and zero."""
        values = [-97, -48, -18, -1, 0, 1, 2, 7, 18, 35, 48, 210, 1001, 2 ** 70 + 3]
        for a in values:
            for b in values:
                g, x, y = extended_gcd(a, b)
                assert a * x + b * y == g
                assert g == math.gcd(a, b)

    def test_coprime_gcd_is_one(self):
        """Coprime inputs should have gcd 1."""
        assert extended_gcd(7, 11)[0] == 1


class TestModInverse:
    """Test modular inverses."""

    def test_known_inverse(self):
        """3^{-1} mod 7 = 5."""
        assert mod_inverse(3, 7) == 5

    def test_inverse_property(self):
        """(a * inverse) % m == 1 whenever gcd(a, m) == 1."""
        for m in [2, 5, 9, 11, 26, 210]:
            for a in range(1, m):
                if math.gcd(a, m) == 1:
                    inv = mod_inverse(a, m)
                    assert 0 <= inv < m
                    assert (a * inv) % m == 1

    def test_not_invertible(self):
        """gcd(6, 9) = 3, so no inverse exists."""
        with pytest.raises(NotInvertibleError) as exc_info:
            mod_inverse(6, 9)
        assert exc_info.value.gcd == 3
        assert isinstance(exc_info.value, ArithmeticError)
        assert isinstance(exc_info.value, CRTHomologyError)

    def test_negative_input(self):
        """Negative inputs are normalized before inversion."""
        inv = mod_inverse(-3, 7)
        assert ((-3 % 7) * inv) % 7 == 1

    def test_invalid_modulus(self):
        """Non-positive moduli are rejected."""
        with pytest.raises(ValueError):
            mod_inverse(3, 0)


class TestCoprimality:
    """Test coprimality checks and moduli validation."""

    def test_are_coprime(self):
        assert are_coprime(15, 28)
        assert are_coprime(7, 11)
        assert not are_coprime(12, 18)
        assert not are_coprime(15, 25)

    def test_validate_moduli_accepts(self):
        assert validate_moduli([2, 3, 5, 7]) == (2, 3, 5, 7)
        assert validate_moduli([4, 9, 25]) == (4, 9, 25)

    @pytest.mark.parametrize("moduli", [[2, 4], [7], [], [1, 3], [0, 5], [2.5, 3], [6, 10, 7]])
    def test_validate_moduli_rejects(self, moduli):
        with pytest.raises(InvalidModuliError):
            validate_moduli(moduli)

    def test_invalid_moduli_is_value_error(self):
        with pytest.raises(ValueError):
            validate_moduli([3, 9])


class TestCoprimeSelector:
    """Test moduli selection strategies."""

    def test_first_primes(self):
        assert first_n_primes(6) == [2, 3, 5, 7, 11, 13]
        assert first_n_primes(0) == []

    def test_select_minimal(self):
        selector = CoprimeSelector(4)
        assert selector.select_minimal() == [2, 3, 5, 7]
        assert selector.select_minimal(2) == [2, 3]

    def test_select_for_product(self):
        """Greedy product should stay under the ceiling."""
        primes = CoprimeSelector().select_for_product(1000)
        assert primes == [2, 3, 5, 7]
        assert math.prod(primes) <= 1000

    def test_select_for_product_cap(self):
        assert CoprimeSelector().select_for_product(10 ** 9, max_count=3) == [2, 3, 5]

    def test_select_for_product_too_small(self):
        """Empty when even the first candidate exceeds the target."""
        assert CoprimeSelector().select_for_product(1) == []

    def test_select_for_domain(self):
        selector = CoprimeSelector()
        assert selector.select_for_domain("semantic") == [2, 3, 5, 7, 11]
        assert selector.select_for_domain("temporal") == [3, 5, 7, 11, 13]
        assert selector.select_for_domain("small") == [2, 3, 5, 7]

    def test_unknown_domain(self):
        with pytest.raises(ValueError, match="Unknown moduli preset"):
            CoprimeSelector().select_for_domain("galactic")

    def test_custom_presets(self):
        selector = CoprimeSelector(presets={"tiny": [3, 4]})
        assert selector.select_for_domain("tiny") == [3, 4]
        with pytest.raises(ValueError):
            selector.select_for_domain("small")

    def test_presets_are_coprime(self):
        for name, moduli in MODULI_PRESETS.items():
            assert validate_moduli(moduli) == tuple(moduli), name

    def test_presets_read_only(self):
        with pytest.raises(TypeError):
            MODULI_PRESETS["small"] = (2, 3)


class TestCRTReconstructor:
    """Test CRT reconstruction and consistency scoring."""

    @pytest.fixture
    def crt(self):
        return CRTReconstructor([2, 3, 5, 7])

    def test_product(self, crt):
        assert crt.modulus_product == 210
        assert len(crt) == 4

    def test_coefficients(self, crt):
        """M_i * M_i^{-1} = 1 (mod m_i) for each precomputed pair."""
        assert len(crt.coefficients) == 4
        for m, c in zip(crt.moduli, crt.coefficients):
            assert c.partial_product == 210 // m
            assert (c.partial_product * c.inverse) % m == 1

    def test_known_reconstruction(self, crt):
        """x = 1 (mod 2), 2 (mod 3), 3 (mod 5), 4 (mod 7) gives 53."""
        assert crt.reconstruct([1, 2, 3, 4]) == 53

    def test_round_trip(self, crt):
        """Every x in [0, 210) survives decompose -> reconstruct."""
        for x in range(crt.modulus_product):
            assert crt.reconstruct([x % 2, x % 3, x % 5, x % 7]) == x
            assert crt.reconstruct(crt.decompose(x)) == x

    def test_round_trip_beyond_64_bits(self):
        """Products above 2^64 reconstruct exactly."""
        crt = CRTReconstructor(first_n_primes(16))
        assert crt.modulus_product > 2 ** 64
        for x in [0, 1, 2 ** 53 + 1, 2 ** 64 + 12345, crt.modulus_product - 1]:
            assert crt.reconstruct(crt.decompose(x)) == x

    def test_validate_beyond_float_precision(self):
        """validate reconstructs exactly when residues exceed 2^53."""
        crt = CRTReconstructor([2 ** 61 - 1, 2 ** 31 - 1])
        x = 2 ** 61 - 2

        result = crt.validate(crt.decompose(x))
        assert result.valid
        assert result.reconstructed == x
        assert result.reconstructed == crt.reconstruct(crt.decompose(x))

        result = crt.validate(torch.tensor(crt.decompose(x), dtype=torch.long))
        assert result.reconstructed == x

    def test_unreduced_residues(self, crt):
        """Residues outside [0, m) are reduced first."""
        assert crt.reconstruct([3, 5, 8, 11]) == 53

    def test_integral_floats(self, crt):
        assert crt.reconstruct([1.0, 2.0, 3.0, 4.0]) == 53
        assert crt.reconstruct(torch.tensor([1.0, 2.0, 3.0, 4.0])) == 53

    def test_fractional_rejected(self, crt):
        with pytest.raises(ValueError):
            crt.reconstruct([0.5, 2, 3, 4])

    def test_wrong_length(self, crt):
        with pytest.raises(DimensionMismatchError):
            crt.reconstruct([1, 2, 3])
        with pytest.raises(DimensionMismatchError):
            crt.reconstruction_error([0.5, 0.5])

    def test_invalid_moduli(self):
        with pytest.raises(InvalidModuliError):
            CRTReconstructor([2, 3, 4])
        with pytest.raises(InvalidModuliError):
            CRTReconstructor([5])

    def test_zero_error_for_integers(self, crt):
        assert crt.reconstruction_error([0, 1, 2, 3]) == 0.0

    def test_fractional_error(self, crt):
        """Error is the summed distance to the nearest integers."""
        error = crt.reconstruction_error([0.7, 1.3, 2.8, 4.1])
        assert error == pytest.approx(0.9)

    def test_error_is_distance_to_nearest_integer(self, crt):
        """Residues just below an integer score small, not large."""
        assert crt.reconstruction_error([0.9, 0, 0, 0]) == pytest.approx(0.1)
        assert crt.reconstruction_error([1, 2.99, 0, 0]) == pytest.approx(0.01)
        assert crt.reconstruction_error([1.9, 0, 0, 0]) == pytest.approx(0.1)

    def test_error_monotonic(self, crt):
        errors = [crt.reconstruction_error([d, 0, 0, 0]) for d in [0.0, 0.1, 0.2, 0.3, 0.4, 0.5]]
        assert errors == sorted(errors)
        assert errors[0] == 0.0

    def test_detect_kernel(self, crt):
        assert crt.detect_kernel([0.7, 1.3, 2.8, 4.1], tau=0.05)
        assert not crt.detect_kernel([1, 2, 3, 4], tau=0.05)

    def test_validate_consistent(self, crt):
        result = crt.validate([1, 0, 4, 6], tau=0.1)
        assert result.valid
        assert not result.in_kernel
        assert result.error == 0.0
        assert result.reconstructed == 69

    def test_validate_near_integer(self, crt):
        """Small deviations stay valid and reconstruct the nearest witness."""
        result = crt.validate([1.02, 2, 3, 4], tau=0.1)
        assert result.valid
        assert result.error == pytest.approx(0.02)
        assert result.reconstructed == 53

    def test_validate_kernel(self, crt):
        result = crt.validate([0.5, 1.5, 2.5, 3.5], tau=0.1)
        assert result.in_kernel
        assert not result.valid

    def test_soft_reconstruct(self, crt):
        """Soft reconstruction agrees with exact reconstruction on integers."""
        value = crt.soft_reconstruct([1, 2, 3, 4])
        assert value.item() == pytest.approx(53.0)

    def test_soft_reconstruct_gradient(self, crt):
        residues = torch.tensor([1.2, 2.0, 3.0, 4.0], dtype=torch.float64, requires_grad=True)
        crt.soft_reconstruct(residues).backward()
        assert residues.grad is not None

    def test_batch_error(self, crt):
        batch = torch.tensor([[1, 2, 3, 4], [0.5, 2, 3, 4]], dtype=torch.float64)
        errors = crt.batch_reconstruction_error(batch)
        assert errors.shape == (2,)
        assert errors[0].item() == 0.0
        assert errors[1].item() == pytest.approx(0.5)

    def test_batch_error_empty(self, crt):
        assert crt.batch_reconstruction_error([]).numel() == 0

    def test_batch_error_ragged(self, crt):
        """Rows of unequal length are a shape error."""
        with pytest.raises(DimensionMismatchError):
            crt.batch_reconstruction_error([[1, 2, 3, 4], [1, 2]])
        with pytest.raises(DimensionMismatchError):
            crt.batch_reconstruction_error([torch.ones(4), torch.ones(3)])

    def test_deterministic(self, crt):
        residues = [0.31, 1.77, 2.49, 5.02]
        assert crt.reconstruction_error(residues) == crt.reconstruction_error(residues)
        assert crt.validate(residues) == crt.validate(residues)


class TestCRTConfig:
    """Test configuration."""

    def test_defaults(self):
        config = CRTConfig()
        assert config.moduli == (2, 3, 5, 7)
        assert config.head_dim == config.hidden_dim
        assert config.d_ff == 4 * config.hidden_dim

    def test_explicit_moduli(self):
        config = CRTConfig(moduli=[3, 4, 5])
        assert config.moduli == (3, 4, 5)

    def test_presets(self):
        assert CRTConfig.small().moduli == (2, 3, 5, 7)
        assert CRTConfig.medium().moduli == (5, 7, 11, 13)
        assert CRTConfig.large().moduli == (11, 13, 17, 19)
        assert CRTConfig.semantic().moduli == (2, 3, 5, 7, 11)
        assert CRTConfig.temporal(hidden_dim=8).hidden_dim == 8

    def test_to_dict_from_dict(self):
        config = CRTConfig(preset="medium", hidden_dim=32, tau=0.2)
        config2 = CRTConfig.from_dict(config.to_dict())
        assert config2.moduli == config.moduli
        assert config2.hidden_dim == 32
        assert config2.tau == 0.2

    def test_homology_property(self):
        config = CRTConfig(tau=0.2, homology_weight=2.0, edge_policy="sequential")
        homology = config.homology
        assert isinstance(homology, HomologyConfig)
        assert homology.tau == 0.2
        assert homology.weight == 2.0
        assert homology.edge_policy == "sequential"

    def test_validation(self):
        with pytest.raises(AssertionError):
            CRTConfig(hidden_dim=0)
        with pytest.raises(AssertionError):
            CRTConfig(dropout=1.0)
        with pytest.raises(ValueError):
            CRTConfig(preset="unknown")


class TestHomologyConfig:
    """Test homology settings validation."""

    def test_defaults(self):
        config = HomologyConfig()
        assert config.tau == 0.1
        assert config.edge_policy == "threshold"

    def test_unknown_policy(self):
        with pytest.raises(ValueError):
            HomologyConfig(edge_policy="random")

    def test_band_requires_width(self):
        with pytest.raises(AssertionError):
            HomologyConfig(edge_policy="band")
        assert HomologyConfig(edge_policy="band", similarity_band=0.2).similarity_band == 0.2

    def test_negative_tau(self):
        with pytest.raises(AssertionError):
            HomologyConfig(tau=-0.1)
