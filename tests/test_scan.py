"""
End-to-end tests for inclusive_scan / exclusive_scan.

Validates the two-level algorithm against strictly sequential references.
These run on the PyTorch backend (CPU); the Triton kernels are covered in
test_triton_scan.py.
"""

import pytest
import torch

from flash_scan import (
    CarryScanStrategy,
    ScanConfig,
    exclusive_scan,
    inclusive_scan,
)
from tests.conftest import make_sequence, sequential_exclusive, sequential_inclusive

INTEGER_OPS = ["add", "min", "max", "and", "or", "xor"]


def compose_affine(f, g):
    """Apply f then g, for maps x -> a*x + b stored as (..., 2) = (a, b)."""
    a = f[..., 0] * g[..., 0]
    b = g[..., 0] * f[..., 1] + g[..., 1]
    return torch.stack([a, b], dim=-1)


class TestExamples:
    """Small hand-checked cases."""

    def test_inclusive_add(self):
        x = torch.arange(1, 9)
        assert inclusive_scan(x).tolist() == [1, 3, 6, 10, 15, 21, 28, 36]

    def test_exclusive_add(self):
        x = torch.arange(1, 9)
        assert exclusive_scan(x, 0).tolist() == [0, 1, 3, 6, 10, 15, 21, 28]

    def test_inclusive_max(self):
        x = torch.tensor([3, 1, 4, 1, 5, 9, 2, 6])
        assert inclusive_scan(x, op="max").tolist() == [3, 3, 4, 4, 5, 9, 9, 9]

    def test_exclusive_mul(self):
        x = torch.tensor([2, 3, 4, 5])
        assert exclusive_scan(x, 1, op="mul").tolist() == [1, 2, 6, 24]


class TestDegenerateLengths:
    """n == 0 and n == 1."""

    def test_empty_leaves_output_untouched(self):
        out = torch.full((5,), -1)
        result = inclusive_scan(torch.empty(0, dtype=torch.int64), out=out)
        assert result.numel() == 0
        assert result.untyped_storage().data_ptr() == out.untyped_storage().data_ptr()
        assert result.storage_offset() == out.storage_offset()
        assert torch.equal(out, torch.full((5,), -1))

    def test_empty_exclusive(self):
        out = torch.full((2,), -1)
        result = exclusive_scan(torch.empty(0, dtype=torch.int64), 7, out=out)
        assert result.numel() == 0
        assert torch.equal(out, torch.full((2,), -1))

    def test_empty_without_out(self):
        assert inclusive_scan(torch.empty(0)).shape == (0,)

    def test_single_inclusive(self):
        assert inclusive_scan(torch.tensor([5])).tolist() == [5]

    def test_single_exclusive(self):
        assert exclusive_scan(torch.tensor([5]), 11).tolist() == [11]


class TestBoundaries:
    """Interval-boundary-plus-one lengths against a sequential reference."""

    @pytest.mark.parametrize("op_name", INTEGER_OPS)
    @pytest.mark.parametrize("k", [1, 2, 3, 7, 31, 32, 33, 100])
    def test_inclusive_default_geometry(self, op_name, k):
        n = k * 32 + 1
        x = make_sequence(n, seed=k)
        config = ScanConfig(max_groups=8)
        result = inclusive_scan(x, op=op_name, config=config)
        assert result.tolist() == sequential_inclusive(x.tolist(), op_name)

    @pytest.mark.parametrize("op_name", INTEGER_OPS)
    @pytest.mark.parametrize("k", [1, 2, 5, 13])
    def test_exclusive_default_geometry(self, op_name, k):
        n = k * 32 + 1
        x = make_sequence(n, seed=100 + k)
        init = {"add": 0, "min": 2**40, "max": -(2**40), "and": -1, "or": 0, "xor": 0}[op_name]
        result = exclusive_scan(x, init, op=op_name, config=ScanConfig(max_groups=8))
        assert result.tolist() == sequential_exclusive(x.tolist(), init, op_name)

    @pytest.mark.parametrize("n", list(range(1, 70)))
    def test_every_length_small_groups(self, n, small_config):
        x = make_sequence(n, seed=n)
        assert inclusive_scan(x, config=small_config).tolist() == sequential_inclusive(
            x.tolist(), "add"
        )
        assert exclusive_scan(x, 3, config=small_config).tolist() == sequential_exclusive(
            x.tolist(), 3, "add"
        )

    def test_empty_trailing_groups(self):
        """n = 5W with G_max = 4 leaves the fourth group without positions."""
        x = make_sequence(5 * 32, seed=21)
        config = ScanConfig(max_groups=4)
        assert inclusive_scan(x, config=config).tolist() == sequential_inclusive(
            x.tolist(), "add"
        )
        assert exclusive_scan(x, 0, config=config).tolist() == sequential_exclusive(
            x.tolist(), 0, "add"
        )


class TestLargeInputs:
    """Millions of elements against torch's sequential cumulative ops."""

    def test_integer_add_bit_exact(self):
        x = make_sequence(2_000_000, seed=1, low=-1000, high=1000)
        assert torch.equal(inclusive_scan(x), torch.cumsum(x, dim=0))

    def test_integer_max_bit_exact(self):
        x = make_sequence(2_000_000, seed=2, low=-(2**30), high=2**30)
        assert torch.equal(inclusive_scan(x, op="max"), torch.cummax(x, dim=0).values)

    def test_integer_exclusive_bit_exact(self):
        x = make_sequence(1_000_003, seed=3, low=-1000, high=1000)
        expected = torch.cumsum(x, dim=0) - x
        assert torch.equal(exclusive_scan(x, 0), expected)

    def test_float_add_within_tolerance(self):
        n = 1_000_000
        x = make_sequence(n, dtype=torch.float32, seed=4)
        expected = torch.cumsum(x.double(), dim=0)
        result = inclusive_scan(x).double()
        # Grouping differs from a left-to-right fold; error grows with the term count
        torch.testing.assert_close(result, expected, rtol=1e-4, atol=n * 1e-9)


class TestAliasingAndRanges:
    """In-place execution and output ranges."""

    @pytest.mark.parametrize("n", [1, 31, 32, 33, 1000, 4097])
    def test_in_place_matches_out_of_place(self, n):
        x = make_sequence(n, seed=n)
        expected = inclusive_scan(x)
        y = x.clone()
        result = inclusive_scan(y, out=y)
        assert torch.equal(result, expected)
        assert torch.equal(y, expected)

    @pytest.mark.parametrize("n", [1, 33, 4097])
    def test_exclusive_in_place(self, n):
        x = make_sequence(n, seed=n)
        expected = exclusive_scan(x, 5)
        y = x.clone()
        exclusive_scan(y, 5, out=y, config=ScanConfig(max_groups=16))
        assert torch.equal(y, expected)

    def test_longer_output_tail_untouched(self):
        x = make_sequence(50, seed=5)
        out = torch.full((60,), 123, dtype=x.dtype)
        result = inclusive_scan(x, out=out)
        assert result.shape == (50,)
        assert torch.equal(out[:50], torch.cumsum(x, dim=0))
        assert torch.equal(out[50:], torch.full((10,), 123, dtype=x.dtype))

    def test_output_view_into_buffer(self):
        x = make_sequence(10, seed=6)
        buffer = torch.zeros(20, dtype=x.dtype)
        inclusive_scan(x, out=buffer[5:15])
        assert torch.equal(buffer[5:15], torch.cumsum(x, dim=0))
        assert torch.count_nonzero(buffer[:5]) == 0
        assert torch.count_nonzero(buffer[15:]) == 0

    def test_non_contiguous_input(self):
        base = make_sequence(200, seed=7)
        x = base[::2]
        assert torch.equal(inclusive_scan(x), torch.cumsum(x, dim=0))


class TestElementShapes:
    """Sequences of non-scalar elements and non-commutative operators."""

    def test_vector_elements(self):
        x = torch.randint(-5, 5, (300, 3), generator=torch.Generator().manual_seed(0))
        assert torch.equal(inclusive_scan(x), torch.cumsum(x, dim=0))

    def test_vector_elements_tensor_init(self):
        x = torch.randint(-5, 5, (70, 2), generator=torch.Generator().manual_seed(1))
        init = torch.tensor([100, -100])
        result = exclusive_scan(x, init, config=ScanConfig(warp_size=4, max_groups=5))
        expected = torch.cat([torch.zeros(1, 2, dtype=x.dtype), torch.cumsum(x, dim=0)[:-1]])
        assert torch.equal(result, expected + init)

    @pytest.mark.parametrize("n", [1, 9, 64, 257])
    def test_matrix_product(self, n):
        generator = torch.Generator().manual_seed(n)
        eye = torch.eye(3, dtype=torch.int64)
        mats = torch.stack([eye[torch.randperm(3, generator=generator)] for _ in range(n)])

        expected = [mats[0]]
        for m in mats[1:]:
            expected.append(expected[-1] @ m)

        result = inclusive_scan(mats, op=torch.matmul, config=ScanConfig(warp_size=4, max_groups=5))
        assert torch.equal(result, torch.stack(expected))

    def test_affine_composition_exclusive(self):
        generator = torch.Generator().manual_seed(3)
        n = 150
        a = torch.randint(0, 2, (n,), generator=generator) * 2 - 1
        b = torch.randint(-3, 4, (n,), generator=generator)
        maps = torch.stack([a, b], dim=-1)
        identity = torch.tensor([1, 0])

        expected = [identity]
        for f in maps[:-1]:
            expected.append(compose_affine(expected[-1], f))

        result = exclusive_scan(
            maps, identity, op=compose_affine, config=ScanConfig(warp_size=8, max_groups=4)
        )
        assert torch.equal(result, torch.stack(expected))


class TestCarryStrategies:
    """Every carry-scan strategy yields identical results."""

    @pytest.mark.parametrize("strategy", list(CarryScanStrategy))
    @pytest.mark.parametrize("n", [1, 100, 5000])
    def test_inclusive(self, strategy, n):
        x = make_sequence(n, seed=n)
        config = ScanConfig(max_groups=32, carry_strategy=strategy)
        assert torch.equal(inclusive_scan(x, config=config), torch.cumsum(x, dim=0))

    @pytest.mark.parametrize("strategy", ["device", "host", "auto"])
    def test_exclusive(self, strategy):
        x = make_sequence(3000, seed=9)
        config = ScanConfig(max_groups=32, carry_strategy=strategy)
        assert torch.equal(exclusive_scan(x, 0, config=config), torch.cumsum(x, dim=0) - x)

    def test_host_strategy_with_callable(self):
        x = make_sequence(777, seed=10)
        config = ScanConfig(warp_size=8, max_groups=16, carry_strategy="host")
        result = inclusive_scan(x, op=lambda a, b: torch.maximum(a, b), config=config)
        assert torch.equal(result, torch.cummax(x, dim=0).values)


class TestArguments:
    """Argument errors surface as ValueError before any work is done."""

    def test_exclusive_requires_init(self):
        with pytest.raises(ValueError, match="requires an explicit init"):
            exclusive_scan(torch.arange(4), None)

    def test_unknown_operator(self):
        with pytest.raises(ValueError, match="unknown operator"):
            inclusive_scan(torch.arange(4), op="median")

    def test_bitwise_on_float(self):
        with pytest.raises(ValueError, match="requires an integer or bool dtype"):
            inclusive_scan(torch.rand(4), op="xor")

    def test_output_too_short(self):
        with pytest.raises(ValueError, match="need at least 4"):
            inclusive_scan(torch.arange(4), out=torch.empty(3, dtype=torch.int64))

    def test_output_dtype_mismatch(self):
        with pytest.raises(ValueError, match="dtype"):
            inclusive_scan(torch.arange(4), out=torch.empty(4))

    def test_scalar_input(self):
        with pytest.raises(ValueError, match="at least 1 dimension"):
            inclusive_scan(torch.tensor(3))

    def test_fractional_init_on_integer_input(self):
        with pytest.raises(ValueError, match="not exactly representable"):
            exclusive_scan(torch.tensor([1, 2, 3]), 0.5)

    def test_overflowing_init_leaves_output_untouched(self):
        x = torch.tensor([1, 2, 3], dtype=torch.int32)
        out = torch.full((3,), -1, dtype=torch.int32)
        with pytest.raises(ValueError, match="cannot be converted to torch.int32"):
            exclusive_scan(x, 2**40, op="min", out=out)
        assert torch.equal(out, torch.full((3,), -1, dtype=torch.int32))

    def test_integral_float_init_accepted(self):
        assert exclusive_scan(torch.tensor([1, 2, 3]), 2.0).tolist() == [2, 3, 5]
