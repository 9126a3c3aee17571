"""
Pytest configuration for flash-scan tests.

IMPORTANT: CPU-ONLY TESTING
---------------------------
This test suite is designed to run on CPU only. The Triton kernels are only
exercised when CUDA is available; everywhere else the scan runs on the PyTorch
implementation of the same algorithm.

All tests should:
1. Use CPU tensors (the default)
2. Not require CUDA to pass
3. Guard kernel tests with ``pytest.mark.skipif(not torch.cuda.is_available(), ...)``
"""

import itertools
import operator

import pytest
import torch

from flash_scan import ScanConfig

# Python-level equivalents of the built-in operators, for sequential references
PY_OPS = {
    "add": operator.add,
    "mul": operator.mul,
    "min": min,
    "max": max,
    "and": operator.and_,
    "or": operator.or_,
    "xor": operator.xor,
}


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "requires_cuda: mark test as requiring CUDA (will be skipped if not available)",
    )


@pytest.fixture(autouse=True)
def ensure_cpu_default():
    """Verify tests create CPU tensors by default."""
    assert torch.tensor([1.0]).device.type == "cpu", "Default device should be CPU"
    yield


@pytest.fixture
def cpu_device():
    """Fixture providing CPU device for explicit device specification."""
    return torch.device("cpu")


@pytest.fixture
def skip_if_no_cuda():
    """Fixture to skip tests that require CUDA."""
    if not torch.cuda.is_available():
        pytest.skip("CUDA not available")


@pytest.fixture
def small_config():
    """Narrow groups and few of them, so short sequences span many intervals."""
    return ScanConfig(warp_size=4, max_groups=3)


def sequential_inclusive(values, op_name):
    """Strict left-to-right inclusive scan over a Python list."""
    return list(itertools.accumulate(values, PY_OPS[op_name]))


def sequential_exclusive(values, init, op_name):
    """Strict left-to-right exclusive scan over a Python list."""
    if not values:
        return []
    return list(itertools.accumulate(values[:-1], PY_OPS[op_name], initial=init))


def make_sequence(n, dtype=torch.int64, seed=0, low=-8, high=9, device="cpu"):
    """Reproducible integer or float sequence.

    Integers are kept small so add and xor stay exact in int64.
    """
    generator = torch.Generator().manual_seed(seed)
    if dtype.is_floating_point:
        values = torch.rand(n, generator=generator, dtype=dtype)
    else:
        values = torch.randint(low, high, (n,), generator=generator, dtype=dtype)
    return values.to(device)
