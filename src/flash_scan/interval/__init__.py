r"""Two-level interval scan.

The scan is split into three stages separated by full barriers (successive
kernel launches):

.. code-block:: text

    input  |a0 a1 .. a7|a8 .. a15|a16 .. a23|a24 a25|        n = 26, W = 4, 4 groups
           '--group 0--'-group 1-'--group 2-'group 3'

    stage 1   local inclusive scan of every interval, chunk by chunk,
              then carry[g] = fold of interval g
    stage 2   carry <- inclusive scan of carry[:num_active]
    stage 3   inclusive: out[i] = op(carry[g - 1], out[i])        for g >= 1
              exclusive: shift right by one, seeded with init / op(init, carry[g - 1])

Interval length is ``W * num_iters`` where ``num_iters`` is chosen so that
``num_groups <= G_max`` (the number of groups the hardware keeps resident).
Stage 2 therefore always fits one group, and the hierarchy never needs more
than two levels.

Backends
--------
- ``triton_scan``: one Triton program per group, CUDA only, 1D tensors with a
  built-in operator. The warp scan uses barriers and double-buffered scratch
  instead of assuming lock-step lanes.
- ``pytorch_reference``: all groups emulated at once with tensor ops, any
  device, any associative callable, any element shape. Used as the fallback
  and as the ground truth for the kernels.

Carry strategy
--------------
Stage 2 can run on the device (the stage 1 kernel again, one group) or on the
host (copy, sequential fold, copy back). :class:`~flash_scan.config.ScanConfig`
selects it; ``auto`` uses the host for small carry arrays on an accelerator.

Usage
-----
>>> import torch
>>> from flash_scan.interval import inclusive_scan, exclusive_scan
>>> x = torch.arange(1, 9)
>>> inclusive_scan(x)
tensor([ 1,  3,  6, 10, 15, 21, 28, 36])
>>> exclusive_scan(x, 0)
tensor([ 0,  1,  3,  6, 10, 15, 21, 28])
"""

from .dispatch import exclusive_scan, inclusive_scan
from .pytorch_reference import (
    exclusive_scan_sequential,
    exclusive_update,
    inclusive_scan_sequential,
    inclusive_update,
    interval_scan,
    warp_scan,
)

# Re-export HAS_TRITON for external checks
try:
    from .triton_scan import HAS_TRITON
except ImportError:
    HAS_TRITON = False

# Conditionally export Triton launchers
if HAS_TRITON:
    from .triton_scan import (
        launch_exclusive_update,
        launch_inclusive_update,
        launch_interval_scan,
    )

__all__ = [
    # Main API
    "inclusive_scan",
    "exclusive_scan",
    # PyTorch stage implementations
    "warp_scan",
    "interval_scan",
    "inclusive_update",
    "exclusive_update",
    "inclusive_scan_sequential",
    "exclusive_scan_sequential",
    "HAS_TRITON",
    # Triton launchers (conditionally available)
    "launch_interval_scan",
    "launch_inclusive_update",
    "launch_exclusive_update",
]
