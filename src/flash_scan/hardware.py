r"""Hardware queries, launch geometry and transient buffers.

The orchestrator sizes its launches from two numbers: the group width ``W``
and the maximum number of concurrently resident groups ``G_max``. Given a
sequence length ``n``:

.. math::
    \text{num\_units} = \lceil n / W \rceil, \quad
    \text{num\_groups} = \min(\text{num\_units}, G_{max}), \quad
    \text{num\_iters} = \lceil \text{num\_units} / \text{num\_groups} \rceil

and every group owns an interval of ``W * num_iters`` positions. Trailing
groups may own no positions at all; they are counted in ``num_groups`` (the
carry buffer is sized for them) but not in ``num_active``.
"""

import logging
import math
from dataclasses import dataclass

import torch

from .constants import DEFAULT_DEVICE_GROUPS, DEFAULT_HOST_GROUPS
from .errors import AllocationFailure, LaunchFailure

__all__ = [
    "ScanGeometry",
    "compute_geometry",
    "max_resident_groups",
    "allocate_transient",
    "synchronize",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanGeometry:
    r"""Launch geometry of one scan.

    Attributes:
        n (int): Sequence length.
        warp_size (int): Lanes per group ``W``.
        num_groups (int): Groups launched (size of the carry buffer).
        num_iters (int): Chunks of ``W`` each group iterates over.
        interval_size (int): Positions per interval, ``W * num_iters``.
        num_active (int): Groups whose interval is non-empty.
    """

    n: int
    warp_size: int
    num_groups: int
    num_iters: int
    interval_size: int
    num_active: int

    def interval(self, group: int) -> tuple[int, int]:
        """``[begin, end)`` owned by ``group``, clipped to ``n``."""
        begin = min(group * self.interval_size, self.n)
        return begin, min(begin + self.interval_size, self.n)


def compute_geometry(n: int, warp_size: int, max_groups: int) -> ScanGeometry:
    r"""Size the launches for a sequence of ``n >= 1`` elements."""
    if n < 1:
        raise ValueError(f"geometry needs n >= 1, got {n}")
    num_units = math.ceil(n / warp_size)
    num_groups = min(num_units, max_groups)
    num_iters = math.ceil(num_units / num_groups)
    interval_size = warp_size * num_iters
    num_active = math.ceil(n / interval_size)
    return ScanGeometry(n, warp_size, num_groups, num_iters, interval_size, num_active)


def max_resident_groups(device: torch.device, warp_size: int) -> int:
    r"""Maximum number of groups the device keeps resident at once.

    On CUDA this is ``multiprocessors * max threads per multiprocessor / W``.
    Elsewhere the groups are emulated and a fixed host default is used.
    """
    device = torch.device(device)
    if device.type != "cuda":
        return DEFAULT_HOST_GROUPS

    props = torch.cuda.get_device_properties(device)
    threads_per_sm = getattr(props, "max_threads_per_multi_processor", None)
    if not threads_per_sm:
        logger.debug("%s does not report threads per SM, using %d groups",
                     props.name, DEFAULT_DEVICE_GROUPS)
        return DEFAULT_DEVICE_GROUPS
    return max(1, props.multi_processor_count * threads_per_sm // warp_size)


def allocate_transient(what: str, shape: tuple, dtype: torch.dtype, device) -> torch.Tensor:
    r"""Allocate an uninitialised scratch tensor scoped to one scan.

    Raises:
        AllocationFailure: If the allocator rejects the request.
    """
    try:
        return torch.empty(shape, dtype=dtype, device=device)
    except RuntimeError as exc:
        # torch.OutOfMemoryError is a RuntimeError
        raise AllocationFailure(what, shape, device) from exc


def synchronize(device: torch.device, stage: str) -> None:
    r"""Post-launch status check: wait for queued kernels and surface errors.

    Raises:
        LaunchFailure: If the device reports an error for queued work.
    """
    if torch.device(device).type != "cuda":
        return
    try:
        torch.cuda.synchronize(device)
    except RuntimeError as exc:
        raise LaunchFailure(stage, str(exc)) from exc
