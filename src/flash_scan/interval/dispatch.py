"""Orchestrator and public API for the interval scan.

This module sizes the launches, owns the transient carry buffer and sequences
the three stages on either backend:

1. ``interval_scan``: local scan per interval, one carry per interval
2. carry scan: inclusive scan of the carries (device or host strategy)
3. ``inclusive_update`` / ``exclusive_update``: broadcast the carries
"""

import logging
import warnings
from typing import Callable, Optional, Union

import torch

from ..config import CarryScanStrategy, ScanConfig
from ..errors import LaunchFailure, ScanError
from ..hardware import (
    ScanGeometry,
    allocate_transient,
    compute_geometry,
    max_resident_groups,
    synchronize,
)
from ..operators import AssociativeOp, get_operator
from ..validation import (
    validate_device_consistency,
    validate_init,
    validate_operator_dtype,
    validate_output,
    validate_sequence,
)
from . import pytorch_reference as reference

# Triton imports are conditional
try:
    from .triton_scan import (
        HAS_TRITON,
        launch_exclusive_update,
        launch_inclusive_update,
        launch_interval_scan,
        scratch_shape,
    )
except ImportError:
    HAS_TRITON = False
    launch_exclusive_update = None
    launch_inclusive_update = None
    launch_interval_scan = None
    scratch_shape = None

__all__ = ["inclusive_scan", "exclusive_scan"]

logger = logging.getLogger(__name__)

OpLike = Union[str, AssociativeOp, Callable]


def _can_use_triton(sequence: torch.Tensor, op: AssociativeOp, config: ScanConfig) -> bool:
    if not (config.use_triton and sequence.is_cuda):
        return False
    if not HAS_TRITON:
        return False
    if sequence.ndim != 1 or not op.supports_triton(sequence.dtype):
        warnings.warn(
            f"Triton scan kernels support 1D tensors with built-in operators only, got "
            f"operator {op.name!r} on a {tuple(sequence.shape)} {sequence.dtype} tensor. "
            f"Falling back to the PyTorch implementation.",
            UserWarning,
            stacklevel=4,
        )
        return False
    return True


def _resolve_carry_strategy(
    config: ScanConfig, device: torch.device, num_active: int
) -> CarryScanStrategy:
    strategy = config.carry_strategy
    if strategy is CarryScanStrategy.AUTO:
        # A host round trip only pays off against an accelerator launch
        if device.type != "cpu" and num_active <= config.host_scan_threshold:
            return CarryScanStrategy.HOST
        return CarryScanStrategy.DEVICE
    return strategy


def _launch(stage: str, fn, *args, **kwargs) -> None:
    """Dispatch one Triton stage, reporting dispatch errors as :class:`LaunchFailure`."""
    try:
        fn(*args, **kwargs)
    except ScanError:
        raise
    except Exception as exc:
        raise LaunchFailure(stage, str(exc)) from exc


def _scan_carries_on_host(carries: torch.Tensor, num_active: int, op: AssociativeOp) -> None:
    active = carries[:num_active]
    host = active.to("cpu")
    reference.inclusive_scan_sequential(host, op, output=host, stage="carry_scan")
    active.copy_(host)


def _run_pytorch(
    sequence: torch.Tensor,
    output: torch.Tensor,
    op: AssociativeOp,
    geometry: ScanGeometry,
    strategy: CarryScanStrategy,
    carries: torch.Tensor,
    init: Optional[torch.Tensor],
) -> None:
    n = geometry.n
    warp_size = geometry.warp_size
    num_active = geometry.num_active

    reference.interval_scan(
        sequence, n, output, op, geometry.interval_size, carries, warp_size
    )

    if strategy is CarryScanStrategy.HOST:
        _scan_carries_on_host(carries, num_active, op)
    else:
        # Whole carry array is one interval handled by one group
        reference.interval_scan(
            carries, num_active, carries, op, num_active, carries[num_active - 1 :], warp_size,
            stage="carry_scan",
        )

    if init is None:
        reference.inclusive_update(output, n, op, geometry.interval_size, carries)
    else:
        reference.exclusive_update(
            output, n, init, op, geometry.interval_size, carries, warp_size
        )


def _run_triton(
    sequence: torch.Tensor,
    output: torch.Tensor,
    op: AssociativeOp,
    geometry: ScanGeometry,
    strategy: CarryScanStrategy,
    carries: torch.Tensor,
    init: Optional[torch.Tensor],
) -> None:
    n = geometry.n
    warp_size = geometry.warp_size
    num_groups = geometry.num_groups
    num_active = geometry.num_active

    scratch = allocate_transient(
        "scratch", scratch_shape(num_groups, warp_size), sequence.dtype, sequence.device
    )

    _launch(
        "interval_scan",
        launch_interval_scan,
        sequence, n, output, op.code, geometry.interval_size, carries, scratch,
        num_groups, warp_size,
    )

    if strategy is CarryScanStrategy.HOST:
        _scan_carries_on_host(carries, num_active, op)
    else:
        _launch(
            "carry_scan",
            launch_interval_scan,
            carries, num_active, carries, op.code, num_active, carries[num_active - 1 :],
            scratch, 1, warp_size,
        )

    if init is None:
        _launch(
            "inclusive_update",
            launch_inclusive_update,
            output, n, op.code, geometry.interval_size, carries, num_groups, warp_size,
        )
    else:
        _launch(
            "exclusive_update",
            launch_exclusive_update,
            output, n, init.reshape(1), op.code, geometry.interval_size, carries, scratch,
            num_groups, warp_size,
        )


def _scan(
    sequence: torch.Tensor,
    out: Optional[torch.Tensor],
    op: OpLike,
    config: Optional[ScanConfig],
    init=None,
    exclusive: bool = False,
) -> torch.Tensor:
    validate_sequence(sequence, "input")
    op = get_operator(op)
    validate_operator_dtype(op, sequence.dtype)
    if exclusive:
        validate_init(init, sequence.shape[1:], sequence.dtype)
    if out is None:
        out = torch.empty(sequence.shape, dtype=sequence.dtype, device=sequence.device)
    else:
        validate_output(out, sequence, "out")
        validate_device_consistency(sequence, out, names=["input", "out"])
    if config is None:
        config = ScanConfig()

    n = sequence.shape[0]
    output = out[:n]
    if n == 0:
        return output

    device = sequence.device
    max_groups = config.max_groups or max_resident_groups(device, config.warp_size)
    geometry = compute_geometry(n, config.warp_size, max_groups)
    use_triton = _can_use_triton(sequence, op, config)
    strategy = _resolve_carry_strategy(config, device, geometry.num_active)

    if exclusive:
        init = torch.as_tensor(init, dtype=sequence.dtype, device=device)
        init = init.expand(sequence.shape[1:]).contiguous()
    else:
        init = None

    logger.debug(
        "%s scan: n=%d op=%s backend=%s groups=%d active=%d iters=%d interval=%d carries=%s",
        "exclusive" if exclusive else "inclusive",
        n,
        op.name,
        "triton" if use_triton else "pytorch",
        geometry.num_groups,
        geometry.num_active,
        geometry.num_iters,
        geometry.interval_size,
        strategy.value,
    )

    # Lives for exactly this call; slots of empty groups stay unwritten
    carries = allocate_transient(
        "carry", (geometry.num_groups, *sequence.shape[1:]), sequence.dtype, device
    )

    if use_triton:
        sequence = sequence.contiguous()
        target = output if output.is_contiguous() else torch.empty_like(sequence)
        _run_triton(sequence, target, op, geometry, strategy, carries, init)
        if target is not output:
            output.copy_(target)
    else:
        _run_pytorch(sequence, output, op, geometry, strategy, carries, init)

    if config.synchronize:
        synchronize(device, "exclusive_update" if exclusive else "inclusive_update")

    return output


def inclusive_scan(
    input: torch.Tensor,
    op: OpLike = "add",
    out: Optional[torch.Tensor] = None,
    *,
    config: Optional[ScanConfig] = None,
) -> torch.Tensor:
    r"""Inclusive prefix scan along the first dimension.

    ``result[i] = op(...op(op(input[0], input[1]), input[2])..., input[i])``,
    evaluated in a grouping chosen by the engine but always in sequence order.

    Uses custom Triton kernels for 1D CUDA tensors with a built-in operator,
    otherwise the PyTorch implementation of the same three-stage algorithm.

    Args:
        input (Tensor): Sequence of shape :math:`(n, *\text{element\_shape})`.
        op (str, AssociativeOp or callable, optional): Associative operator.
            Built-in names: ``"add"``, ``"mul"``, ``"min"``, ``"max"``,
            ``"and"``, ``"or"``, ``"xor"``. A callable must be elementwise over
            broadcast leading dimensions. Default: ``"add"``
        out (Tensor, optional): Destination of at least ``n`` rows, may be
            ``input`` itself. Default: a new tensor.
        config (ScanConfig, optional): Launch configuration. Default: ``ScanConfig()``

    Returns:
        Tensor: ``out[:n]``, the written range. For ``n == 0`` this is an empty
        view at the start of ``out`` and nothing is written.

    Raises:
        ValueError: On invalid arguments.
        AllocationFailure: If the carry or scratch buffer cannot be allocated.
        LaunchFailure: If a stage cannot be dispatched or fails on the device.
        OperatorFault: If ``op`` raises during a stage.

    Examples::

        >>> import torch
        >>> from flash_scan import inclusive_scan
        >>> inclusive_scan(torch.arange(1, 9))
        tensor([ 1,  3,  6, 10, 15, 21, 28, 36])
        >>> inclusive_scan(torch.tensor([3, 1, 4, 1, 5]), op="max")
        tensor([3, 3, 4, 4, 5])
    """
    return _scan(input, out, op, config)


def exclusive_scan(
    input: torch.Tensor,
    init,
    op: OpLike = "add",
    out: Optional[torch.Tensor] = None,
    *,
    config: Optional[ScanConfig] = None,
) -> torch.Tensor:
    r"""Exclusive prefix scan along the first dimension, seeded with ``init``.

    ``result[0] = init`` and ``result[i] = op(result[i - 1], input[i - 1])``.

    Args:
        input (Tensor): Sequence of shape :math:`(n, *\text{element\_shape})`.
        init (scalar or Tensor): Seed, broadcastable to one element. Required.
        op (str, AssociativeOp or callable, optional): Associative operator.
            Default: ``"add"``
        out (Tensor, optional): Destination of at least ``n`` rows, may be
            ``input`` itself. Default: a new tensor.
        config (ScanConfig, optional): Launch configuration. Default: ``ScanConfig()``

    Returns:
        Tensor: ``out[:n]``, the written range.

    Raises:
        ValueError: On invalid arguments, including a missing ``init``.
        AllocationFailure: If the carry or scratch buffer cannot be allocated.
        LaunchFailure: If a stage cannot be dispatched or fails on the device.
        OperatorFault: If ``op`` raises during a stage.

    Examples::

        >>> exclusive_scan(torch.arange(1, 9), 0)
        tensor([ 0,  1,  3,  6, 10, 15, 21, 28])
    """
    return _scan(input, out, op, config, init=init, exclusive=True)
