r"""PyTorch implementation of the interval scan stages.

Each kernel is emulated over all groups at once: groups form the leading
tensor axis and the ``W`` lanes of a group form the next axis, so one Python
statement corresponds to one lock-step instruction issued by every group.
Chunks within an interval are still processed strictly left-to-right, and the
carry values flow between stages exactly as they do between Triton launches.

This implementation:

- Works on CPU and GPU
- Accepts any associative callable, including non-commutative ones
- Supports sequences of non-scalar elements, shape ``(n, *element_shape)``
- Serves as reference for correctness validation of the Triton kernels

Layout of an emulated launch with ``G`` active groups and ``I`` positions per
interval::

    output[:n]  ->  pad to G * I  ->  (G, I)  ->  pad lanes  ->  (G, num_iters, W)

Padding replicates the last real element, so a user operator only ever sees
values of the element type. Padded positions sit after every real position of
their group and never flow into a real result.
"""

import math

import torch

from ..constants import WARP_SIZE
from ..errors import OperatorFault
from ..operators import get_operator

__all__ = [
    "warp_scan",
    "interval_scan",
    "inclusive_update",
    "exclusive_update",
    "inclusive_scan_sequential",
    "exclusive_scan_sequential",
]


def _combine(op, stage, earlier, later):
    # A faulting lane aborts the whole scan
    try:
        return op(earlier, later)
    except Exception as exc:
        raise OperatorFault(stage, op.name) from exc


def _to_lanes(sequence, n, interval_size, warp_size):
    """View ``sequence[:n]`` as ``(groups, num_iters, W, *element_shape)``."""
    element_shape = sequence.shape[1:]
    num_groups = math.ceil(n / interval_size)
    num_iters = math.ceil(interval_size / warp_size)

    x = sequence[:n]
    tail = num_groups * interval_size - n
    if tail:
        x = torch.cat([x, x[n - 1 : n].expand(tail, *element_shape)])
    x = x.reshape(num_groups, interval_size, *element_shape)

    lane_pad = num_iters * warp_size - interval_size
    if lane_pad:
        x = torch.cat([x, x[:, -1:].expand(num_groups, lane_pad, *element_shape)], dim=1)
    return x.reshape(num_groups, num_iters, warp_size, *element_shape)


def _from_lanes(chunks, n, interval_size):
    """Inverse of :func:`_to_lanes` for a list of per-chunk ``(G, W, ...)`` results."""
    lanes = torch.stack(chunks, dim=1)
    num_groups = lanes.shape[0]
    element_shape = lanes.shape[3:]
    lanes = lanes.reshape(num_groups, -1, *element_shape)[:, :interval_size]
    return lanes.reshape(num_groups * interval_size, *element_shape)[:n]


def warp_scan(values, op, stage="warp_scan"):
    r"""Inclusive scan across the lanes of every group.

    Hillis-Steele: at offsets ``1, 2, 4, ..., W/2`` every lane with rank
    ``>= offset`` combines the value ``offset`` lanes below it into its own.
    Each step reads only the previous step's values, which is what lock-step
    execution (or a double buffer plus barrier) guarantees on hardware.

    Args:
        values: Tensor of shape ``(groups, W, *element_shape)``.
        op: Operator name, :class:`AssociativeOp` or callable.
        stage (str, optional): Stage name reported on an operator fault.

    Returns:
        Tensor of the same shape holding each lane's inclusive prefix.
    """
    op = get_operator(op)
    width = values.shape[1]
    offset = 1
    while offset < width:
        shifted = _combine(op, stage, values[:, :-offset], values[:, offset:])
        values = torch.cat([values[:, :offset], shifted.to(values.dtype)], dim=1)
        offset *= 2
    return values


def interval_scan(
    sequence, n, output, op, interval_size, carry_out, warp_size=WARP_SIZE, stage="interval_scan"
):
    r"""Stage 1: scan every interval locally and emit one carry per interval.

    Group ``g`` owns ``[g * interval_size, min((g + 1) * interval_size, n))``
    and walks it in chunks of ``warp_size``. Before scanning a chunk, lane 0
    folds in the last lane of the previous chunk. After the interval, the
    value produced for its last position is written to ``carry_out[g]``.
    Groups whose interval is empty are not emulated and write nothing.

    Args:
        sequence: Input of shape ``(>= n, *element_shape)``.
        n (int): Number of positions to scan.
        output: Output of shape ``(>= n, *element_shape)``. May be ``sequence``.
        op: Associative operator.
        interval_size (int): Positions per interval.
        carry_out: Carry array, at least ``ceil(n / interval_size)`` rows. May
            alias ``sequence`` as long as every carry slot it shares with the
            input lies at or after the slot's own interval end.
        warp_size (int, optional): Lanes per group. Default: ``32``
        stage (str, optional): Stage name reported on an operator fault.
            Default: ``"interval_scan"``
    """
    if n == 0:
        return
    op = get_operator(op)
    lanes = _to_lanes(sequence, n, interval_size, warp_size)
    num_groups, num_iters = lanes.shape[:2]

    chunks = []
    carry = None
    for it in range(num_iters):
        values = lanes[:, it]
        if carry is not None:
            head = _combine(op, stage, carry, values[:, 0])
            values = torch.cat([head.unsqueeze(1).to(values.dtype), values[:, 1:]], dim=1)
        values = warp_scan(values, op, stage=stage)
        chunks.append(values)
        carry = values[:, -1]

    scanned = _from_lanes(chunks, n, interval_size)

    last = torch.arange(1, num_groups + 1, device=scanned.device) * interval_size
    last = torch.clamp(last, max=n) - 1
    totals = scanned[last]

    output[:n] = scanned
    carry_out[:num_groups] = totals


def inclusive_update(output, n, op, interval_size, carries):
    r"""Stage 3 (inclusive): fold the preceding intervals' total into each position.

    Position ``i`` of group ``g >= 1`` becomes ``op(carries[g - 1], output[i])``.
    Group 0 has no predecessor and is left untouched.

    Args:
        output: Locally scanned output, ``(>= n, *element_shape)``.
        n (int): Number of positions.
        op: Associative operator.
        interval_size (int): Positions per interval.
        carries: Inclusive scan of the interval totals.
    """
    if n <= interval_size:
        return
    op = get_operator(op)
    positions = torch.arange(interval_size, n, device=output.device)
    incoming = carries[positions // interval_size - 1]
    output[interval_size:n] = _combine(op, "inclusive_update", incoming, output[interval_size:n])


def exclusive_update(output, n, init, op, interval_size, carries, warp_size=WARP_SIZE):
    r"""Stage 3 (exclusive): shift the inclusive result right by one position.

    The incoming value of group 0 is ``init``; of group ``g >= 1`` it is
    ``op(init, carries[g - 1])``. The first position of an interval receives
    the incoming value, every later position ``i`` receives
    ``op(incoming, local[i - 1])``.

    Chunks are processed with a one-chunk lookahead: ``op(incoming, chunk)``
    is buffered, lanes ``1..W-1`` take their left neighbour from the buffer,
    lane 0 takes the value carried over from the previous chunk. No lane
    overwrites a value another lane has yet to read.

    Args:
        output: Locally scanned output, ``(>= n, *element_shape)``.
        n (int): Number of positions.
        init: Tensor of shape ``element_shape`` and the output dtype.
        op: Associative operator.
        interval_size (int): Positions per interval.
        carries: Inclusive scan of the interval totals.
        warp_size (int, optional): Lanes per group. Default: ``32``
    """
    if n == 0:
        return
    op = get_operator(op)
    lanes = _to_lanes(output, n, interval_size, warp_size)
    num_groups, num_iters = lanes.shape[:2]

    incoming = init.expand(num_groups, *output.shape[1:]).clone()
    if num_groups > 1:
        incoming[1:] = _combine(op, "exclusive_update", init, carries[: num_groups - 1])

    chunks = []
    lookahead = incoming
    for it in range(num_iters):
        buffered = _combine(op, "exclusive_update", incoming.unsqueeze(1), lanes[:, it])
        buffered = buffered.to(output.dtype)
        chunks.append(torch.cat([lookahead.unsqueeze(1), buffered[:, :-1]], dim=1))
        lookahead = buffered[:, -1]

    output[:n] = _from_lanes(chunks, n, interval_size)


def inclusive_scan_sequential(sequence, op, output=None, stage="sequential_scan"):
    r"""Strict left-to-right inclusive scan.

    Used by the host carry strategy and as the ground truth in tests.

    Args:
        sequence: Input of shape ``(n, *element_shape)``.
        op: Associative operator.
        output (optional): Destination, may be ``sequence``. Default: a new tensor.
        stage (str, optional): Stage name reported on an operator fault.

    Returns:
        The written output.
    """
    op = get_operator(op)
    n = sequence.shape[0]
    if output is None:
        output = torch.empty_like(sequence)
    if n == 0:
        return output[:0]
    running = sequence[0].clone()
    output[0] = running
    for i in range(1, n):
        running = _combine(op, stage, running, sequence[i])
        output[i] = running
    return output[:n]


def exclusive_scan_sequential(sequence, init, op, output=None, stage="sequential_scan"):
    r"""Strict left-to-right exclusive scan seeded with ``init``.

    Args:
        sequence: Input of shape ``(n, *element_shape)``.
        init: Seed value, broadcastable to one element.
        op: Associative operator.
        output (optional): Destination, may be ``sequence``. Default: a new tensor.
        stage (str, optional): Stage name reported on an operator fault.

    Returns:
        The written output.
    """
    op = get_operator(op)
    n = sequence.shape[0]
    if output is None:
        output = torch.empty_like(sequence)
    if n == 0:
        return output[:0]
    running = torch.as_tensor(init, dtype=sequence.dtype, device=sequence.device)
    running = running.expand(sequence.shape[1:]).clone()
    for i in range(n):
        current = sequence[i].clone()
        output[i] = running
        running = _combine(op, stage, running, current)
    return output[:n]
