r"""Triton kernels for the interval scan.

One Triton program runs one lane group: a ``W``-wide vector of lanes that walks
its interval in chunks of ``W`` positions. The group-to-program mapping keeps
every property the algorithm needs: groups never talk to each other inside a
launch, each group writes exactly one carry slot, and the three stages are
ordered by the launch queue.

Lanes of a Triton program are not guaranteed to run in lock-step, so the
warp scan does not rely on it. Every shifted-combine step stores into a
per-group scratch row and issues ``tl.debug_barrier()`` before neighbours read
it. Rows alternate between steps (double buffering), so a step never
overwrites values that a slower lane may still be reading from the previous
step. A third row holds each lane's final value, from which the group reads
the running total of its last valid lane.

Scratch layout: ``(num_groups, 3, W)`` of the value dtype::

    row 0, row 1   shifted-combine double buffer
    row 2          final lane values (chunk totals)

Only scalar elements (1D tensors) and the built-in operators are supported.
"""

import torch

from ..constants import SCRATCH_SLOTS
from ..operators import OP_ADD, OP_AND, OP_MAX, OP_MIN, OP_MUL, OP_OR

# Triton is optional
try:
    import triton
    import triton.language as tl

    HAS_TRITON = True
except ImportError:
    HAS_TRITON = False
    triton = None
    tl = None


def _num_warps(warp_size: int) -> int:
    """Hardware warps per program; one program covers one lane group."""
    return max(1, warp_size // 32)


def scratch_shape(num_groups: int, warp_size: int) -> tuple:
    """Shape of the per-group scratch used by the kernels."""
    return (num_groups, SCRATCH_SLOTS, warp_size)


if HAS_TRITON:

    _ADD = tl.constexpr(OP_ADD)
    _MUL = tl.constexpr(OP_MUL)
    _MIN = tl.constexpr(OP_MIN)
    _MAX = tl.constexpr(OP_MAX)
    _AND = tl.constexpr(OP_AND)
    _OR = tl.constexpr(OP_OR)

    @triton.jit
    def _combine(a, b, OP: tl.constexpr):
        """``op(a, b)`` with ``a`` the earlier operand. Resolved at compile time."""
        if OP == _ADD:
            result = a + b
        elif OP == _MUL:
            result = a * b
        elif OP == _MIN:
            result = tl.minimum(a, b)
        elif OP == _MAX:
            result = tl.maximum(a, b)
        elif OP == _AND:
            result = a & b
        elif OP == _OR:
            result = a | b
        else:
            result = a ^ b
        return result

    @triton.jit
    def _warp_scan(val, lane, scratch, W: tl.constexpr, LOG_W: tl.constexpr, OP: tl.constexpr):
        """Inclusive Hillis-Steele scan across the W lanes of one group.

        Leaves the result in scratch row 2 and returns it.
        """
        offset = 1
        for step in tl.static_range(LOG_W):
            row = scratch + (step % 2) * W
            tl.store(row + lane, val)
            tl.debug_barrier()
            below = tl.load(row + lane - offset, mask=lane >= offset, other=0)
            val = tl.where(lane >= offset, _combine(below, val, OP), val)
            offset = offset * 2

        tl.store(scratch + 2 * W + lane, val)
        tl.debug_barrier()
        return val

    @triton.jit
    def interval_scan_kernel(
        in_ptr,  # (n,) - input sequence
        out_ptr,  # (n,) - output, may alias in_ptr
        carry_ptr,  # (num_groups,) - interval totals (write)
        scratch_ptr,  # (num_groups, 3, W) - per-group scratch
        n,
        interval_size,
        W: tl.constexpr,  # lanes per group
        LOG_W: tl.constexpr,  # log2(W) shifted-combine steps
        OP: tl.constexpr,  # combine code
    ):
        """Local scan of one interval per program, emitting the interval total."""
        group = tl.program_id(0)
        begin = group * interval_size

        # Empty trailing group: no writes at all
        if begin >= n:
            return

        end = tl.minimum(begin + interval_size, n)
        lane = tl.arange(0, W)
        scratch = scratch_ptr + group * (3 * W)

        # Overwritten by the first chunk before it is ever combined
        carry = tl.load(in_ptr + begin)

        for chunk in range(begin, end, W):
            idx = chunk + lane
            mask = idx < end
            val = tl.load(in_ptr + idx, mask=mask, other=0)

            # Lane 0 folds in the previous chunk's total
            val = tl.where((lane == 0) & (chunk > begin), _combine(carry, val, OP), val)
            val = _warp_scan(val, lane, scratch, W, LOG_W, OP)
            tl.store(out_ptr + idx, val, mask=mask)

            last = tl.minimum(end - chunk, W) - 1
            carry = tl.load(scratch + 2 * W + last)

        tl.store(carry_ptr + group, carry)

    @triton.jit
    def inclusive_update_kernel(
        out_ptr,  # (n,) - locally scanned output (read/write)
        carry_ptr,  # (num_groups,) - scanned interval totals
        n,
        interval_size,
        W: tl.constexpr,
        OP: tl.constexpr,
    ):
        """Fold the preceding total into every position. Launched for groups 1.."""
        group = tl.program_id(0) + 1
        begin = group * interval_size
        if begin >= n:
            return

        end = tl.minimum(begin + interval_size, n)
        lane = tl.arange(0, W)
        carry = tl.load(carry_ptr + group - 1)

        for chunk in range(begin, end, W):
            idx = chunk + lane
            mask = idx < end
            val = tl.load(out_ptr + idx, mask=mask, other=0)
            tl.store(out_ptr + idx, _combine(carry, val, OP), mask=mask)

    @triton.jit
    def exclusive_update_kernel(
        out_ptr,  # (n,) - locally scanned output (read/write)
        carry_ptr,  # (num_groups,) - scanned interval totals
        init_ptr,  # (1,) - exclusive seed
        scratch_ptr,  # (num_groups, 3, W) - per-group scratch
        n,
        interval_size,
        W: tl.constexpr,
        OP: tl.constexpr,
    ):
        """Shift the local scan right by one and fold in the incoming value."""
        group = tl.program_id(0)
        begin = group * interval_size
        if begin >= n:
            return

        end = tl.minimum(begin + interval_size, n)
        lane = tl.arange(0, W)
        scratch = scratch_ptr + group * (3 * W)

        init = tl.load(init_ptr)
        previous = tl.load(carry_ptr + group - 1, mask=group > 0, other=0)
        incoming = tl.where(group > 0, _combine(init, previous, OP), init)

        # Value lane 0 writes; the last buffered lane of the previous chunk
        lookahead = incoming

        for chunk in range(begin, end, W):
            idx = chunk + lane
            mask = idx < end
            local = tl.load(out_ptr + idx, mask=mask, other=0)

            tl.store(scratch + lane, _combine(incoming, local, OP))
            tl.debug_barrier()

            left = tl.load(scratch + lane - 1, mask=lane > 0, other=0)
            tl.store(out_ptr + idx, tl.where(lane == 0, lookahead, left), mask=mask)
            lookahead = tl.load(scratch + W - 1)

            # Scratch row is rewritten by the next chunk
            tl.debug_barrier()

    def launch_interval_scan(
        sequence: torch.Tensor,
        n: int,
        output: torch.Tensor,
        op_code: int,
        interval_size: int,
        carry_out: torch.Tensor,
        scratch: torch.Tensor,
        num_groups: int,
        warp_size: int = 32,
    ) -> None:
        """Launch stage 1 (or the device carry scan with ``num_groups=1``).

        Args:
            sequence: Contiguous 1D input.
            n: Positions to scan.
            output: Contiguous 1D output, may be ``sequence``.
            op_code: Combine code of a built-in operator.
            interval_size: Positions per interval.
            carry_out: Carry slots, one per group.
            scratch: ``(>= num_groups, 3, W)`` scratch of the value dtype.
            num_groups: Programs to launch, including empty trailing groups.
            warp_size: Lanes per group.
        """
        log_w = warp_size.bit_length() - 1
        interval_scan_kernel[(num_groups,)](
            sequence,
            output,
            carry_out,
            scratch,
            n,
            interval_size,
            W=warp_size,
            LOG_W=log_w,
            OP=op_code,
            num_warps=_num_warps(warp_size),
        )

    def launch_inclusive_update(
        output: torch.Tensor,
        n: int,
        op_code: int,
        interval_size: int,
        carries: torch.Tensor,
        num_groups: int,
        warp_size: int = 32,
    ) -> None:
        """Launch the inclusive update over groups ``1..num_groups-1``."""
        if num_groups < 2:
            return
        inclusive_update_kernel[(num_groups - 1,)](
            output,
            carries,
            n,
            interval_size,
            W=warp_size,
            OP=op_code,
            num_warps=_num_warps(warp_size),
        )

    def launch_exclusive_update(
        output: torch.Tensor,
        n: int,
        init: torch.Tensor,
        op_code: int,
        interval_size: int,
        carries: torch.Tensor,
        scratch: torch.Tensor,
        num_groups: int,
        warp_size: int = 32,
    ) -> None:
        """Launch the exclusive update over all groups.

        ``init`` is a one-element tensor of the output dtype on the output device.
        """
        exclusive_update_kernel[(num_groups,)](
            output,
            carries,
            init,
            scratch,
            n,
            interval_size,
            W=warp_size,
            OP=op_code,
            num_warps=_num_warps(warp_size),
        )
