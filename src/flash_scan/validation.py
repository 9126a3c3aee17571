r"""Input validation utilities for the scan engine."""

from typing import Optional

import torch
from torch import Tensor

from .operators import AssociativeOp

__all__ = [
    "validate_sequence",
    "validate_output",
    "validate_operator_dtype",
    "validate_init",
    "validate_device_consistency",
]


def validate_sequence(sequence: Tensor, name: str = "input") -> None:
    r"""Validate that ``sequence`` is a tensor with a leading scan axis.

    Args:
        sequence (Tensor): Sequence of shape :math:`(n, *\text{element\_shape})`.
        name (str, optional): Name for error messages. Default: ``"input"``

    Raises:
        ValueError: If not a tensor or 0-dimensional.
    """
    if not isinstance(sequence, Tensor):
        raise ValueError(f"{name} must be a torch.Tensor, got {type(sequence).__name__}")
    if sequence.ndim < 1:
        raise ValueError(f"{name} must have at least 1 dimension (n, ...), got 0D")


def validate_output(out: Tensor, sequence: Tensor, name: str = "out") -> None:
    r"""Validate that ``out`` can receive the scan of ``sequence``.

    ``out`` may be longer than ``sequence``; only the first ``n`` rows are
    written. It may also be ``sequence`` itself.

    Args:
        out (Tensor): Output of shape :math:`(m, *\text{element\_shape})`, ``m >= n``.
        sequence (Tensor): Input sequence.
        name (str, optional): Name for error messages. Default: ``"out"``

    Raises:
        ValueError: On shape, dtype or length mismatch.
    """
    validate_sequence(out, name)
    if out.shape[1:] != sequence.shape[1:]:
        raise ValueError(
            f"{name} element shape {tuple(out.shape[1:])} doesn't match input "
            f"element shape {tuple(sequence.shape[1:])}"
        )
    if out.shape[0] < sequence.shape[0]:
        raise ValueError(
            f"{name} has {out.shape[0]} positions, need at least {sequence.shape[0]}"
        )
    if out.dtype != sequence.dtype:
        raise ValueError(f"{name} dtype {out.dtype} doesn't match input dtype {sequence.dtype}")


def validate_operator_dtype(op: AssociativeOp, dtype: torch.dtype) -> None:
    r"""Reject built-in bitwise operators on floating point or complex data.

    Raises:
        ValueError: If ``op`` is a bitwise built-in and ``dtype`` is not integral.
    """
    if op.name in ("and", "or", "xor") and (dtype.is_floating_point or dtype.is_complex):
        raise ValueError(f"operator {op.name!r} requires an integer or bool dtype, got {dtype}")


def validate_init(
    init,
    element_shape: torch.Size,
    dtype: Optional[torch.dtype] = None,
    name: str = "init",
) -> None:
    r"""Validate the seed value of an exclusive scan.

    Floating point sequences accept any real seed, rounded to ``dtype``. Integer
    and bool sequences only accept seeds they can represent exactly.

    Args:
        init: Python scalar or tensor broadcastable to ``element_shape``.
        element_shape (torch.Size): Shape of one sequence element.
        dtype (torch.dtype, optional): Sequence dtype the seed is converted to.
            Default: ``None`` (not checked)
        name (str, optional): Name for error messages. Default: ``"init"``

    Raises:
        ValueError: If ``init`` is ``None``, not broadcastable, or not
            representable in ``dtype``.
    """
    if init is None:
        raise ValueError(f"exclusive scan requires an explicit {name} value")
    if isinstance(init, Tensor):
        try:
            torch.broadcast_shapes(init.shape, element_shape)
        except RuntimeError:
            raise ValueError(
                f"{name} shape {tuple(init.shape)} cannot broadcast to element shape "
                f"{tuple(element_shape)}"
            ) from None
        if torch.broadcast_shapes(init.shape, element_shape) != element_shape:
            raise ValueError(
                f"{name} shape {tuple(init.shape)} would enlarge element shape "
                f"{tuple(element_shape)}"
            )

    if dtype is None:
        return
    try:
        original = torch.as_tensor(init)
        converted = torch.as_tensor(init, dtype=dtype)
    except (RuntimeError, TypeError, OverflowError) as exc:
        raise ValueError(f"{name} cannot be converted to {dtype}: {exc}") from None
    if dtype.is_floating_point or dtype.is_complex:
        return
    if not torch.equal(converted.to(original.dtype), original):
        raise ValueError(f"{name} {init!r} is not exactly representable in {dtype}")


def validate_device_consistency(
    *tensors: Tensor,
    names: Optional[list[str]] = None,
) -> None:
    r"""Validate all tensors are on the same device.

    Args:
        *tensors (Tensor): Tensors to check. ``None`` values are skipped.
        names (list[str], optional): Names for error messages. Default: ``None``

    Raises:
        ValueError: If tensors are on different devices.
    """
    valid_tensors = [t for t in tensors if t is not None]
    if len(valid_tensors) <= 1:
        return

    devices = [t.device for t in valid_tensors]

    if len({str(d) for d in devices}) > 1:
        if names is not None:
            valid_names = [n for n, t in zip(names, tensors) if t is not None]
            device_map = dict(zip(valid_names, devices))
        else:
            device_map = {f"tensor_{i}": d for i, d in enumerate(devices)}
        raise ValueError(f"Device mismatch: {device_map}")
