r"""Associative operators accepted by the scan engine.

An operator is a pure binary function ``op(a, b)`` over tensors that is
elementwise over the broadcast leading dimensions and satisfies
``op(op(a, b), c) == op(a, op(b, c))``. It is never assumed to be commutative:
the engine always passes the earlier operand first.

Built-in operators carry an integer ``code`` so the Triton kernels can select
the combine step at compile time. Any other callable runs on the PyTorch
backend only.

Examples::

    >>> from flash_scan.operators import get_operator
    >>> get_operator("add").fn(torch.tensor(1), torch.tensor(2))
    tensor(3)
    >>> matmul = get_operator(torch.matmul)   # non-commutative, PyTorch only
"""

from dataclasses import dataclass, field
from typing import Callable, Optional, Union

import torch

__all__ = [
    "AssociativeOp",
    "OP_ADD",
    "OP_MUL",
    "OP_MIN",
    "OP_MAX",
    "OP_AND",
    "OP_OR",
    "OP_XOR",
    "get_operator",
    "register_operator",
    "available_operators",
]

# Combine codes understood by the Triton kernels
OP_ADD = 0
OP_MUL = 1
OP_MIN = 2
OP_MAX = 3
OP_AND = 4
OP_OR = 5
OP_XOR = 6

_ARITHMETIC_DTYPES = (torch.int32, torch.int64, torch.float32, torch.float64)
_BITWISE_DTYPES = (torch.int32, torch.int64)


@dataclass(frozen=True)
class AssociativeOp:
    r"""A named associative binary operator.

    Args:
        name (str): Name used in error messages and logs.
        fn (Callable): ``fn(earlier, later) -> Tensor``.
        code (int, optional): Triton combine code, ``None`` for operators the
            kernels do not implement. Default: ``None``
        dtypes (tuple): Dtypes the Triton kernels accept for this operator.
    """

    name: str
    fn: Callable[[torch.Tensor, torch.Tensor], torch.Tensor]
    code: Optional[int] = None
    dtypes: tuple = field(default=())

    def __call__(self, a: torch.Tensor, b: torch.Tensor) -> torch.Tensor:
        return self.fn(a, b)

    def supports_triton(self, dtype: torch.dtype) -> bool:
        return self.code is not None and dtype in self.dtypes


_REGISTRY = {
    "add": AssociativeOp("add", torch.add, OP_ADD, _ARITHMETIC_DTYPES),
    "mul": AssociativeOp("mul", torch.mul, OP_MUL, _ARITHMETIC_DTYPES),
    "min": AssociativeOp("min", torch.minimum, OP_MIN, _ARITHMETIC_DTYPES),
    "max": AssociativeOp("max", torch.maximum, OP_MAX, _ARITHMETIC_DTYPES),
    "and": AssociativeOp("and", torch.bitwise_and, OP_AND, _BITWISE_DTYPES),
    "or": AssociativeOp("or", torch.bitwise_or, OP_OR, _BITWISE_DTYPES),
    "xor": AssociativeOp("xor", torch.bitwise_xor, OP_XOR, _BITWISE_DTYPES),
}


def available_operators() -> list[str]:
    """Names of all registered operators."""
    return sorted(_REGISTRY)


def register_operator(name: str, fn: Callable, overwrite: bool = False) -> AssociativeOp:
    r"""Register a callable under ``name`` so it can be passed as a string.

    Registered callables run on the PyTorch backend. Associativity is the
    caller's responsibility and is not checked.

    Raises:
        ValueError: If ``name`` is taken and ``overwrite`` is ``False``, or
            ``fn`` is not callable.
    """
    if not callable(fn):
        raise ValueError(f"operator {name!r} must be callable, got {type(fn).__name__}")
    if name in _REGISTRY and not overwrite:
        raise ValueError(f"operator {name!r} is already registered")
    op = AssociativeOp(name, fn)
    _REGISTRY[name] = op
    return op


def get_operator(op: Union[str, AssociativeOp, Callable]) -> AssociativeOp:
    r"""Resolve a name, :class:`AssociativeOp` or callable to an operator.

    Raises:
        ValueError: If a name is not registered or ``op`` is not callable.
    """
    if isinstance(op, AssociativeOp):
        return op
    if isinstance(op, str):
        try:
            return _REGISTRY[op]
        except KeyError:
            raise ValueError(
                f"unknown operator {op!r}, expected one of {available_operators()}"
            ) from None
    if callable(op):
        return AssociativeOp(getattr(op, "__name__", repr(op)), op)
    raise ValueError(f"op must be a name or a callable, got {type(op).__name__}")
