r"""Exception taxonomy for the scan engine.

Every failure inside a scan aborts the whole call. There is no partial-result
contract and nothing is retried: a failed allocation or launch stems from
resource exhaustion or a programming error, not from a transient condition.
An empty input is not an error.
"""

from typing import Optional

__all__ = [
    "ScanError",
    "AllocationFailure",
    "LaunchFailure",
    "OperatorFault",
]


class ScanError(RuntimeError):
    r"""Base class for failures raised while a scan is running."""


class AllocationFailure(ScanError):
    r"""A transient buffer (carries or scratch) could not be allocated.

    Args:
        what (str): Name of the buffer.
        shape (tuple): Requested shape.
        device: Device the buffer was requested on.
    """

    def __init__(self, what: str, shape: tuple, device) -> None:
        self.what = what
        self.shape = tuple(shape)
        self.device = device
        super().__init__(f"could not allocate {what} buffer of shape {self.shape} on {device}")


class LaunchFailure(ScanError):
    r"""A stage could not be dispatched, or the post-launch status check failed.

    Args:
        stage (str): Stage that failed, e.g. ``"interval_scan"``.
        reason (str, optional): Extra detail appended to the message.
    """

    def __init__(self, stage: str, reason: Optional[str] = None) -> None:
        self.stage = stage
        message = f"scan stage '{stage}' failed"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class OperatorFault(LaunchFailure):
    r"""The user-supplied operator raised while a stage was running.

    A lane cannot recover from a fault in lock-step execution, so the entire
    scan is aborted. The original exception is available as ``__cause__``.
    """

    def __init__(self, stage: str, op_name: str) -> None:
        self.op_name = op_name
        super().__init__(stage, f"operator {op_name!r} raised")
