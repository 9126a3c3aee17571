r"""Shared constants for the interval scan engine.

Attributes:
    WARP_SIZE (int): Default number of lock-step lanes per group. Matches the
        CUDA warp width.
    DEFAULT_HOST_GROUPS (int): Number of concurrently resident groups assumed
        when no accelerator can be queried (host emulation).
    DEFAULT_DEVICE_GROUPS (int): Fallback resident group count for CUDA
        devices whose properties do not report threads per multiprocessor.
    HOST_SCAN_THRESHOLD (int): Largest carry array that the ``auto`` carry
        strategy hands to the host-side sequential fold.
    SCRATCH_SLOTS (int): Rows of per-group scratch used by the Triton kernels:
        two double-buffer rows for the shifted-combine steps and one row that
        holds each lane's final value.
"""

WARP_SIZE = 32

DEFAULT_HOST_GROUPS = 1024

DEFAULT_DEVICE_GROUPS = 2048

HOST_SCAN_THRESHOLD = 64

SCRATCH_SLOTS = 3
