r"""flash-scan: two-level parallel prefix scan for PyTorch tensors.

>>> import torch
>>> from flash_scan import inclusive_scan, exclusive_scan
>>> inclusive_scan(torch.tensor([1, 2, 3, 4]))
tensor([ 1,  3,  6, 10])
>>> exclusive_scan(torch.tensor([1, 2, 3, 4]), init=0)
tensor([0, 1, 3, 6])
"""

from .config import CarryScanStrategy, ScanConfig
from .errors import AllocationFailure, LaunchFailure, OperatorFault, ScanError
from .hardware import ScanGeometry, compute_geometry, max_resident_groups
from .interval import (
    HAS_TRITON,
    exclusive_scan,
    exclusive_scan_sequential,
    inclusive_scan,
    inclusive_scan_sequential,
)
from .operators import AssociativeOp, available_operators, get_operator, register_operator

__version__ = "0.1.0"

__all__ = [
    "inclusive_scan",
    "exclusive_scan",
    "inclusive_scan_sequential",
    "exclusive_scan_sequential",
    "ScanConfig",
    "CarryScanStrategy",
    "ScanGeometry",
    "compute_geometry",
    "max_resident_groups",
    "AssociativeOp",
    "get_operator",
    "register_operator",
    "available_operators",
    "ScanError",
    "AllocationFailure",
    "LaunchFailure",
    "OperatorFault",
    "HAS_TRITON",
]
