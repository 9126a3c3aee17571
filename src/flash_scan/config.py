r"""Launch configuration for the scan engine.

:class:`ScanConfig` collects every knob the orchestrator uses to size and
sequence the kernel launches. All fields have defaults, so most callers never
build one explicitly. Environment variables can override the defaults through
:meth:`ScanConfig.from_env`::

    FLASH_SCAN_WARP_SIZE=32
    FLASH_SCAN_MAX_GROUPS=512
    FLASH_SCAN_CARRY_STRATEGY=host
    FLASH_SCAN_HOST_THRESHOLD=128
    FLASH_SCAN_USE_TRITON=0
"""

import enum
import os
from dataclasses import dataclass
from typing import Optional, Union

from .constants import HOST_SCAN_THRESHOLD, WARP_SIZE

__all__ = ["CarryScanStrategy", "ScanConfig"]

_ENV_PREFIX = "FLASH_SCAN_"


class CarryScanStrategy(str, enum.Enum):
    r"""Where the second-level scan over interval carries runs.

    Attributes:
        DEVICE: Run the interval-scan kernel again with a single group.
        HOST: Copy the carries to host memory and fold them sequentially.
        AUTO: ``HOST`` for small carry arrays on an accelerator, else ``DEVICE``.
    """

    DEVICE = "device"
    HOST = "host"
    AUTO = "auto"


def _env_flag(value: str) -> bool:
    return value.strip().lower() not in ("0", "false", "no", "off", "")


@dataclass
class ScanConfig:
    r"""Configuration of one scan invocation.

    Args:
        warp_size (int, optional): Lanes per group, a power of two >= 2.
            Default: ``32``
        max_groups (int, optional): Upper bound on concurrently resident
            groups. ``None`` queries the hardware. Default: ``None``
        carry_strategy (CarryScanStrategy or str, optional): Second-level scan
            strategy. Default: ``"auto"``
        host_scan_threshold (int, optional): Largest carry array the ``auto``
            strategy scans on the host. Default: ``64``
        use_triton (bool, optional): Use Triton kernels when applicable.
            Default: ``True``
        synchronize (bool, optional): Synchronize the device after the last
            stage and report asynchronous errors. Default: ``True``

    Raises:
        ValueError: On an invalid field value.
    """

    warp_size: int = WARP_SIZE
    max_groups: Optional[int] = None
    carry_strategy: Union[CarryScanStrategy, str] = CarryScanStrategy.AUTO
    host_scan_threshold: int = HOST_SCAN_THRESHOLD
    use_triton: bool = True
    synchronize: bool = True

    def __post_init__(self):
        if isinstance(self.warp_size, bool) or not isinstance(self.warp_size, int):
            raise ValueError(f"warp_size must be an int, got {type(self.warp_size).__name__}")
        if self.warp_size < 2 or self.warp_size & (self.warp_size - 1):
            raise ValueError(f"warp_size must be a power of two >= 2, got {self.warp_size}")
        if self.max_groups is not None and (
            isinstance(self.max_groups, bool) or not isinstance(self.max_groups, int)
        ):
            raise ValueError(
                f"max_groups must be an int or None, got {type(self.max_groups).__name__}"
            )
        if self.max_groups is not None and self.max_groups < 1:
            raise ValueError(f"max_groups must be positive, got {self.max_groups}")
        if self.host_scan_threshold < 0:
            raise ValueError(
                f"host_scan_threshold must be non-negative, got {self.host_scan_threshold}"
            )
        try:
            self.carry_strategy = CarryScanStrategy(self.carry_strategy)
        except ValueError:
            choices = [s.value for s in CarryScanStrategy]
            raise ValueError(
                f"carry_strategy must be one of {choices}, got {self.carry_strategy!r}"
            ) from None

    @property
    def log2_warp_size(self) -> int:
        return self.warp_size.bit_length() - 1

    @classmethod
    def from_env(cls, **overrides) -> "ScanConfig":
        r"""Build a config from ``FLASH_SCAN_*`` environment variables.

        Keyword arguments take precedence over the environment.
        """
        kwargs = {}
        env = os.environ
        if _ENV_PREFIX + "WARP_SIZE" in env:
            kwargs["warp_size"] = int(env[_ENV_PREFIX + "WARP_SIZE"])
        if _ENV_PREFIX + "MAX_GROUPS" in env:
            kwargs["max_groups"] = int(env[_ENV_PREFIX + "MAX_GROUPS"])
        if _ENV_PREFIX + "CARRY_STRATEGY" in env:
            kwargs["carry_strategy"] = env[_ENV_PREFIX + "CARRY_STRATEGY"].strip().lower()
        if _ENV_PREFIX + "HOST_THRESHOLD" in env:
            kwargs["host_scan_threshold"] = int(env[_ENV_PREFIX + "HOST_THRESHOLD"])
        if _ENV_PREFIX + "USE_TRITON" in env:
            kwargs["use_triton"] = _env_flag(env[_ENV_PREFIX + "USE_TRITON"])
        kwargs.update(overrides)
        return cls(**kwargs)
