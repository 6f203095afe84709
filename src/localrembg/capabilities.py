from __future__ import annotations

import logging
import platform
import sys
from dataclasses import dataclass
from functools import lru_cache

logger = logging.getLogger(__name__)

__all__ = ["PlatformProfile", "detect_platform_profile", "is_touch_apple_device"]

_APPLE_TOUCH_MACHINES = ("iPhone", "iPad", "iPod")


@dataclass(frozen=True)
class PlatformProfile:
    is_touch_apple_device: bool = False
    has_high_perf_gpu_api: bool = False


def is_touch_apple_device() -> bool:
    if sys.platform == "ios":
        return True
    return platform.machine().startswith(_APPLE_TOUCH_MACHINES)


def _has_high_perf_gpu_api() -> bool:
    from .algorithms.onnx_base import available_gpu_providers

    return bool(available_gpu_providers())


@lru_cache()
def detect_platform_profile() -> PlatformProfile:
    """Probe the running platform once; the result is cached for the process lifetime."""
    profile = PlatformProfile(
        is_touch_apple_device=is_touch_apple_device(),
        has_high_perf_gpu_api=_has_high_perf_gpu_api(),
    )
    logger.info(
        "Platform profile: touch_apple=%s gpu_api=%s",
        profile.is_touch_apple_device,
        profile.has_high_perf_gpu_api,
    )
    return profile
