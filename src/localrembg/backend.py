"""
Backend selection.

Walks a capability-ordered list of backends and loads the first one that
works. The order is decided from a :class:`PlatformProfile` value so the
state machine can be exercised with synthetic profiles:

    Start -> (touch Apple device)   -> PortableComputeLoad
    Start -> (GPU API advertised)   -> HighPerfGpuLoad -> Ready
                                                       -> PortableComputeLoad (on failure)
    PortableComputeLoad -> Ready | Failed
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .algorithms import DEFAULT_DESCRIPTORS
from .algorithms.base import BackendKind, ModelDescriptor, RuntimeFlags
from .capabilities import PlatformProfile
from .errors import InitError
from .session import InferenceSession

logger = logging.getLogger(__name__)

__all__ = ["BackendHandle", "BackendSelector", "ModelLoader", "SelectionState"]

ModelLoader = Callable[[ModelDescriptor, RuntimeFlags], InferenceSession]


class SelectionState(str, enum.Enum):
    START = "start"
    HIGH_PERF_GPU_LOAD = "high-perf-gpu-load"
    PORTABLE_COMPUTE_LOAD = "portable-compute-load"
    READY = "ready"
    FAILED = "failed"


_LOAD_STATE = {
    BackendKind.HIGH_PERF_GPU: SelectionState.HIGH_PERF_GPU_LOAD,
    BackendKind.PORTABLE_COMPUTE: SelectionState.PORTABLE_COMPUTE_LOAD,
}


@dataclass(frozen=True)
class BackendHandle:
    descriptor: ModelDescriptor
    session: InferenceSession
    backend_kind: BackendKind
    flags: RuntimeFlags


class BackendSelector:
    def __init__(
        self,
        profile: PlatformProfile,
        loader: ModelLoader,
        force_backend: Optional[BackendKind] = None,
        allow_local_models: bool = False,
        descriptors: Optional[Dict[BackendKind, ModelDescriptor]] = None,
    ) -> None:
        self.profile = profile
        self.loader = loader
        self.force_backend = force_backend
        self.allow_local_models = allow_local_models
        self.descriptors = dict(descriptors or DEFAULT_DESCRIPTORS)
        self.trace: List[SelectionState] = []

    def plan(self) -> List[BackendKind]:
        """Backends to try, in order. The portable backend is always last."""
        if self.force_backend is BackendKind.PORTABLE_COMPUTE:
            return [BackendKind.PORTABLE_COMPUTE]
        # Touch Apple devices mis-negotiate the GPU API; never try it there.
        if self.profile.is_touch_apple_device:
            return [BackendKind.PORTABLE_COMPUTE]
        if self.profile.has_high_perf_gpu_api or self.force_backend is BackendKind.HIGH_PERF_GPU:
            return [BackendKind.HIGH_PERF_GPU, BackendKind.PORTABLE_COMPUTE]
        return [BackendKind.PORTABLE_COMPUTE]

    def select(self) -> BackendHandle:
        self.trace = [SelectionState.START]
        last_exc: Optional[BaseException] = None

        for kind in self.plan():
            self.trace.append(_LOAD_STATE[kind])
            descriptor = self.descriptors[kind]
            flags = RuntimeFlags.for_backend(kind, allow_local_models=self.allow_local_models)

            start = time.perf_counter()
            try:
                session = self.loader(descriptor, flags)
            except Exception as exc:
                last_exc = exc
                if kind is BackendKind.HIGH_PERF_GPU:
                    logger.warning(
                        "GPU backend failed to load %s, falling back to portable compute: %s",
                        descriptor.id,
                        exc,
                    )
                else:
                    logger.error("Portable backend failed to load %s: %s", descriptor.id, exc)
                continue

            self.trace.append(SelectionState.READY)
            logger.info(
                "Backend ready: %s on %s (%.2fs)",
                descriptor.id,
                kind.value,
                time.perf_counter() - start,
            )
            return BackendHandle(
                descriptor=descriptor,
                session=session,
                backend_kind=kind,
                flags=flags,
            )

        self.trace.append(SelectionState.FAILED)
        raise InitError(f"No inference backend could be loaded: {last_exc}") from last_exc
