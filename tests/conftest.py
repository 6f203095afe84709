from __future__ import annotations

import threading
from typing import Callable, List, Optional, Set, Tuple

import numpy as np
import pytest

from localrembg.algorithms.base import BackendKind, ModelDescriptor, ModelRuntime, RuntimeFlags
from localrembg.buffers import ImageBuffer
from localrembg.resampling import TorchResampler
from localrembg.session import InferenceSession


class StubRuntime(ModelRuntime):
    """Returns a constant matte at the descriptor's native size."""

    def __init__(
        self,
        descriptor: ModelDescriptor,
        value: float = 1.0,
        error: Optional[BaseException] = None,
    ) -> None:
        self.descriptor = descriptor
        self.value = value
        self.error = error
        self.calls = 0
        self.closed = False

    def run(self, batch: np.ndarray) -> np.ndarray:
        self.calls += 1
        if self.error is not None:
            raise self.error
        width, height = self.descriptor.native_mask_size or self.descriptor.expected_input_size
        return np.full((1, 1, height, width), self.value, dtype=np.float32)

    def close(self) -> None:
        self.closed = True


class StubLoader:
    """Model loader that records attempts and fails for the configured backends."""

    def __init__(
        self,
        fail: Set[BackendKind] = frozenset(),
        value: float = 1.0,
        gate: Optional[threading.Event] = None,
        runtime_factory: Optional[Callable[[ModelDescriptor], ModelRuntime]] = None,
    ) -> None:
        self.fail = set(fail)
        self.value = value
        self.gate = gate
        self.entered = threading.Event()
        self.runtime_factory = runtime_factory
        self.calls: List[Tuple[str, RuntimeFlags]] = []
        self._lock = threading.Lock()

    def __call__(self, descriptor: ModelDescriptor, flags: RuntimeFlags) -> InferenceSession:
        with self._lock:
            self.calls.append((descriptor.id, flags))
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if descriptor.backend_kind in self.fail:
            raise RuntimeError(f"simulated load failure for {descriptor.id}")
        if self.runtime_factory is not None:
            runtime = self.runtime_factory(descriptor)
        else:
            runtime = StubRuntime(descriptor, value=self.value)
        return InferenceSession(descriptor, runtime, flags)


@pytest.fixture
def small_descriptor() -> ModelDescriptor:
    return ModelDescriptor(
        id="tiny",
        expected_input_size=(32, 32),
        backend_kind=BackendKind.PORTABLE_COMPUTE,
        native_mask_size=(16, 16),
    )


@pytest.fixture
def resampler() -> TorchResampler:
    return TorchResampler()


def solid_image(width: int, height: int, rgba=(255, 0, 0, 255)) -> ImageBuffer:
    return ImageBuffer.filled(width, height, rgba)


def random_image(width: int, height: int, seed: int = 0) -> ImageBuffer:
    rng = np.random.default_rng(seed)
    return ImageBuffer.from_array(rng.integers(0, 256, size=(height, width, 4), dtype=np.uint8))
