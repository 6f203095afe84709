from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import numpy as np

from .algorithms.base import (
    BackendKind,
    ModelDescriptor,
    ModelRuntime,
    OutputActivation,
    RuntimeFlags,
)
from .buffers import MaskBuffer, TensorBuffer
from .errors import InferenceError

logger = logging.getLogger(__name__)

__all__ = ["TensorProcessor", "InferenceSession"]

# onnxruntime reports these when the execution provider itself is broken.
_FATAL_RUNTIME_ERRORS = frozenset({"EPFail", "EngineError"})


class TensorProcessor:
    """
    Companion processor of a model: normalizes the [0, 1] planar tensor into the
    model's input space and decodes the raw output into a [0, 1] matte.
    """

    def __init__(self, descriptor: ModelDescriptor) -> None:
        self.descriptor = descriptor
        self._mean = np.asarray(descriptor.normalize_mean, dtype=np.float32).reshape(3, 1, 1)
        self._std = np.asarray(descriptor.normalize_std, dtype=np.float32).reshape(3, 1, 1)

    def to_model_input(self, tensor: TensorBuffer) -> np.ndarray:
        chw = tensor.as_array()
        normalized = (chw - self._mean) / self._std
        return normalized[np.newaxis].astype(np.float32, copy=False)

    def to_mask(self, raw: np.ndarray) -> MaskBuffer:
        alpha = np.asarray(raw, dtype=np.float32)
        while alpha.ndim > 2:
            alpha = alpha[0]
        if alpha.ndim != 2:
            raise ValueError(f"Model output has unsupported shape {np.shape(raw)}.")

        activation = self.descriptor.output_activation
        if activation is OutputActivation.SIGMOID:
            alpha = 1.0 / (1.0 + np.exp(-alpha))
        elif activation is OutputActivation.MINMAX:
            lo, hi = float(np.nanmin(alpha)), float(np.nanmax(alpha))
            if hi > lo:
                alpha = (alpha - lo) / (hi - lo)

        alpha = np.nan_to_num(alpha, nan=0.0, posinf=1.0, neginf=0.0)
        alpha = np.clip(alpha, 0.0, 1.0)

        mask = MaskBuffer.from_array(alpha)
        expected = self.descriptor.native_mask_size
        if expected is not None and mask.size != expected:
            logger.warning(
                "Model %s produced a %dx%d matte, descriptor declares %dx%d.",
                self.descriptor.id,
                mask.width,
                mask.height,
                *expected,
            )
        return mask


class InferenceSession:
    """
    Loaded model plus its processor. ``run`` is the only inference entry point.

    Owners hold the session between ``acquire`` and ``release`` while they use
    it. ``retire`` closes the session as soon as the last holder releases it.
    """

    def __init__(
        self,
        descriptor: ModelDescriptor,
        runtime: ModelRuntime,
        flags: Optional[RuntimeFlags] = None,
    ) -> None:
        self.descriptor = descriptor
        self.runtime = runtime
        self.flags = flags or RuntimeFlags.for_backend(descriptor.backend_kind)
        self.processor = TensorProcessor(descriptor)
        self._proxy: Optional[ThreadPoolExecutor] = None
        self._lock = threading.Lock()
        self._in_use = 0
        self._retired = False
        self._closed = False
        if self.flags.proxy:
            # Runtimes without concurrent inference get a single queue.
            self._proxy = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix=f"localrembg-{descriptor.id}"
            )

    @property
    def backend_kind(self) -> BackendKind:
        return self.descriptor.backend_kind

    def run(self, tensor: TensorBuffer) -> MaskBuffer:
        batch = self.processor.to_model_input(tensor)
        proxy = self._proxy
        try:
            if proxy is not None:
                raw = proxy.submit(self.runtime.run, batch).result()
            else:
                raw = self.runtime.run(batch)
        except InferenceError:
            raise
        except Exception as exc:
            fatal = isinstance(exc, MemoryError) or type(exc).__name__ in _FATAL_RUNTIME_ERRORS
            raise InferenceError(
                f"Inference failed on model '{self.descriptor.id}': {exc}",
                backend_kind=self.backend_kind,
                fatal=fatal,
            ) from exc

        try:
            return self.processor.to_mask(raw)
        except ValueError as exc:
            raise InferenceError(str(exc), backend_kind=self.backend_kind) from exc

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def in_use(self) -> int:
        return self._in_use

    def acquire(self) -> None:
        with self._lock:
            if self._retired:
                raise InferenceError(
                    f"Session for model '{self.descriptor.id}' has been retired.",
                    backend_kind=self.backend_kind,
                )
            self._in_use += 1

    def release(self) -> None:
        with self._lock:
            self._in_use -= 1
            close_now = self._retired and self._in_use == 0
        if close_now:
            self.close()

    def retire(self) -> None:
        with self._lock:
            if self._retired:
                return
            self._retired = True
            close_now = self._in_use == 0
        if close_now:
            self.close()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._retired = True
            proxy, self._proxy = self._proxy, None
        if proxy is not None:
            proxy.shutdown(wait=True)
        self.runtime.close()

    def __repr__(self) -> str:
        return (
            f"InferenceSession(model={self.descriptor.id!r}, "
            f"backend={self.backend_kind.value!r}, proxy={self.flags.proxy})"
        )
