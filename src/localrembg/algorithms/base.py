from __future__ import annotations

import abc
import enum
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

import numpy as np

from ..utils.downloads import ProgressCallback, download_file, sha256_file


class BackendKind(str, enum.Enum):
    HIGH_PERF_GPU = "high-perf-gpu"
    PORTABLE_COMPUTE = "portable-compute"


class OutputActivation(str, enum.Enum):
    NONE = "none"
    SIGMOID = "sigmoid"
    MINMAX = "minmax"


@dataclass(frozen=True)
class ModelDescriptor:
    """
    Build-time description of a matting model.

    ``expected_input_size`` and ``native_mask_size`` are ``(width, height)``.
    ``mask_canvas_size`` is the optional canonical square the raw matte is
    resampled through before the final resize to the source resolution.
    """

    id: str
    expected_input_size: Tuple[int, int]
    backend_kind: BackendKind
    weights_url: Optional[str] = None
    weights_sha256: Optional[str] = None
    native_mask_size: Optional[Tuple[int, int]] = None
    mask_canvas_size: Optional[Tuple[int, int]] = None
    normalize_mean: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    normalize_std: Tuple[float, float, float] = (1.0, 1.0, 1.0)
    output_activation: OutputActivation = OutputActivation.NONE
    weights_extension: str = ".onnx"

    def weights_path(self, root: Path) -> Path:
        return root / f"{self.id}{self.weights_extension}"

    def ensure_weights(
        self,
        root: Path,
        timeout: float = 60.0,
        progress: Optional[ProgressCallback] = None,
    ) -> Path:
        """Return cached weights under ``root``, downloading them when missing or stale."""
        path = self.weights_path(root)
        if path.exists() and path.stat().st_size > 0:
            if not self.weights_sha256 or sha256_file(path) == self.weights_sha256.lower():
                return path

        if not self.weights_url:
            raise RuntimeError(f"No download source available for model '{self.id}'.")

        return download_file(
            self.weights_url, path, self.weights_sha256, timeout=timeout, progress=progress
        )


@dataclass(frozen=True)
class RuntimeFlags:
    """
    Runtime switches applied before a load attempt.

    ``allow_local_models`` enables the local model directory lookup.
    ``proxy`` routes inference through a dedicated worker queue; the portable
    backend always runs proxied and the GPU backend never does.
    """

    allow_local_models: bool = False
    proxy: bool = False

    @classmethod
    def for_backend(cls, kind: BackendKind, allow_local_models: bool = False) -> "RuntimeFlags":
        return cls(
            allow_local_models=allow_local_models,
            proxy=kind is BackendKind.PORTABLE_COMPUTE,
        )


class ModelRuntime(abc.ABC):
    """
    A loaded model that maps a normalized ``(1, 3, H, W)`` batch to its raw output.

    Implementations must be safe to call from several threads unless the owning
    session serializes them.
    """

    descriptor: ModelDescriptor

    @abc.abstractmethod
    def run(self, batch: np.ndarray) -> np.ndarray:
        ...

    @property
    def providers(self) -> Tuple[str, ...]:
        return ()

    def close(self) -> None:
        pass
