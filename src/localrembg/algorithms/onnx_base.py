from __future__ import annotations

from pathlib import Path
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import onnxruntime as ort

from ..session import InferenceSession
from ..utils.downloads import ProgressCallback
from .base import BackendKind, ModelDescriptor, ModelRuntime, RuntimeFlags

logger = logging.getLogger(__name__)

# Execution providers that count as a high performance GPU API, in preference order.
GPU_PROVIDERS: Tuple[str, ...] = (
    "TensorrtExecutionProvider",
    "CUDAExecutionProvider",
    "ROCMExecutionProvider",
    "DmlExecutionProvider",
    "CoreMLExecutionProvider",
)
CPU_PROVIDER = "CPUExecutionProvider"

ProviderSpec = Tuple[str, Dict[str, Any]]


def available_gpu_providers() -> Tuple[str, ...]:
    available = set(ort.get_available_providers())
    return tuple(name for name in GPU_PROVIDERS if name in available)


class ONNXModelRuntime(ModelRuntime):
    """
    ONNXRuntime-backed model. The session is created eagerly so a provider that
    fails to negotiate surfaces as a load error rather than at first inference.
    """

    def __init__(
        self,
        descriptor: ModelDescriptor,
        model_path: Path,
        backend_kind: BackendKind,
        device_id: int = 0,
        use_tensorrt: bool = False,
    ) -> None:
        self.descriptor = descriptor
        self.kind = backend_kind
        self.device_id = device_id
        self.use_tensorrt = use_tensorrt
        self.session = self._create_session(model_path)
        self.input_name: str = self.session.get_inputs()[0].name
        self.output_name: str = self.session.get_outputs()[0].name

    def _create_session(self, model_path: Path) -> ort.InferenceSession:
        session_options = ort.SessionOptions()
        session_options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL

        if self.kind is BackendKind.PORTABLE_COMPUTE:
            return self._open(model_path, session_options, [(CPU_PROVIDER, {})])

        providers = self._build_gpu_providers(tensorrt=self.use_tensorrt)
        try:
            session = self._open(model_path, session_options, providers)
        except Exception:
            if not self.use_tensorrt:
                raise
            logger.warning("TensorRT provider failed to initialize; retrying without TensorRT.")
            providers = self._build_gpu_providers(tensorrt=False)
            session = self._open(model_path, session_options, providers)

        negotiated = [name for name in session.get_providers() if name in GPU_PROVIDERS]
        if not negotiated:
            raise RuntimeError(
                "onnxruntime did not negotiate a GPU execution provider "
                f"(requested {[name for name, _ in providers]}, got {session.get_providers()})."
            )
        if self.use_tensorrt and "TensorrtExecutionProvider" not in negotiated:
            logger.warning("TensorRT Execution Provider requested but not available; using %s.", negotiated[0])
        return session

    @staticmethod
    def _open(
        model_path: Path,
        session_options: ort.SessionOptions,
        providers: Sequence[ProviderSpec],
    ) -> ort.InferenceSession:
        return ort.InferenceSession(
            model_path.as_posix(),
            sess_options=session_options,
            providers=[name for name, _ in providers],
            provider_options=[options for _, options in providers],
        )

    def _build_gpu_providers(self, *, tensorrt: bool) -> List[ProviderSpec]:
        available = available_gpu_providers()
        if not available:
            raise RuntimeError(
                "No GPU execution provider is installed. Install `onnxruntime-gpu` "
                "(or the DirectML/ROCm build) and ensure the driver stack is available."
            )

        device_id = self.device_id
        options: Dict[str, Dict[str, Any]] = {
            "TensorrtExecutionProvider": {
                "device_id": device_id,
                "trt_fp16_enable": "True",
                "trt_max_workspace_size": str(1 << 30),
            },
            "CUDAExecutionProvider": {
                "device_id": device_id,
                "arena_extend_strategy": "kNextPowerOfTwo",
                "cudnn_conv_use_max_workspace": "1",
                "do_copy_in_default_stream": "1",
            },
            "ROCMExecutionProvider": {"device_id": device_id},
            "DmlExecutionProvider": {"device_id": device_id},
            "CoreMLExecutionProvider": {},
        }

        providers: List[ProviderSpec] = []
        for name in available:
            if name == "TensorrtExecutionProvider" and not tensorrt:
                continue
            providers.append((name, options[name]))
        if not providers:
            raise RuntimeError("TensorRT is the only GPU provider available but it was not requested.")
        return providers

    @property
    def providers(self) -> Tuple[str, ...]:
        return tuple(self.session.get_providers())

    def run(self, batch: np.ndarray) -> np.ndarray:
        outputs = self.session.run([self.output_name], {self.input_name: batch.astype(np.float32)})
        return outputs[0]


class ONNXModelLoader:
    """
    Default model loader used by the backend selector.

    Weights are taken from ``local_models_dir`` only when the runtime flags allow
    it, otherwise they are fetched into the ``weights_dir`` cache.
    """

    def __init__(
        self,
        weights_dir: Path,
        local_models_dir: Optional[Path] = None,
        device_id: int = 0,
        use_tensorrt: bool = False,
        download_timeout: float = 60.0,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        self.weights_dir = Path(weights_dir).expanduser()
        self.local_models_dir = Path(local_models_dir).expanduser() if local_models_dir else None
        self.device_id = device_id
        self.use_tensorrt = use_tensorrt
        self.download_timeout = download_timeout
        self.progress = progress

    def resolve_weights(self, descriptor: ModelDescriptor, flags: RuntimeFlags) -> Path:
        if flags.allow_local_models and self.local_models_dir is not None:
            local = descriptor.weights_path(self.local_models_dir)
            if local.exists():
                logger.info("Using local weights for %s: %s", descriptor.id, local)
                return local
        return descriptor.ensure_weights(
            self.weights_dir, timeout=self.download_timeout, progress=self.progress
        )

    def __call__(self, descriptor: ModelDescriptor, flags: RuntimeFlags) -> InferenceSession:
        model_path = self.resolve_weights(descriptor, flags)
        runtime = ONNXModelRuntime(
            descriptor,
            model_path,
            descriptor.backend_kind,
            device_id=self.device_id,
            use_tensorrt=self.use_tensorrt,
        )
        logger.info("Loaded %s with providers %s", descriptor.id, list(runtime.providers))
        return InferenceSession(descriptor, runtime, flags)
