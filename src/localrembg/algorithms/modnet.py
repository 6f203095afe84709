from __future__ import annotations

from .base import BackendKind, ModelDescriptor, OutputActivation

__all__ = ["MODNET"]


# Compact MobileNetV2 based matting model, tuned for GPU execution.
MODNET = ModelDescriptor(
    id="modnet",
    expected_input_size=(512, 512),
    backend_kind=BackendKind.HIGH_PERF_GPU,
    weights_url="https://huggingface.co/Xenova/modnet/resolve/main/onnx/model.onnx",
    native_mask_size=(512, 512),
    normalize_mean=(0.5, 0.5, 0.5),
    normalize_std=(0.5, 0.5, 0.5),
    output_activation=OutputActivation.NONE,
)
