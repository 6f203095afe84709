from __future__ import annotations

from .base import BackendKind, ModelDescriptor, OutputActivation

__all__ = ["RMBG14"]


# Portable fallback: larger IS-Net derived model, robust on general scenes.
RMBG14 = ModelDescriptor(
    id="rmbg-1.4",
    expected_input_size=(1024, 1024),
    backend_kind=BackendKind.PORTABLE_COMPUTE,
    weights_url=(
        "https://github.com/danielgatis/rembg/releases/download/v0.0.0/"
        "rmbg-1.4.onnx"
    ),
    native_mask_size=(1024, 1024),
    normalize_mean=(0.5, 0.5, 0.5),
    normalize_std=(1.0, 1.0, 1.0),
    output_activation=OutputActivation.MINMAX,
)
