"""
On-device background removal toolkit.

This package selects an inference backend (GPU execution provider with a
portable CPU fallback), runs a matting model through ONNX Runtime and writes
the predicted matte into the alpha channel of the source image.
"""

from .algorithms import BackendKind, ModelDescriptor
from .backend import BackendHandle, BackendSelector
from .buffers import ImageBuffer, MaskBuffer, TensorBuffer
from .capabilities import PlatformProfile, detect_platform_profile
from .compositing import CompositePolicy
from .errors import (
    BackgroundRemovalError,
    CompositeError,
    InferenceError,
    InitError,
    NotInitializedError,
    PreprocessError,
    ProcessError,
)
from .pipeline import BackgroundRemover, RemovalConfig
from .utils.downloads import ProgressCallback

__all__ = [
    "BackgroundRemover",
    "RemovalConfig",
    "ProgressCallback",
    "BackendKind",
    "BackendHandle",
    "BackendSelector",
    "ModelDescriptor",
    "PlatformProfile",
    "detect_platform_profile",
    "CompositePolicy",
    "ImageBuffer",
    "TensorBuffer",
    "MaskBuffer",
    "BackgroundRemovalError",
    "InitError",
    "ProcessError",
    "NotInitializedError",
    "PreprocessError",
    "InferenceError",
    "CompositeError",
]
