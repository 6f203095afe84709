from typing import Dict

from .base import BackendKind, ModelDescriptor, ModelRuntime, OutputActivation, RuntimeFlags
from .modnet import MODNET
from .rmbg import RMBG14

MODEL_REGISTRY: Dict[str, ModelDescriptor] = {
    MODNET.id: MODNET,
    RMBG14.id: RMBG14,
}

# Descriptor used for each backend kind by the selector.
DEFAULT_DESCRIPTORS: Dict[BackendKind, ModelDescriptor] = {
    BackendKind.HIGH_PERF_GPU: MODNET,
    BackendKind.PORTABLE_COMPUTE: RMBG14,
}

__all__ = [
    "BackendKind",
    "ModelDescriptor",
    "ModelRuntime",
    "OutputActivation",
    "RuntimeFlags",
    "MODNET",
    "RMBG14",
    "MODEL_REGISTRY",
    "DEFAULT_DESCRIPTORS",
]
