from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .algorithms.base import BackendKind

__all__ = [
    "BackgroundRemovalError",
    "InitError",
    "InitTimeoutError",
    "ProcessError",
    "NotInitializedError",
    "PreprocessError",
    "DecodeError",
    "InferenceError",
    "CompositeError",
    "ProcessCancelled",
]


class BackgroundRemovalError(Exception):
    """Base class for every error raised by the removal pipeline."""


class InitError(BackgroundRemovalError):
    """No backend could be loaded. The pipeline stays uninitialized."""


class InitTimeoutError(InitError):
    """The caller's deadline expired while the backend was still loading."""


class ProcessError(BackgroundRemovalError):
    """Base class for failures of a single ``process()`` call."""


class NotInitializedError(ProcessError):
    def __init__(self, message: str = "Pipeline is not initialized. Call initialize() first.") -> None:
        super().__init__(message)


class PreprocessError(ProcessError):
    """The input image is empty or malformed."""


class DecodeError(PreprocessError):
    """The input could not be decoded into RGBA pixels."""


class InferenceError(ProcessError):
    def __init__(
        self,
        message: str,
        backend_kind: Optional["BackendKind"] = None,
        fatal: bool = False,
    ) -> None:
        super().__init__(message)
        self.backend_kind = backend_kind
        self.fatal = fatal

    def __str__(self) -> str:
        base = super().__str__()
        if self.backend_kind is None:
            return base
        return f"{base} [backend={self.backend_kind.value}, fatal={self.fatal}]"


class CompositeError(ProcessError):
    """Mask and image disagree after upscaling. Indicates a bug."""


class ProcessCancelled(ProcessError):
    pass
