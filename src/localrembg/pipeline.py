from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Optional

from .algorithms.base import BackendKind
from .backend import BackendHandle, BackendSelector, ModelLoader
from .buffers import ImageBuffer
from .capabilities import PlatformProfile, detect_platform_profile
from .codec import ImageCodec, ImageSource, PillowCodec
from .compositing import AlphaCompositor, CompositePolicy
from .errors import (
    InferenceError,
    InitError,
    InitTimeoutError,
    NotInitializedError,
    ProcessCancelled,
)
from .preprocess import Preprocessor
from .resampling import Resampler, default_resampler
from .upscale import MaskUpscaler
from .utils.downloads import ProgressCallback

logger = logging.getLogger(__name__)

STAGES = ("preprocess", "inference", "upscale", "composite")


@dataclass
class RemovalConfig:
    weights_dir: Path = field(default_factory=lambda: Path("~/.cache/localrembg").expanduser())
    local_models_dir: Optional[Path] = None
    allow_local_models: bool = False
    device_id: int = 0
    use_tensorrt: bool = False
    force_backend: Optional[BackendKind] = None
    composite_policy: CompositePolicy = CompositePolicy.SOFT
    hard_threshold: float = 0.5
    init_timeout: Optional[float] = None
    download_timeout: float = 60.0
    progress: Optional[ProgressCallback] = None


class BackgroundRemover:
    """
    On-device background removal pipeline.

    ``initialize`` selects and loads a backend once; ``process`` runs
    preprocess -> inference -> mask upscale -> alpha composite on one image.
    Each instance owns its backend handle, so independent instances never share
    model state.
    """

    def __init__(
        self,
        config: Optional[RemovalConfig] = None,
        profile: Optional[PlatformProfile] = None,
        loader: Optional[ModelLoader] = None,
        resampler: Optional[Resampler] = None,
        codec: Optional[ImageCodec] = None,
    ) -> None:
        self.config = config or RemovalConfig()
        self.profile = profile
        self.loader = loader
        self.resampler = resampler or default_resampler()
        self.codec = codec or PillowCodec()
        self.compositor = AlphaCompositor(self.config.composite_policy, self.config.hard_threshold)

        self._handle: Optional[BackendHandle] = None
        self._pending: Optional[Future] = None
        self._lock = threading.Lock()
        self._closed = False
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="localrembg-init")

    @property
    def handle(self) -> Optional[BackendHandle]:
        return self._handle

    @property
    def is_ready(self) -> bool:
        return self._handle is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def _build_selector(self) -> BackendSelector:
        if self.loader is None:
            from .algorithms.onnx_base import ONNXModelLoader

            self.loader = ONNXModelLoader(
                self.config.weights_dir,
                local_models_dir=self.config.local_models_dir,
                device_id=self.config.device_id,
                use_tensorrt=self.config.use_tensorrt,
                download_timeout=self.config.download_timeout,
                progress=self.config.progress,
            )
        return BackendSelector(
            self.profile or detect_platform_profile(),
            self.loader,
            force_backend=self.config.force_backend,
            allow_local_models=self.config.allow_local_models,
        )

    def _load(self) -> BackendHandle:
        try:
            handle = self._build_selector().select()
        except BaseException:
            with self._lock:
                self._pending = None
            raise
        with self._lock:
            self._pending = None
            if self._closed:
                discarded, replaced = handle, None
            else:
                discarded, replaced = None, self._handle
                self._handle = handle
        if discarded is not None:
            discarded.session.close()
            raise InitError("Background remover was closed while the backend was loading.")
        if replaced is not None and replaced is not handle:
            # In-flight process() calls keep the old session until they release it.
            replaced.session.retire()
        return handle

    def _submit(self) -> Future:
        if self._closed:
            raise InitError("Background remover is closed.")
        if self._pending is None:
            self._pending = self._executor.submit(self._load)
        return self._pending

    def initialize(self, timeout: Optional[float] = None) -> BackendHandle:
        """
        Load a backend once. Concurrent callers share a single in-flight load
        and receive the same handle. Raises InitError when no backend loads and
        InitTimeoutError when ``timeout`` expires first.
        """
        with self._lock:
            if self._handle is not None:
                return self._handle
            pending = self._submit()
        return self._wait(pending, timeout)

    def reinitialize(self, timeout: Optional[float] = None) -> BackendHandle:
        """Run a fresh backend selection and swap the handle atomically."""
        with self._lock:
            pending = self._submit()
        return self._wait(pending, timeout)

    def _wait(self, pending: Future, timeout: Optional[float]) -> BackendHandle:
        if timeout is None:
            timeout = self.config.init_timeout
        try:
            return pending.result(timeout=timeout)
        except FutureTimeoutError as exc:
            raise InitTimeoutError(
                f"Backend initialization did not finish within {timeout:.1f}s."
            ) from exc

    def _check_cancelled(self, cancel_event: Optional[threading.Event], stage: str) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise ProcessCancelled(f"Processing cancelled before {stage}.")

    def _invalidate(self, handle: BackendHandle) -> None:
        with self._lock:
            if self._handle is not handle:
                return
            self._handle = None
        logger.error("Backend %s reported an unrecoverable fault; re-initialization required.", handle.descriptor.id)
        handle.session.retire()

    def process(
        self,
        image: ImageBuffer,
        cancel_event: Optional[threading.Event] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> ImageBuffer:
        """
        Run the four stages on ``image``.

        ``progress`` (default ``config.progress``) is called as
        ``progress(stage, done, 4)`` after each stage completes.
        """
        with self._lock:
            handle = self._handle
            if handle is None:
                raise NotInitializedError()
            handle.session.acquire()
        try:
            return self._run_stages(handle, image, cancel_event, progress or self.config.progress)
        finally:
            handle.session.release()

    def _run_stages(
        self,
        handle: BackendHandle,
        image: ImageBuffer,
        cancel_event: Optional[threading.Event],
        progress: Optional[ProgressCallback],
    ) -> ImageBuffer:
        timings: Dict[str, float] = {}
        start = time.perf_counter()

        def done(stage: str) -> None:
            timings[stage] = time.perf_counter() - start
            if progress is not None:
                progress(stage, len(timings), len(STAGES))

        self._check_cancelled(cancel_event, "preprocess")
        tensor = Preprocessor(handle.descriptor, self.resampler).run(image)
        done("preprocess")

        self._check_cancelled(cancel_event, "inference")
        try:
            mask = handle.session.run(tensor)
        except InferenceError as exc:
            if exc.fatal:
                self._invalidate(handle)
            raise
        done("inference")

        self._check_cancelled(cancel_event, "upscale")
        mask = MaskUpscaler(handle.descriptor, self.resampler).run(mask, image.size)
        done("upscale")

        self._check_cancelled(cancel_event, "composite")
        result = self.compositor.run(image, mask)
        done("composite")

        logger.debug(
            "Processed %dx%d on %s: %s",
            image.width,
            image.height,
            handle.backend_kind.value,
            ", ".join(f"{stage}@{elapsed:.3f}s" for stage, elapsed in timings.items()),
        )
        return result

    def remove_background(
        self,
        source: ImageSource,
        progress: Optional[ProgressCallback] = None,
    ) -> bytes:
        """Decode ``source``, process it and return the cutout as PNG bytes."""
        image = self.codec.decode(source)
        self.initialize()
        return self.codec.encode(self.process(image, progress=progress))

    def process_directory(
        self,
        input_dir: Path,
        output_dir: Path,
        overwrite: bool = False,
    ) -> Dict[str, float]:
        input_dir = Path(input_dir)
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        self.initialize()

        timings: Dict[str, float] = {}
        for image_path in sorted(self._iter_images(input_dir)):
            destination = output_dir / (image_path.stem + ".png")
            if destination.exists() and not overwrite:
                continue
            start = time.perf_counter()
            destination.write_bytes(self.codec.encode(self.process(self.codec.decode(image_path))))
            timings[str(image_path)] = time.perf_counter() - start

        return timings

    @staticmethod
    def _iter_images(path: Path) -> Iterable[Path]:
        exts = {".jpg", ".jpeg", ".png", ".bmp", ".tiff", ".webp"}
        for file in path.rglob("*"):
            if file.suffix.lower() in exts:
                yield file

    def close(self) -> None:
        """Release the loader thread and the active session. A load still running is discarded."""
        with self._lock:
            self._closed = True
            handle, self._handle = self._handle, None
        self._executor.shutdown(wait=True)
        if handle is not None:
            handle.session.retire()

    def __enter__(self) -> "BackgroundRemover":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
