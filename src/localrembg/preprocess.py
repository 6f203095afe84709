from __future__ import annotations

from typing import Optional

import numpy as np

from .algorithms.base import ModelDescriptor
from .buffers import ImageBuffer, TensorBuffer
from .errors import PreprocessError
from .resampling import Resampler, default_resampler

__all__ = ["Preprocessor"]


class Preprocessor:
    """
    Converts an RGBA image of any size into the planar [0, 1] RGB tensor the
    model expects. Alpha is dropped; resampling is bilinear with antialiasing.
    """

    def __init__(self, descriptor: ModelDescriptor, resampler: Optional[Resampler] = None) -> None:
        self.descriptor = descriptor
        self.resampler = resampler or default_resampler()

    @staticmethod
    def validate(image: ImageBuffer) -> None:
        width, height = int(image.width), int(image.height)
        if width <= 0 or height <= 0:
            raise PreprocessError(f"Image must have positive dimensions, got {width}x{height}.")
        length = int(np.size(image.pixels))
        if length != width * height * 4:
            raise PreprocessError(
                f"RGBA buffer length {length} does not match {width}x{height}x4."
            )

    def run(self, image: ImageBuffer) -> TensorBuffer:
        self.validate(image)
        width, height = self.descriptor.expected_input_size

        rgba = np.asarray(image.pixels, dtype=np.uint8).reshape(image.height, image.width, 4)
        planes = rgba[..., :3].transpose(2, 0, 1).astype(np.float32) / 255.0
        resized = self.resampler.resize_image(planes, (width, height))
        return TensorBuffer(width=width, height=height, data=np.clip(resized, 0.0, 1.0))
