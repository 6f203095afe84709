from __future__ import annotations

import logging
from typing import Optional, Tuple

import numpy as np

from .algorithms.base import ModelDescriptor
from .buffers import MaskBuffer
from .resampling import Resampler, default_resampler

logger = logging.getLogger(__name__)

__all__ = ["MaskUpscaler"]


class MaskUpscaler:
    """
    Resizes a model-native matte to the source image resolution.

    When the descriptor declares a ``mask_canvas_size`` the matte first goes
    through that canonical canvas, then to the requested size. A matte already
    at the target size is returned unchanged.
    """

    def __init__(self, descriptor: ModelDescriptor, resampler: Optional[Resampler] = None) -> None:
        self.descriptor = descriptor
        self.resampler = resampler or default_resampler()

    def run(self, mask: MaskBuffer, size: Tuple[int, int]) -> MaskBuffer:
        width, height = size
        if mask.size == (width, height):
            return MaskBuffer(width=width, height=height, data=mask.data.copy())

        alpha = mask.as_array()
        canvas = self.descriptor.mask_canvas_size
        if canvas is not None and mask.size != canvas and canvas != (width, height):
            logger.debug("Resampling %dx%d matte through %dx%d canvas", mask.width, mask.height, *canvas)
            alpha = self.resampler.resize_mask(alpha, canvas)

        alpha = self.resampler.resize_mask(alpha, (width, height))
        return MaskBuffer.from_array(np.clip(alpha, 0.0, 1.0))
