"""
Alpha compositing.

Two policies are supported:

* ``SOFT`` (default): ``alpha = floor(mask * 255 + 0.5)``, i.e. round half up.
  A matte value of 0.5 therefore becomes 128. Keeps antialiased edges.
* ``HARD``: ``alpha = 255 if mask >= threshold else 0`` with threshold 0.5.

Only the alpha byte of each pixel is written; RGB is copied unchanged.
"""

from __future__ import annotations

import enum

import numpy as np

from .buffers import ImageBuffer, MaskBuffer
from .errors import CompositeError

__all__ = ["CompositePolicy", "AlphaCompositor", "mask_to_alpha"]


class CompositePolicy(str, enum.Enum):
    SOFT = "soft"
    HARD = "hard"


def mask_to_alpha(
    mask: np.ndarray,
    policy: CompositePolicy = CompositePolicy.SOFT,
    threshold: float = 0.5,
) -> np.ndarray:
    values = np.clip(np.asarray(mask, dtype=np.float32), 0.0, 1.0)
    if policy is CompositePolicy.HARD:
        return np.where(values >= threshold, 255, 0).astype(np.uint8)
    return np.floor(values.astype(np.float64) * 255.0 + 0.5).astype(np.uint8)


class AlphaCompositor:
    def __init__(self, policy: CompositePolicy = CompositePolicy.SOFT, threshold: float = 0.5) -> None:
        self.policy = CompositePolicy(policy)
        self.threshold = max(0.0, min(1.0, threshold))

    def run(self, image: ImageBuffer, mask: MaskBuffer) -> ImageBuffer:
        if image.size != mask.size:
            raise CompositeError(
                f"Mask is {mask.width}x{mask.height} but image is {image.width}x{image.height}."
            )
        rgba = image.as_array().copy()
        rgba[..., 3] = mask_to_alpha(mask.as_array(), self.policy, self.threshold)
        return ImageBuffer.from_array(rgba)
