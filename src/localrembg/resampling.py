from __future__ import annotations

from typing import Protocol, Tuple

import numpy as np
import torch
import torch.nn.functional as F
from PIL import Image
from torchvision.transforms import InterpolationMode
from torchvision.transforms import functional as TF

__all__ = ["Resampler", "TorchResampler", "PillowResampler", "default_resampler"]

Size = Tuple[int, int]


class Resampler(Protocol):
    """
    Swappable resampling backend.

    ``resize_image`` takes planar ``(C, H, W)`` float data, ``resize_mask`` takes
    an ``(H, W)`` float matte. Sizes are ``(width, height)``.
    """

    def resize_image(self, planes: np.ndarray, size: Size) -> np.ndarray:
        ...

    def resize_mask(self, mask: np.ndarray, size: Size) -> np.ndarray:
        ...


def _is_downscale(shape: Tuple[int, int], size: Size) -> bool:
    height, width = shape
    return size[0] <= width and size[1] <= height


class TorchResampler:
    def __init__(self, device: str = "cpu") -> None:
        self.device = torch.device(device)

    def resize_image(self, planes: np.ndarray, size: Size) -> np.ndarray:
        width, height = size
        if planes.shape[1:] == (height, width):
            return planes.astype(np.float32, copy=True)
        tensor = torch.from_numpy(np.ascontiguousarray(planes, dtype=np.float32)).to(self.device)
        with torch.inference_mode():
            resized = TF.resize(
                tensor,
                [height, width],
                interpolation=InterpolationMode.BILINEAR,
                antialias=True,
            )
        return resized.clamp(0, 1).cpu().numpy()

    def resize_mask(self, mask: np.ndarray, size: Size) -> np.ndarray:
        width, height = size
        if mask.shape == (height, width):
            return mask.astype(np.float32, copy=True)
        tensor = torch.from_numpy(np.ascontiguousarray(mask, dtype=np.float32)).to(self.device)
        tensor = tensor.unsqueeze(0).unsqueeze(0)
        with torch.inference_mode():
            if _is_downscale(mask.shape, size):
                resized = F.interpolate(tensor, size=(height, width), mode="area")
            else:
                resized = F.interpolate(
                    tensor,
                    size=(height, width),
                    mode="bilinear",
                    align_corners=False,
                    antialias=True,
                )
        return resized[0, 0].clamp(0, 1).cpu().numpy()


class PillowResampler:
    """Pure Pillow implementation, usable where torch is unavailable at runtime."""

    def resize_image(self, planes: np.ndarray, size: Size) -> np.ndarray:
        return np.stack([self.resize_mask(plane, size) for plane in planes])

    def resize_mask(self, mask: np.ndarray, size: Size) -> np.ndarray:
        width, height = size
        if mask.shape == (height, width):
            return mask.astype(np.float32, copy=True)
        resample = Image.BOX if _is_downscale(mask.shape, size) else Image.BILINEAR
        image = Image.fromarray(np.ascontiguousarray(mask, dtype=np.float32))
        resized = np.asarray(image.resize((width, height), resample), dtype=np.float32)
        return np.clip(resized, 0.0, 1.0)


def default_resampler() -> Resampler:
    return TorchResampler()
