"""
Pure-data pixel containers passed between pipeline stages.

All three buffers store a flat, row-major ``numpy`` array so that stages never
touch a drawing surface. ``as_array`` gives the shaped view used for numeric work.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

__all__ = ["ImageBuffer", "TensorBuffer", "MaskBuffer"]


@dataclass(frozen=True)
class ImageBuffer:
    width: int
    height: int
    pixels: np.ndarray

    def __post_init__(self) -> None:
        pixels = np.asarray(self.pixels)
        if pixels.dtype != np.uint8:
            raise ValueError(f"RGBA buffer must be uint8, got {pixels.dtype}.")
        pixels = np.ascontiguousarray(pixels).reshape(-1)
        if pixels.size != self.width * self.height * 4:
            raise ValueError(
                f"RGBA buffer holds {pixels.size} bytes, expected "
                f"{self.width}x{self.height}x4 = {self.width * self.height * 4}."
            )
        object.__setattr__(self, "pixels", pixels)

    @classmethod
    def from_array(cls, array: np.ndarray) -> "ImageBuffer":
        """Build from an ``(H, W, 4)`` uint8 array."""
        if array.ndim != 3 or array.shape[2] != 4:
            raise ValueError(f"Expected an (H, W, 4) array, got shape {array.shape}.")
        height, width = array.shape[:2]
        return cls(width=width, height=height, pixels=array)

    @classmethod
    def filled(cls, width: int, height: int, rgba: tuple[int, int, int, int]) -> "ImageBuffer":
        array = np.empty((height, width, 4), dtype=np.uint8)
        array[...] = rgba
        return cls(width=width, height=height, pixels=array)

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    def as_array(self) -> np.ndarray:
        return self.pixels.reshape(self.height, self.width, 4)

    def alpha(self) -> np.ndarray:
        return self.as_array()[..., 3]


@dataclass(frozen=True)
class TensorBuffer:
    """Planar R, G, B float32 data in [0, 1]."""

    width: int
    height: int
    data: np.ndarray
    channels: int = 3

    def __post_init__(self) -> None:
        data = np.ascontiguousarray(self.data, dtype=np.float32).reshape(-1)
        if data.size != self.channels * self.width * self.height:
            raise ValueError(
                f"Tensor holds {data.size} values, expected "
                f"{self.channels}x{self.height}x{self.width}."
            )
        object.__setattr__(self, "data", data)

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    def as_array(self) -> np.ndarray:
        """``(C, H, W)`` view."""
        return self.data.reshape(self.channels, self.height, self.width)


@dataclass(frozen=True)
class MaskBuffer:
    width: int
    height: int
    data: np.ndarray

    def __post_init__(self) -> None:
        data = np.ascontiguousarray(self.data, dtype=np.float32).reshape(-1)
        if data.size != self.width * self.height:
            raise ValueError(
                f"Mask holds {data.size} values, expected {self.width}x{self.height}."
            )
        object.__setattr__(self, "data", data)

    @classmethod
    def from_array(cls, array: np.ndarray) -> "MaskBuffer":
        """Build from an ``(H, W)`` float array."""
        if array.ndim != 2:
            raise ValueError(f"Expected an (H, W) mask, got shape {array.shape}.")
        height, width = array.shape
        return cls(width=width, height=height, data=array)

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    def as_array(self) -> np.ndarray:
        return self.data.reshape(self.height, self.width)
