from __future__ import annotations

import base64
import binascii
from io import BytesIO
from pathlib import Path
from typing import Protocol, Union

import numpy as np
import requests
from PIL import Image, ImageOps, UnidentifiedImageError

from .buffers import ImageBuffer
from .errors import DecodeError

__all__ = ["ImageSource", "ImageCodec", "PillowCodec"]

ImageSource = Union[bytes, str, Path, Image.Image, ImageBuffer]


class ImageCodec(Protocol):
    def decode(self, source: ImageSource) -> ImageBuffer:
        ...

    def encode(self, image: ImageBuffer) -> bytes:
        ...


class PillowCodec:
    """Decodes paths, URLs, data URLs, raw bytes and PIL images; encodes PNG."""

    def __init__(self, request_timeout: float = 30.0) -> None:
        self.request_timeout = request_timeout

    def decode(self, source: ImageSource) -> ImageBuffer:
        if isinstance(source, ImageBuffer):
            return source
        if isinstance(source, Image.Image):
            return self.from_pil(source)
        image = self._open(source)
        try:
            return self.from_pil(image)
        except OSError as exc:
            raise DecodeError(f"Could not decode image: {exc}") from exc

    def _open(self, source: Union[bytes, str, Path]) -> Image.Image:
        try:
            if isinstance(source, bytes):
                return Image.open(BytesIO(source))
            text = str(source)
            if text.startswith("data:"):
                return Image.open(BytesIO(self._read_data_url(text)))
            if text.startswith(("http://", "https://")):
                return Image.open(BytesIO(self._fetch(text)))
            return Image.open(Path(text).expanduser())
        except (UnidentifiedImageError, OSError) as exc:
            raise DecodeError(f"Could not decode image: {exc}") from exc

    def _fetch(self, url: str) -> bytes:
        try:
            response = requests.get(url, timeout=(5, self.request_timeout))
            response.raise_for_status()
        except requests.RequestException as exc:
            raise DecodeError(f"Could not download image from {url}: {exc}") from exc
        return response.content

    @staticmethod
    def _read_data_url(url: str) -> bytes:
        header, _, payload = url.partition(",")
        if ";base64" not in header:
            raise DecodeError("Only base64 data URLs are supported.")
        try:
            return base64.b64decode(payload, validate=True)
        except binascii.Error as exc:
            raise DecodeError("Malformed base64 payload in data URL.") from exc

    @staticmethod
    def from_pil(image: Image.Image) -> ImageBuffer:
        image = ImageOps.exif_transpose(image)
        rgba = np.asarray(image.convert("RGBA"), dtype=np.uint8)
        return ImageBuffer.from_array(rgba)

    @staticmethod
    def to_pil(image: ImageBuffer) -> Image.Image:
        return Image.fromarray(image.as_array())

    def encode(self, image: ImageBuffer) -> bytes:
        buf = BytesIO()
        self.to_pil(image).save(buf, format="PNG")
        return buf.getvalue()
