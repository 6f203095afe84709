import base64
from io import BytesIO

import numpy as np
import pytest
from PIL import Image

from conftest import random_image
from localrembg.codec import PillowCodec
from localrembg.errors import DecodeError, PreprocessError


def _png_bytes(size=(6, 4), color=(1, 2, 3)):
    buf = BytesIO()
    Image.new("RGB", size, color=color).save(buf, format="PNG")
    return buf.getvalue()


def test_decode_bytes_adds_opaque_alpha():
    image = PillowCodec().decode(_png_bytes())

    assert image.size == (6, 4)
    assert image.as_array()[0, 0].tolist() == [1, 2, 3, 255]


def test_decode_path(tmp_path):
    path = tmp_path / "input.png"
    path.write_bytes(_png_bytes(size=(3, 9)))

    assert PillowCodec().decode(path).size == (3, 9)
    assert PillowCodec().decode(str(path)).size == (3, 9)


def test_decode_data_url():
    url = "data:image/png;base64," + base64.b64encode(_png_bytes()).decode("ascii")

    assert PillowCodec().decode(url).size == (6, 4)


def test_decode_garbage_raises_decode_error():
    with pytest.raises(DecodeError) as excinfo:
        PillowCodec().decode(b"definitely not an image")

    assert isinstance(excinfo.value, PreprocessError)


def test_decode_non_base64_data_url_is_rejected():
    with pytest.raises(DecodeError):
        PillowCodec().decode("data:image/png,rawbytes")


def test_encode_writes_rgba_png():
    image = random_image(5, 7)

    with Image.open(BytesIO(PillowCodec().encode(image))) as decoded:
        assert decoded.format == "PNG"
        np.testing.assert_array_equal(np.asarray(decoded), image.as_array())
