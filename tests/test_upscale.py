import dataclasses

import numpy as np
import pytest

from localrembg.buffers import MaskBuffer
from localrembg.resampling import PillowResampler, TorchResampler
from localrembg.upscale import MaskUpscaler


class RecordingResampler(TorchResampler):
    def __init__(self):
        super().__init__()
        self.sizes = []

    def resize_mask(self, mask, size):
        self.sizes.append(size)
        return super().resize_mask(mask, size)


def _gradient(width, height):
    xs = np.linspace(0.0, 1.0, width, dtype=np.float32)
    return MaskBuffer.from_array(np.tile(xs, (height, 1)))


def test_identity_when_sizes_match(small_descriptor):
    rng = np.random.default_rng(3)
    mask = MaskBuffer.from_array(rng.random((16, 16), dtype=np.float32))
    resampler = RecordingResampler()

    result = MaskUpscaler(small_descriptor, resampler).run(mask, (16, 16))

    np.testing.assert_array_equal(result.data, mask.data)
    assert resampler.sizes == []


@pytest.mark.parametrize("resampler_cls", [TorchResampler, PillowResampler])
@pytest.mark.parametrize("target", [(100, 37), (640, 480), (5, 5)])
def test_resizes_to_exact_target(small_descriptor, resampler_cls, target):
    result = MaskUpscaler(small_descriptor, resampler_cls()).run(_gradient(16, 16), target)

    assert result.size == target
    assert result.data.min() >= 0.0
    assert result.data.max() <= 1.0


def test_upscaling_produces_soft_intermediate_values(small_descriptor, resampler):
    mask = MaskBuffer.from_array(np.array([[0.0, 1.0], [0.0, 1.0]], dtype=np.float32))

    result = MaskUpscaler(small_descriptor, resampler).run(mask, (64, 64)).as_array()

    row = result[32]
    assert np.any((row > 0.05) & (row < 0.95))
    assert np.all(np.diff(row) >= -1e-6)


def test_constant_mask_stays_constant(small_descriptor, resampler):
    mask = MaskBuffer.from_array(np.full((16, 16), 0.75, dtype=np.float32))

    result = MaskUpscaler(small_descriptor, resampler).run(mask, (333, 77))

    np.testing.assert_allclose(result.data, 0.75, atol=1e-5)


def test_resamples_through_canvas_when_declared(small_descriptor):
    descriptor = dataclasses.replace(small_descriptor, mask_canvas_size=(320, 320))
    resampler = RecordingResampler()

    result = MaskUpscaler(descriptor, resampler).run(_gradient(16, 16), (800, 600))

    assert resampler.sizes == [(320, 320), (800, 600)]
    assert result.size == (800, 600)


def test_canvas_pass_skipped_when_mask_already_canvas_sized(small_descriptor):
    descriptor = dataclasses.replace(small_descriptor, mask_canvas_size=(16, 16))
    resampler = RecordingResampler()

    MaskUpscaler(descriptor, resampler).run(_gradient(16, 16), (200, 100))

    assert resampler.sizes == [(200, 100)]
