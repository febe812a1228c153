"""
Tests for letterbox preprocessing.
"""

import numpy as np
import pytest

from detection.preprocess import FramePreprocessor, compute_letterbox
from models.errors import PreprocessError


class TestComputeLetterbox:
    def test_wide_frame_pads_vertically(self):
        ctx = compute_letterbox(1280, 720, 640, 640)
        assert ctx.scale == pytest.approx(0.5)
        assert ctx.x_pad == pytest.approx(0)
        assert ctx.y_pad == pytest.approx(140)

    def test_tall_frame_pads_horizontally(self):
        ctx = compute_letterbox(480, 640, 640, 640)
        assert ctx.scale == pytest.approx(1.0)
        assert ctx.x_pad == pytest.approx(80)
        assert ctx.y_pad == pytest.approx(0)

    def test_small_frame_is_upscaled(self):
        ctx = compute_letterbox(320, 320, 640, 640)
        assert ctx.scale == pytest.approx(2.0)
        assert (ctx.x_pad, ctx.y_pad) == (0, 0)

    @pytest.mark.parametrize("size", [(1, 1), (1920, 1080), (333, 777), (640, 640), (10000, 3)])
    def test_pads_never_negative_and_content_fits(self, size):
        w, h = size
        ctx = compute_letterbox(w, h, 640, 640)
        assert ctx.x_pad >= 0
        assert ctx.y_pad >= 0
        assert w * ctx.scale <= 640 + 1e-6
        assert h * ctx.scale <= 640 + 1e-6

    @pytest.mark.parametrize("size", [(0, 480), (640, 0), (-1, 10)])
    def test_invalid_size(self, size):
        with pytest.raises(PreprocessError):
            compute_letterbox(size[0], size[1])

    def test_context_round_trip(self):
        ctx = compute_letterbox(1280, 720, 640, 640)
        mx, my = ctx.to_model(100.0, 200.0)
        assert ctx.to_source(mx, my) == pytest.approx((100.0, 200.0))


class TestFramePreprocessor:
    def test_tensor_shape_and_dtype(self):
        pre = FramePreprocessor(640)
        tensor, ctx = pre.preprocess(np.zeros((720, 1280, 3), dtype=np.uint8))

        assert tensor.shape == (1, 3, 640, 640)
        assert tensor.dtype == np.float32
        assert tensor.flags["C_CONTIGUOUS"]
        assert ctx.frame_width == 1280
        assert ctx.frame_height == 720

    def test_values_in_unit_range(self):
        rng = np.random.default_rng(0)
        frame = rng.integers(0, 256, size=(300, 500, 3), dtype=np.uint8)
        tensor, _ = FramePreprocessor(320).preprocess(frame)

        assert tensor.min() >= 0.0
        assert tensor.max() <= 1.0

    def test_bgr_is_swapped_to_rgb_planes(self):
        frame = np.zeros((64, 64, 3), dtype=np.uint8)
        frame[..., 0] = 255  # blue in BGR
        tensor, _ = FramePreprocessor(64).preprocess(frame)

        assert tensor[0, 2].min() == pytest.approx(1.0)  # B plane
        assert tensor[0, 0].max() == pytest.approx(0.0)  # R plane
        assert tensor[0, 1].max() == pytest.approx(0.0)

    def test_rgb_input_kept_in_order(self):
        frame = np.zeros((64, 64, 3), dtype=np.uint8)
        frame[..., 0] = 255
        tensor, _ = FramePreprocessor(64, bgr_input=False).preprocess(frame)
        assert tensor[0, 0].min() == pytest.approx(1.0)

    def test_padding_is_black(self):
        frame = np.full((320, 640, 3), 255, dtype=np.uint8)
        canvas, ctx = FramePreprocessor(640).letterbox(frame)

        pad = int(ctx.y_pad)
        assert pad == 160
        assert canvas[:pad].max() == 0
        assert canvas[-pad:].max() == 0
        assert canvas[pad:-pad].min() == 255

    @pytest.mark.parametrize("shape,axis", [((501, 1000, 3), 0), ((1000, 501, 3), 1)])
    def test_content_placed_at_fractional_pads(self, shape, axis):
        # 501 * 0.64 leaves a pad of 159.68, which rounding would shift
        frame = np.full(shape, 255, dtype=np.uint8)
        canvas, ctx = FramePreprocessor(640).letterbox(frame)

        if axis == 0:
            profile, pad, extent = canvas[:, 320, 0], ctx.y_pad, shape[0] * ctx.scale
        else:
            profile, pad, extent = canvas[320, :, 0], ctx.x_pad, shape[1] * ctx.scale
        filled = np.flatnonzero(profile > 127)

        assert pad == pytest.approx(159.68)
        assert abs(filled[0] - pad) < 0.5
        assert abs(filled[-1] + 1 - (pad + extent)) < 0.5

    def test_four_channel_frame_accepted(self):
        frame = np.zeros((100, 200, 4), dtype=np.uint8)
        tensor, _ = FramePreprocessor(128).preprocess(frame)
        assert tensor.shape == (1, 3, 128, 128)

    @pytest.mark.parametrize("frame", [
        None,
        "not an image",
        np.zeros((100, 100), dtype=np.uint8),
        np.zeros((100, 100, 2), dtype=np.uint8),
        np.zeros((0, 100, 3), dtype=np.uint8),
    ])
    def test_undrawable_frame_raises(self, frame):
        with pytest.raises(PreprocessError):
            FramePreprocessor(640).preprocess(frame)

    def test_invalid_input_size(self):
        with pytest.raises(ValueError):
            FramePreprocessor(0)
