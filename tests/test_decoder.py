"""
Tests for output tensor decoding.
"""

import numpy as np
import pytest

from detection.decoder import TensorDecoder, TensorLayout
from detection.preprocess import compute_letterbox
from models.errors import ShapeMismatchError
from models.labels import COCO_CLASSES, UNKNOWN_LABEL


@pytest.fixture
def identity_ctx():
    """Frame already at model size: scale 1, no padding."""
    return compute_letterbox(640, 640, 640, 640)


class TestTensorLayout:
    def test_parse_strings(self):
        assert TensorLayout.parse("box_major") is TensorLayout.BOX_MAJOR
        assert TensorLayout.parse(" Channel_Major ") is TensorLayout.CHANNEL_MAJOR

    def test_parse_enum_passthrough(self):
        assert TensorLayout.parse(TensorLayout.BOX_MAJOR) is TensorLayout.BOX_MAJOR

    def test_parse_unknown(self):
        with pytest.raises(ValueError):
            TensorLayout.parse("auto")


class TestDecode:
    def test_single_confident_proposal(self, box_major_output, identity_ctx):
        output = box_major_output([(320, 320, 100, 50, 0, 0.9)])
        output[0, 0, 5] = 0.1
        decoder = TensorDecoder("box_major", conf_threshold=0.5)

        candidates = decoder.decode(output, identity_ctx)

        assert len(candidates) == 1
        c = candidates[0]
        assert c.label == COCO_CLASSES[0]
        assert c.class_id == 0
        assert c.score == pytest.approx(0.9)
        assert c.bbox.as_xywh() == pytest.approx((270, 295, 100, 50))

    def test_layouts_agree(self, box_major_output, channel_major_output, identity_ctx):
        rows = [
            (100, 100, 40, 40, 2, 0.8),
            (300, 200, 60, 30, 7, 0.7),
            (500, 500, 20, 20, 16, 0.2),
        ]
        box = TensorDecoder(TensorLayout.BOX_MAJOR).decode(box_major_output(rows), identity_ctx)
        chan = TensorDecoder(TensorLayout.CHANNEL_MAJOR).decode(channel_major_output(rows), identity_ctx)

        assert [(c.label, c.score, c.bbox) for c in box] == [(c.label, c.score, c.bbox) for c in chan]
        assert [c.label for c in box] == ["car", "truck"]

    def test_score_equal_to_threshold_is_dropped(self, box_major_output, identity_ctx):
        output = box_major_output([(320, 320, 10, 10, 0, 0.5)])
        decoder = TensorDecoder("box_major", conf_threshold=0.5)
        assert decoder.decode(output, identity_ctx) == []

    def test_all_scores_above_threshold(self, box_major_output, identity_ctx):
        rows = [(50 * i + 20, 50, 10, 10, i, 0.3 + 0.05 * i) for i in range(10)]
        decoder = TensorDecoder("box_major", conf_threshold=0.4)

        for c in decoder.decode(box_major_output(rows), identity_ctx):
            assert c.score > 0.4

    def test_argmax_tie_picks_first_class(self, box_major_output, identity_ctx):
        output = box_major_output([(320, 320, 10, 10, 5, 0.7)])
        output[0, 0, 4 + 3] = 0.7
        candidates = TensorDecoder("box_major").decode(output, identity_ctx)

        assert candidates[0].class_id == 3
        assert candidates[0].label == COCO_CLASSES[3]

    def test_class_outside_label_table_is_unknown(self, box_major_output, identity_ctx):
        output = box_major_output([(320, 320, 10, 10, 2, 0.9)], num_classes=3)
        decoder = TensorDecoder("box_major", num_classes=3, labels=["a", "b"])

        candidates = decoder.decode(output, identity_ctx)
        assert candidates[0].label == UNKNOWN_LABEL
        assert candidates[0].class_id == 2

    def test_unletterbox_to_source_pixels(self, box_major_output):
        # 1280x720 frame: scale 0.5, y_pad 140
        ctx = compute_letterbox(1280, 720, 640, 640)
        output = box_major_output([(320, 320, 100, 50, 2, 0.9)])

        c = TensorDecoder("box_major").decode(output, ctx)[0]
        assert c.bbox.x == pytest.approx((320 - 50 - 0) / 0.5)
        assert c.bbox.y == pytest.approx((320 - 25 - 140) / 0.5)
        assert c.bbox.width == pytest.approx(200)
        assert c.bbox.height == pytest.approx(100)

    def test_box_touching_content_edges_maps_to_frame_edges(self, box_major_output):
        ctx = compute_letterbox(1280, 720, 640, 640)
        # content occupies y in [140, 500] of the model input
        output = box_major_output([(320, 320, 640, 360, 0, 0.9)])

        c = TensorDecoder("box_major").decode(output, ctx)[0]
        assert c.bbox.as_xyxy() == pytest.approx((0, 0, 1280, 720))

    def test_empty_proposals(self, identity_ctx):
        output = np.zeros((1, 0, 84), dtype=np.float32)
        assert TensorDecoder("box_major").decode(output, identity_ctx) == []


class TestShapeValidation:
    @pytest.mark.parametrize("shape", [(84, 8400), (2, 84, 8400), (1, 1, 84, 8400)])
    def test_rank_or_batch_mismatch(self, shape, identity_ctx):
        decoder = TensorDecoder("channel_major")
        with pytest.raises(ShapeMismatchError):
            decoder.decode(np.zeros(shape, dtype=np.float32), identity_ctx)

    def test_channel_major_wrong_channel_count(self, identity_ctx):
        decoder = TensorDecoder("channel_major", num_classes=80)
        with pytest.raises(ShapeMismatchError):
            decoder.decode(np.zeros((1, 85, 8400), dtype=np.float32), identity_ctx)

    def test_box_major_given_channel_major_tensor(self, identity_ctx):
        decoder = TensorDecoder("box_major", num_classes=80)
        with pytest.raises(ShapeMismatchError):
            decoder.decode(np.zeros((1, 84, 8400), dtype=np.float32), identity_ctx)

    def test_proposals_view_shape(self):
        decoder = TensorDecoder("channel_major", num_classes=80)
        assert decoder.proposals(np.zeros((1, 84, 8400), dtype=np.float32)).shape == (8400, 84)
