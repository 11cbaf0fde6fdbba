"""
Output decoders and region extraction.
"""
import numpy as np
import pytest

from omnisight.core.dtypes import BoundingBox
from omnisight.core.models.onnx_runtime import OnnxOutput
from omnisight.core.pipeline.decoders import (
    decode_description,
    decode_detections,
    decode_emotion,
    decode_iris,
    decode_landmarks,
)
from omnisight.core.pipeline.labels import COCO_LABELS
from omnisight.core.pipeline.regions import (
    RegionInput,
    crop_region,
    prepare_eye_regions,
    prepare_region,
)


@pytest.fixture
def frame():
    return np.zeros((100, 120, 3), dtype=np.uint8)


def _region(origin=(10, 20)):
    return RegionInput(image=np.zeros((40, 40, 3), dtype=np.uint8), origin=origin)


class TestDecodeDetections:
    def test_mappings_and_boxes_pass_through(self):
        box = BoundingBox(x=1, y=2, width=3, height=4, confidence=0.5)
        decoded = decode_detections([box, {"x": 5, "y": 6, "width": 7, "height": 8, "confidence": 0.25}])
        assert decoded[0] is box
        assert decoded[1] == BoundingBox(x=5, y=6, width=7, height=8, confidence=0.25)

    def test_none_is_empty(self):
        assert decode_detections(None) == []

    def test_tensor_rows_are_scaled_and_labelled(self):
        rows = np.array([[[0, 2, 0.5, 10, 20, 30, 40]]], dtype=np.float32)
        decoded = decode_detections(OnnxOutput(outputs=[rows], scale=(2.0, 0.5)), COCO_LABELS)
        assert len(decoded) == 1
        box = decoded[0]
        assert (box.x, box.y, box.width, box.height) == (20.0, 10.0, 40.0, 10.0)
        assert box.confidence == 0.5
        assert box.label == "car"

    def test_tensor_keypoints(self):
        rows = np.array([[0, 0, 0.5, 0, 0, 10, 10]], dtype=np.float32)
        keypoints = np.ones((1, 17, 3), dtype=np.float32)
        decoded = decode_detections(OnnxOutput(outputs=[rows, keypoints], scale=(2.0, 2.0)))
        assert decoded[0].landmarks.shape == (17, 3)
        assert decoded[0].landmarks[0, 0] == 2.0
        assert decoded[0].landmarks[0, 2] == 1.0


class TestDecodeLandmarks:
    def test_offsets_by_region_origin(self):
        points = np.array([[1, 2, 0.5], [3, 4, 0.5]], dtype=np.float32)
        decoded = decode_landmarks({"region": points}, {"region": _region()}, 0.0)
        np.testing.assert_allclose(decoded, [[11, 22, 0.5], [13, 24, 0.5]])

    def test_tensor_output_is_scaled_then_offset(self):
        raw = OnnxOutput(outputs=[np.array([[2, 2, 0, 4, 4, 0]], dtype=np.float32)], scale=(0.5, 0.5))
        decoded = decode_landmarks({"region": raw}, {"region": _region()}, 0.0)
        np.testing.assert_allclose(decoded, [[11, 21, 0], [12, 22, 0]])

    def test_empty_output_is_omitted(self):
        assert decode_landmarks({"region": []}, {"region": _region()}, 0.0) is None

    def test_iris_per_side(self):
        outputs = {"left": np.zeros((5, 3)), "right": np.zeros((5, 3))}
        regions = {"left": _region((30, 30)), "right": _region((5, 30))}
        decoded = decode_iris(outputs, regions, 0.0)
        assert decoded["left"][0, 0] == 30
        assert decoded["right"][0, 0] == 5


class TestDecodeEmotion:
    def test_filters_and_sorts(self):
        scores = [0.05, 0.0, 0.0, 0.25, 0.75, 0.0, 0.0]
        decoded = decode_emotion({"region": scores}, {}, 0.1)
        assert decoded == [{"score": 0.75, "emotion": "sad"}, {"score": 0.25, "emotion": "happy"}]

    def test_score_is_capped(self):
        decoded = decode_emotion({"region": [0, 0, 0, 1.0, 0, 0, 0]}, {}, 0.1)
        assert decoded == [{"score": 0.99, "emotion": "happy"}]


class TestDecodeDescription:
    def _output(self, gender):
        return OnnxOutput(
            outputs=[np.array([[gender]]), np.array([[0.25]]), np.array([[0.5, 0.25]], dtype=np.float32)],
            scale=(1.0, 1.0),
        )

    def test_confident_gender(self):
        decoded = decode_description({"region": self._output(0.9)}, {}, 0.1)
        assert decoded["gender"] == "male"
        assert decoded["gender_score"] == pytest.approx(0.8)
        assert decoded["age"] == pytest.approx(25.0)
        assert decoded["descriptor"] == [0.5, 0.25]

    def test_uncertain_gender_is_dropped(self):
        decoded = decode_description({"region": self._output(0.52)}, {}, 0.1)
        assert "gender" not in decoded
        assert "age" in decoded

    def test_mapping_passthrough(self):
        assert decode_description({"region": {"age": 40}}, {}, 0.1) == {"age": 40}


class TestRegions:
    def test_crop_is_clipped_to_frame(self, frame):
        region = crop_region(frame, BoundingBox(x=-10, y=90, width=30, height=30))
        assert region.origin == (0, 90)
        assert region.image.shape[:2] == (10, 20)

    def test_box_outside_frame_gives_no_region(self, frame):
        assert crop_region(frame, BoundingBox(x=200, y=200, width=10, height=10)) is None
        assert prepare_region(frame, BoundingBox(x=200, y=200, width=10, height=10), {}) == {}

    def test_eye_regions_need_full_mesh(self, frame):
        box = BoundingBox(x=0, y=0, width=50, height=50)
        assert prepare_eye_regions(frame, box, {}) == {}
        assert prepare_eye_regions(frame, box, {"mesh": np.zeros((10, 3))}) == {}

    def test_eye_regions_from_mesh(self, frame):
        idx = np.arange(468)
        mesh = np.stack([idx % 30, idx // 30, np.zeros(468)], axis=1)
        regions = prepare_eye_regions(frame, BoundingBox(x=0, y=0, width=50, height=50), {"mesh": mesh})
        assert set(regions) == {"left", "right"}
        left = regions["left"]
        # left contour spans x 2..27, y 8..12 before 10% padding
        assert left.origin == (0, 7)
        assert left.image.shape[:2] == (6, 30)
