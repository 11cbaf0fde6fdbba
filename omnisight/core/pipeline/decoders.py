"""Turns raw backend outputs into boxes, landmarks, and classification records.

Backends that already return structured values (sequences of `BoundingBox` or
mappings, plain score lists) are passed through; `OnnxOutput` tensors are
decoded from model-input pixels back to frame pixels.
"""
import logging
import math
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np

from omnisight.core.dtypes import BoundingBox, FloatArray
from omnisight.core.models.onnx_runtime import OnnxOutput
from .labels import EMOTION_LABELS
from .regions import RegionInput

LOGGER = logging.getLogger(__name__)

# [batch, class, confidence, x1, y1, x2, y2]
DETECTION_ROW = 7


def _detections_from_tensor(raw: OnnxOutput, labels: Optional[Sequence[str]]) -> List[BoundingBox]:
    rows = np.asarray(raw.first, dtype=np.float32).reshape(-1, DETECTION_ROW)
    sx, sy = raw.scale
    keypoints = None
    if len(raw.outputs) > 1:
        candidate = np.asarray(raw.outputs[1], dtype=np.float32)
        if candidate.ndim == 3 and candidate.shape[0] == rows.shape[0]:
            keypoints = candidate

    boxes: List[BoundingBox] = []
    for i, (_, cls, conf, x1, y1, x2, y2) in enumerate(rows):
        label = None
        if labels is not None and 0 <= int(cls) < len(labels):
            label = labels[int(cls)]
        landmarks = None
        if keypoints is not None:
            landmarks = keypoints[i].copy()
            landmarks[:, 0] *= sx
            landmarks[:, 1] *= sy
        boxes.append(BoundingBox(
            x=float(x1 * sx), y=float(y1 * sy),
            width=float((x2 - x1) * sx), height=float((y2 - y1) * sy),
            confidence=float(conf), label=label, landmarks=landmarks,
        ))
    return boxes


def decode_detections(raw: Any, labels: Optional[Sequence[str]] = None) -> List[BoundingBox]:
    """Unfiltered detector output as frame-pixel boxes, in backend order."""
    if raw is None:
        return []
    if isinstance(raw, OnnxOutput):
        return _detections_from_tensor(raw, labels)
    return [item if isinstance(item, BoundingBox) else BoundingBox.from_mapping(item) for item in raw]


def _to_frame_points(raw: Any, region: RegionInput) -> Optional[FloatArray]:
    if isinstance(raw, OnnxOutput):
        sx, sy = raw.scale
        values = np.asarray(raw.first, dtype=np.float32)
        points = values.reshape(-1, 3 if values.size % 3 == 0 else 2).copy()
        points[:, 0] *= sx
        points[:, 1] *= sy
    else:
        values = np.asarray(raw, dtype=np.float32)
        if values.size == 0:
            return None
        points = values.reshape(-1, values.shape[-1] if values.ndim > 1 else 2).copy()
    if points.shape[0] == 0:
        return None
    ox, oy = region.origin
    points[:, 0] += ox
    points[:, 1] += oy
    return points


def decode_landmarks(
    outputs: Mapping[str, Any],
    regions: Mapping[str, RegionInput],
    min_confidence: float,
) -> Optional[FloatArray]:
    del min_confidence
    return _to_frame_points(outputs["region"], regions["region"])


def decode_iris(
    outputs: Mapping[str, Any],
    regions: Mapping[str, RegionInput],
    min_confidence: float,
) -> Optional[Dict[str, FloatArray]]:
    del min_confidence
    eyes: Dict[str, FloatArray] = {}
    for side, raw in outputs.items():
        points = _to_frame_points(raw, regions[side])
        if points is not None:
            eyes[side] = points
    return eyes or None


def decode_emotion(
    outputs: Mapping[str, Any],
    regions: Mapping[str, RegionInput],
    min_confidence: float,
) -> List[Dict[str, Any]]:
    """Emotion scores at or above `min_confidence`, best first."""
    del regions
    raw = outputs["region"]
    if isinstance(raw, list) and raw and isinstance(raw[0], Mapping):
        return [dict(item) for item in raw]

    values = raw.first if isinstance(raw, OnnxOutput) else raw
    scores = np.asarray(values, dtype=np.float32).ravel()
    if scores.size != len(EMOTION_LABELS):
        LOGGER.debug("Emotion output has %d scores, expected %d", scores.size, len(EMOTION_LABELS))

    emotions = [
        {"score": min(0.99, math.trunc(100 * float(score)) / 100), "emotion": label}
        for label, score in zip(EMOTION_LABELS, scores)
        if score >= min_confidence
    ]
    emotions.sort(key=lambda item: item["score"], reverse=True)
    return emotions


def decode_description(
    outputs: Mapping[str, Any],
    regions: Mapping[str, RegionInput],
    min_confidence: float,
) -> Optional[Dict[str, Any]]:
    """Age, gender and face descriptor from the description model.

    Tensor layout is `[gender, age, descriptor]`; gender is reported only when
    its confidence exceeds `min_confidence`.
    """
    del regions
    raw = outputs["region"]
    if isinstance(raw, Mapping):
        return dict(raw)
    if not isinstance(raw, OnnxOutput) or len(raw.outputs) < 3:
        LOGGER.debug("Unrecognised description output: %s", type(raw).__name__)
        return None

    gender_raw = float(np.asarray(raw.outputs[0]).ravel()[0])
    age_raw = float(np.asarray(raw.outputs[1]).ravel()[0])
    descriptor = np.asarray(raw.outputs[2], dtype=np.float32).ravel()

    gender_score = math.trunc(200 * abs(gender_raw - 0.5)) / 100
    description: Dict[str, Any] = {
        "age": round(100 * age_raw, 1),
        "descriptor": descriptor.tolist(),
    }
    if gender_score > min_confidence:
        description["gender"] = "female" if gender_raw <= 0.5 else "male"
        description["gender_score"] = min(0.99, gender_score)
    return description
