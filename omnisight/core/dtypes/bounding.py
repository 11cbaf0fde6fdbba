from __future__ import annotations
from typing import Any, Mapping, Optional, Tuple
from dataclasses import dataclass, field, replace
import numpy as np
from numpy.typing import NDArray

FloatArray = NDArray[np.float32]

Confidence = float  # 0.0 - 1.0
Coordinate = Tuple[float, float]  # (x, y)
InstanceID = int

@dataclass(frozen=True)
class BoundingBox:
    x: float
    y: float
    width: float
    height: float
    confidence: Confidence = 1.0
    instance_id: Optional[InstanceID] = None
    label: Optional[str] = None
    landmarks: Optional[FloatArray] = field(default=None, compare=False)  # keypoints, frame pixels

    @property
    def x1(self) -> float:
        return self.x

    @property
    def y1(self) -> float:
        return self.y

    @property
    def x2(self) -> float:
        return self.x + self.width

    @property
    def y2(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Coordinate:
        return (self.x + self.width / 2, self.y + self.height / 2)

    @property
    def area(self) -> float:
        return self.width * self.height

    def iou(self, other: BoundingBox) -> float:
        """Intersection over Union with another box; 0.0 when they do not overlap."""
        x1 = max(self.x1, other.x1)
        y1 = max(self.y1, other.y1)
        x2 = min(self.x2, other.x2)
        y2 = min(self.y2, other.y2)

        if x2 <= x1 or y2 <= y1: return 0.0

        intersection = (x2 - x1) * (y2 - y1)
        union = self.area + other.area - intersection

        return intersection / union if union > 0 else 0.0

    def with_instance(self, instance_id: InstanceID) -> BoundingBox:
        return replace(self, instance_id=instance_id)

    def to_dict(self) -> dict:
        data: dict = {
            "x": self.x, "y": self.y,
            "width": self.width, "height": self.height,
            "confidence": self.confidence,
            "instance_id": self.instance_id,
        }
        if self.label is not None:
            data["label"] = self.label
        if self.landmarks is not None:
            data["landmarks"] = np.asarray(self.landmarks).tolist()
        return data

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> BoundingBox:
        landmarks = raw.get("landmarks")
        return cls(
            x=float(raw["x"]), y=float(raw["y"]),
            width=float(raw["width"]), height=float(raw["height"]),
            confidence=float(raw.get("confidence", 1.0)),
            label=raw.get("label"),
            landmarks=None if landmarks is None else np.asarray(landmarks, dtype=np.float32),
        )
