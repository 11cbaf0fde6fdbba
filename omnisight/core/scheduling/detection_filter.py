from typing import Iterable, List, Optional

from omnisight.core.dtypes import BoundingBox


def filter_detections(
    raw: Iterable[BoundingBox],
    min_confidence: float,
    iou_threshold: float,
    max_detected: Optional[int] = None,
) -> List[BoundingBox]:
    """Confidence gate followed by greedy non-maximum suppression.

    Boxes below `min_confidence` are dropped, the rest are visited in order of
    descending confidence (ties keep input order) and a box is kept unless its
    IoU with an already kept box exceeds `iou_threshold`. At most
    `max_detected` boxes are returned; `None` means no cap.
    """
    candidates = [box for box in raw if box.confidence >= min_confidence]
    candidates.sort(key=lambda box: box.confidence, reverse=True)

    kept: List[BoundingBox] = []
    for box in candidates:
        if max_detected is not None and len(kept) >= max_detected:
            break
        if any(box.iou(other) > iou_threshold for other in kept):
            continue
        kept.append(box)
    return kept
