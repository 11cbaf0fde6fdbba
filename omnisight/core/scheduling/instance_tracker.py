from typing import Dict, List, Optional, Sequence, Set

from omnisight.core.dtypes import BoundingBox, InstanceID


class InstanceTracker:
    """Carries instance ids from one fresh detection of a role to the next.

    Each previously cached box claims the current box it overlaps most, as
    long as the IoU exceeds `iou_threshold`; unclaimed boxes get a new id.
    """

    def __init__(self, iou_threshold: float):
        self.iou_threshold = iou_threshold
        self.reset()

    def reset(self):
        self.next_instance_id: InstanceID = 1

    def assign(
        self,
        previous: Sequence[BoundingBox],
        current: Sequence[BoundingBox],
    ) -> List[BoundingBox]:
        matches: Dict[int, InstanceID] = {}  # current index -> instance id
        claimed: Set[InstanceID] = set()
        for track in previous:
            if track.instance_id is None or track.instance_id in claimed:
                continue
            best_idx: Optional[int] = None
            best_iou = 0.0
            for i, box in enumerate(current):
                if i in matches:
                    continue
                iou = track.iou(box)
                if iou > self.iou_threshold and iou > best_iou:
                    best_idx, best_iou = i, iou

            if best_idx is not None:
                matches[best_idx] = track.instance_id
                claimed.add(track.instance_id)

        assigned: List[BoundingBox] = []
        for i, box in enumerate(current):
            if i not in matches:
                matches[i] = self.next_instance_id
                self.next_instance_id += 1
            assigned.append(box.with_instance(matches[i]))
        return assigned
