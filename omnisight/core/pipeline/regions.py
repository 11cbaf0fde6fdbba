"""Region extraction feeding the sub-stages.

Every `prepare_*` function takes the frame, the instance box and the fields
computed so far for that instance, and returns the named regions the stage
should run on. An empty mapping means there is nothing to run on and the
stage's field is omitted.
"""
from typing import Any, Dict, Mapping, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from omnisight.core.dtypes import BoundingBox
from omnisight.core.dtypes.media import ImageArray

# MediaPipe FaceMesh indices of the six eye contour points
LEFT_EYE_INDICES = (263, 387, 385, 362, 380, 373)
RIGHT_EYE_INDICES = (33, 160, 158, 133, 153, 144)
MESH_POINTS = 468
EYE_PADDING_RATIO = 0.1


class RegionInput(NamedTuple):
    image: ImageArray
    origin: Tuple[int, int]  # top-left corner of the region in frame pixels


def clip_box(image: ImageArray, x1: float, y1: float, x2: float, y2: float) -> Tuple[int, int, int, int]:
    height, width = image.shape[:2]
    cx1 = max(0, int(np.floor(x1)))
    cy1 = max(0, int(np.floor(y1)))
    cx2 = max(cx1, min(width, int(np.ceil(x2))))
    cy2 = max(cy1, min(height, int(np.ceil(y2))))
    return cx1, cy1, cx2, cy2


def crop_region(image: ImageArray, box: BoundingBox) -> Optional[RegionInput]:
    x1, y1, x2, y2 = clip_box(image, box.x1, box.y1, box.x2, box.y2)
    if x2 <= x1 or y2 <= y1:
        return None
    return RegionInput(image=image[y1:y2, x1:x2], origin=(x1, y1))


def prepare_region(image: ImageArray, box: BoundingBox, fields: Mapping[str, Any]) -> Dict[str, RegionInput]:
    del fields
    region = crop_region(image, box)
    return {} if region is None else {"region": region}


def _eye_region(
    image: ImageArray,
    points: np.ndarray,
    indices: Sequence[int],
    padding_ratio: float,
) -> Optional[RegionInput]:
    eye = points[list(indices), :2]
    min_x, min_y = eye.min(axis=0)
    max_x, max_y = eye.max(axis=0)
    pad_x = (max_x - min_x) * padding_ratio
    pad_y = (max_y - min_y) * padding_ratio
    x1, y1, x2, y2 = clip_box(image, min_x - pad_x, min_y - pad_y, max_x + pad_x, max_y + pad_y)
    if x2 <= x1 or y2 <= y1:
        return None
    return RegionInput(image=image[y1:y2, x1:x2], origin=(x1, y1))


def prepare_eye_regions(image: ImageArray, box: BoundingBox, fields: Mapping[str, Any]) -> Dict[str, RegionInput]:
    """Left and right eye regions located from the mesh landmarks (frame pixels)."""
    del box
    mesh = fields.get("mesh")
    if mesh is None:
        return {}
    points = np.asarray(mesh, dtype=np.float32)
    if points.ndim != 2 or points.shape[0] < MESH_POINTS:
        return {}

    regions: Dict[str, RegionInput] = {}
    for side, indices in (("left", LEFT_EYE_INDICES), ("right", RIGHT_EYE_INDICES)):
        region = _eye_region(image, points, indices, EYE_PADDING_RATIO)
        if region is not None:
            regions[side] = region
    return regions
