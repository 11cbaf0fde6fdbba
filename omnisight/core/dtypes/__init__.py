from .bounding import BoundingBox, Confidence, Coordinate, FloatArray, InstanceID
from .media import Duration, FrameID, ImageArray, Metadata, Timestamp
from .roles import Role, ROLE_ORDER

__all__ = [
    "BoundingBox",
    "Confidence",
    "Coordinate",
    "FloatArray",
    "InstanceID",
    "Duration",
    "FrameID",
    "ImageArray",
    "Metadata",
    "Timestamp",
    "Role",
    "ROLE_ORDER",
]
