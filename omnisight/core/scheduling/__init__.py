from .detection_filter import filter_detections
from .instance_tracker import InstanceTracker
from .skip_state import (
    Action,
    SkipPolicy,
    SkipState,
    SkipStateStore,
    StateChanges,
    StateKey,
    after_fresh,
    after_reuse,
    decide,
)

__all__ = [
    "filter_detections",
    "InstanceTracker",
    "Action",
    "SkipPolicy",
    "SkipState",
    "SkipStateStore",
    "StateChanges",
    "StateKey",
    "after_fresh",
    "after_reuse",
    "decide",
]
