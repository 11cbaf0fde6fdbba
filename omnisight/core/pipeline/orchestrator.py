"""Per-role pipeline: detect or reuse, then run the sub-stages on every instance.

All skip-state transitions of a frame are staged in a `StateChanges` carried
by the `RoleResult`. The session commits them once every role of the frame
has returned, so a frame cancelled while waiting on the backend leaves the
store exactly as it found it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

import numpy as np

from omnisight.core.dtypes import BoundingBox, Role
from omnisight.core.dtypes.media import FrameID, ImageArray
from omnisight.core.errors import InferenceError, StateInconsistency
from omnisight.core.integrators.inference import InferenceBackend
from omnisight.core.io_utils import Timer
from omnisight.core.scheduling import (
    Action,
    InstanceTracker,
    SkipPolicy,
    SkipState,
    SkipStateStore,
    StateChanges,
    StateKey,
    after_fresh,
    after_reuse,
    decide,
    filter_detections,
)
from .decoders import decode_detections
from .regions import crop_region
from .stages import RolePlan, StageDescriptor

LOGGER = logging.getLogger(__name__)

DETECTOR_STAGE = "detector"

# Raised by decoders and region preparation on outputs of an unexpected shape or type.
MALFORMED_OUTPUT_ERRORS = (ValueError, TypeError, KeyError, IndexError, AttributeError)


def _to_plain(value: Any) -> Any:
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, dict):
        return {k: _to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_plain(v) for v in value]
    return value


@dataclass
class InstanceRecord:
    """One detected instance of a role plus whichever sub-results were computed."""

    role: Role
    box: BoundingBox
    fields: Dict[str, Any] = field(default_factory=dict)

    @property
    def instance_id(self) -> Optional[int]:
        return self.box.instance_id

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"role": self.role.value, "box": self.box.to_dict()}
        data.update({name: _to_plain(value) for name, value in self.fields.items()})
        return data


@dataclass
class RoleResult:
    role: Role
    instances: List[InstanceRecord] = field(default_factory=list)
    processing_time: float = 0.0  # ms
    action: Optional[Action] = None
    failed: bool = False
    error: Optional[str] = None
    changes: Optional[StateChanges] = None  # staged; None when nothing may be committed


def _malformed(model_id: str, e: Exception) -> InferenceError:
    return InferenceError(model_id, f"malformed output: {e!r}")


def _reusable(state: Optional[SkipState], key: StateKey) -> SkipState:
    if state is None or state.is_inconsistent:
        raise StateInconsistency(f"{key}: reuse requested without a cached result")
    return state


class RolePipeline:
    def __init__(
        self,
        plan: RolePlan,
        backend: InferenceBackend,
        store: SkipStateStore,
        tracker: InstanceTracker,
        video_optimized: bool,
    ):
        self.plan = plan
        self.backend = backend
        self.store = store
        self.tracker = tracker
        self.video_optimized = video_optimized

    @property
    def role(self) -> Role:
        return self.plan.role

    def _lookup(self, key: StateKey) -> Optional[SkipState]:
        return self.store.get(key) if self.video_optimized else None

    def _decide(self, key: StateKey, policy: SkipPolicy) -> Tuple[Action, Optional[SkipState]]:
        state = self._lookup(key)
        action = decide(state, policy, self.video_optimized)
        if action is Action.REUSE_CACHE:
            try:
                state = _reusable(state, key)
            except StateInconsistency as e:
                LOGGER.debug("%s; running fresh", e)
                action = Action.RUN_FRESH
        LOGGER.debug("%s: %s", key, action.value)
        return action, state

    async def _detect(
        self,
        image: ImageArray,
        changes: StateChanges,
    ) -> Tuple[List[BoundingBox], Action]:
        key = StateKey(self.role, DETECTOR_STAGE)
        action, state = self._decide(key, self.plan.detector_policy)

        if action is Action.REUSE_CACHE:
            assert state is not None
            changes.stage(key, after_reuse(state))
            return list(state.cached), action

        detector = self.plan.detector
        raw = await self.backend.infer(detector.model_path, image)
        try:
            decoded = decode_detections(raw, self.plan.labels)
        except MALFORMED_OUTPUT_ERRORS as e:
            raise _malformed(detector.model_path, e) from e
        boxes = filter_detections(
            decoded,
            min_confidence=detector.min_confidence,
            iou_threshold=detector.iou_threshold,
            max_detected=detector.max_detected,
        )
        if self.video_optimized:
            previous = state.cached if state is not None else ()
        else:
            self.tracker.reset()
            previous = ()
        boxes = self.tracker.assign(previous, boxes)
        changes.stage(key, after_fresh(boxes))
        return boxes, action

    async def _infer_stage(
        self,
        stage: StageDescriptor,
        image: ImageArray,
        box: BoundingBox,
        fields: Dict[str, Any],
    ) -> Any:
        try:
            regions = stage.prepare(image, box, fields)
        except MALFORMED_OUTPUT_ERRORS as e:
            # inputs come from earlier stages of the same instance
            raise _malformed(stage.model_id, e) from e
        if not regions:
            return None
        outputs = {}
        for name, region in regions.items():
            outputs[name] = await self.backend.infer(stage.model_id, region.image)
        try:
            return stage.decode(outputs, regions, stage.min_confidence)
        except MALFORMED_OUTPUT_ERRORS as e:
            raise _malformed(stage.model_id, e) from e

    async def _run_stage(
        self,
        stage: StageDescriptor,
        image: ImageArray,
        box: BoundingBox,
        fields: Dict[str, Any],
        changes: StateChanges,
    ) -> Any:
        if stage.policy is None:
            return await self._infer_stage(stage, image, box, fields)

        key = StateKey(self.role, stage.name, box.instance_id)
        action, state = self._decide(key, stage.policy)
        if action is Action.REUSE_CACHE:
            assert state is not None
            changes.stage(key, after_reuse(state))
            return state.cached[0] if state.cached else None

        value = await self._infer_stage(stage, image, box, fields)
        changes.stage(key, after_fresh([] if value is None else [value]))
        return value

    async def _run_stages(
        self,
        image: ImageArray,
        box: BoundingBox,
        changes: StateChanges,
        frame_id: FrameID,
    ) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}
        if self.plan.return_crop:
            region = crop_region(image, box)
            if region is not None:
                fields["crop"] = region.image

        skipped: Set[str] = set()
        for stage in self.plan.stages:
            if any(dep in skipped or dep not in fields for dep in stage.depends_on):
                skipped.add(stage.name)
                continue
            try:
                value = await self._run_stage(stage, image, box, fields, changes)
            except InferenceError as e:
                LOGGER.warning(
                    "Frame %s: %s.%s failed for instance %s: %s",
                    frame_id, self.role.value, stage.name, box.instance_id, e,
                )
                skipped.add(stage.name)
                continue
            if value is None:
                skipped.add(stage.name)
            else:
                fields[stage.name] = value
        return fields

    async def run(self, image: ImageArray, frame_id: FrameID) -> RoleResult:
        changes = StateChanges(self.role)
        result = RoleResult(role=self.role)
        with Timer() as timer:
            try:
                boxes, result.action = await self._detect(image, changes)
                changes.retain_instances(box.instance_id for box in boxes if box.instance_id is not None)
                for box in boxes:
                    fields = await self._run_stages(image, box, changes, frame_id)
                    result.instances.append(InstanceRecord(role=self.role, box=box, fields=fields))
            except InferenceError as e:
                LOGGER.warning("Frame %s: %s detector failed: %s", frame_id, self.role.value, e)
                result.instances = []
                result.failed = True
                result.error = str(e)

        result.processing_time = timer.get()
        if not result.failed and self.video_optimized:
            result.changes = changes
        return result

    def commit(self, result: RoleResult) -> None:
        if result.changes is not None:
            self.store.commit(result.changes)
            result.changes = None
