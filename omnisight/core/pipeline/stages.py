"""Tagged description of each role's pipeline.

A `RolePlan` lists the detector settings and the ordered sub-stages of one
role. Each `StageDescriptor` names the stages it depends on; `validate_plan`
checks those edges once, when the session is built, so the orchestrator can
walk the stages in order without further checks.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from omnisight.core.dtypes import BoundingBox, Role, ROLE_ORDER
from omnisight.core.dtypes.media import ImageArray
from omnisight.core.errors import ConfigError
from omnisight.core.scheduling import SkipPolicy
from .config import DetectorConfig, PipelineConfig, ScheduledStageConfig, StageConfig
from .decoders import decode_description, decode_emotion, decode_iris, decode_landmarks
from .labels import COCO_LABELS
from .regions import RegionInput, prepare_eye_regions, prepare_region

LOGGER = logging.getLogger(__name__)

PrepareFn = Callable[[ImageArray, BoundingBox, Mapping[str, Any]], Dict[str, RegionInput]]
DecodeFn = Callable[[Mapping[str, Any], Mapping[str, RegionInput], float], Any]


@dataclass(frozen=True)
class StageDescriptor:
    name: str
    model_id: str
    prepare: PrepareFn
    decode: DecodeFn
    depends_on: Tuple[str, ...] = ()
    policy: Optional[SkipPolicy] = None  # None: run on every frame
    min_confidence: float = 0.0


@dataclass(frozen=True)
class RolePlan:
    role: Role
    detector: DetectorConfig
    stages: Tuple[StageDescriptor, ...] = ()
    labels: Optional[Sequence[str]] = None
    return_crop: bool = False

    @property
    def detector_policy(self) -> SkipPolicy:
        return SkipPolicy(self.detector.skip_frames, self.detector.skip_initial)

    def stage_names(self) -> List[str]:
        return [stage.name for stage in self.stages]


@dataclass(frozen=True)
class _StageTemplate:
    name: str
    prepare: PrepareFn
    decode: DecodeFn
    depends_on: Tuple[str, ...] = field(default=())


# Declared order per role; a stage may only depend on stages listed before it.
STAGE_TEMPLATES: Dict[Role, Tuple[_StageTemplate, ...]] = {
    Role.FACE: (
        _StageTemplate("mesh", prepare_region, decode_landmarks),
        _StageTemplate("iris", prepare_eye_regions, decode_iris, depends_on=("mesh",)),
        _StageTemplate("description", prepare_region, decode_description),
        _StageTemplate("emotion", prepare_region, decode_emotion),
    ),
    Role.BODY: (),
    Role.HAND: (
        _StageTemplate("skeleton", prepare_region, decode_landmarks),
    ),
    Role.OBJECT: (),
}


def _descriptor(template: _StageTemplate, stage_config: Union[StageConfig, ScheduledStageConfig]) -> StageDescriptor:
    policy = None
    min_confidence = 0.0
    if isinstance(stage_config, ScheduledStageConfig):
        policy = SkipPolicy(skip_frames=stage_config.skip_frames)
        min_confidence = stage_config.min_confidence
    return StageDescriptor(
        name=template.name,
        model_id=stage_config.model_path,
        prepare=template.prepare,
        decode=template.decode,
        depends_on=template.depends_on,
        policy=policy,
        min_confidence=min_confidence,
    )


def validate_plan(plan: RolePlan) -> RolePlan:
    if not plan.detector.model_path:
        raise ConfigError(f"{plan.role.value}: detector model_path is empty")
    seen: List[str] = []
    for stage in plan.stages:
        if stage.name in seen:
            raise ConfigError(f"{plan.role.value}: duplicate stage '{stage.name}'")
        if not stage.model_id:
            raise ConfigError(f"{plan.role.value}.{stage.name}: model_path is empty")
        for dependency in stage.depends_on:
            if dependency not in seen:
                raise ConfigError(
                    f"{plan.role.value}.{stage.name} depends on '{dependency}', "
                    "which is not an earlier stage of the same role"
                )
        seen.append(stage.name)
    return plan


def build_plan(role: Role, config: PipelineConfig) -> Optional[RolePlan]:
    """Plan of one role, or None when the role is disabled.

    The role's `enabled` flag and `hand.landmarks` gate sub-stages here only;
    the sub-stage flags in the configuration keep their own values, so
    re-enabling the role brings its sub-stages back.
    """
    role_config = getattr(config, role.value)
    if not role_config.enabled:
        return None

    stages: List[StageDescriptor] = []
    for template in STAGE_TEMPLATES[role]:
        stage_config = getattr(role_config, template.name)
        if not stage_config.enabled:
            continue
        if template.name == "skeleton" and not getattr(role_config, "landmarks", True):
            continue
        missing = [dep for dep in template.depends_on if dep not in {s.name for s in stages}]
        if missing:
            LOGGER.debug("Dropping %s.%s: required stage(s) %s disabled", role.value, template.name, missing)
            continue
        stages.append(_descriptor(template, stage_config))

    return validate_plan(RolePlan(
        role=role,
        detector=role_config.detector,
        stages=tuple(stages),
        labels=COCO_LABELS if role is Role.OBJECT else None,
        return_crop=role_config.detector.return_crop,
    ))


def build_plans(config: PipelineConfig) -> List[RolePlan]:
    plans = [build_plan(role, config) for role in ROLE_ORDER]
    return [plan for plan in plans if plan is not None]
