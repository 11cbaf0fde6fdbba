from typing import Annotated, Optional
from dataclasses import dataclass, field
from pydantic import Field
from pydantic.dataclasses import dataclass as pydantic_dataclass

from omnisight.core.integrators.inference import InferenceConfig

Probability = Annotated[float, Field(ge=0.0, le=1.0)]
FrameCount = Annotated[int, Field(ge=0)]
DetectionLimit = Optional[Annotated[int, Field(ge=1)]]  # None = unbounded


@pydantic_dataclass(frozen=True)
@dataclass(frozen=True)
class DetectorConfig:
    """Bounding-region detector of one role."""

    model_path: str
    min_confidence: Probability = 0.2     # boxes below are discarded
    iou_threshold: Probability = 0.1      # overlap above which the weaker box is removed
    max_detected: DetectionLimit = 10
    skip_frames: FrameCount = 0           # frames to reuse boxes before detecting again (video only)
    skip_initial: bool = False            # detect again right after an empty result
    return_crop: bool = False             # attach the extracted region to each record


@pydantic_dataclass(frozen=True)
@dataclass(frozen=True)
class StageConfig:
    """Sub-stage that runs on every detected region."""

    model_path: str
    enabled: bool = True


@pydantic_dataclass(frozen=True)
@dataclass(frozen=True)
class ScheduledStageConfig:
    """Sub-stage whose per-instance result may be reused for `skip_frames` frames."""

    model_path: str
    enabled: bool = True
    skip_frames: FrameCount = 0
    min_confidence: Probability = 0.1


@pydantic_dataclass(frozen=True)
@dataclass(frozen=True)
class FaceConfig:
    enabled: bool = True
    detector: DetectorConfig = field(default_factory=lambda: DetectorConfig(
        model_path="blazeface.onnx", min_confidence=0.2, iou_threshold=0.1,
        max_detected=10, skip_frames=21,
    ))
    mesh: StageConfig = field(default_factory=lambda: StageConfig(model_path="facemesh.onnx"))
    iris: StageConfig = field(default_factory=lambda: StageConfig(model_path="iris.onnx"))
    description: ScheduledStageConfig = field(default_factory=lambda: ScheduledStageConfig(
        model_path="faceres.onnx", skip_frames=31, min_confidence=0.1,
    ))
    emotion: ScheduledStageConfig = field(default_factory=lambda: ScheduledStageConfig(
        model_path="emotion.onnx", skip_frames=32, min_confidence=0.1,
    ))


@pydantic_dataclass(frozen=True)
@dataclass(frozen=True)
class BodyConfig:
    enabled: bool = True
    detector: DetectorConfig = field(default_factory=lambda: DetectorConfig(
        model_path="posenet.onnx", min_confidence=0.2, iou_threshold=0.4, max_detected=1,
    ))


@pydantic_dataclass(frozen=True)
@dataclass(frozen=True)
class HandConfig:
    enabled: bool = True
    landmarks: bool = True  # run the skeleton stage or report boxes only
    detector: DetectorConfig = field(default_factory=lambda: DetectorConfig(
        model_path="handdetect.onnx", min_confidence=0.1, iou_threshold=0.1,
        max_detected=1, skip_frames=12,
    ))
    skeleton: StageConfig = field(default_factory=lambda: StageConfig(model_path="handskeleton.onnx"))


@pydantic_dataclass(frozen=True)
@dataclass(frozen=True)
class ObjectConfig:
    enabled: bool = False
    detector: DetectorConfig = field(default_factory=lambda: DetectorConfig(
        model_path="nanodet.onnx", min_confidence=0.2, iou_threshold=0.4,
        max_detected=10, skip_frames=41,
    ))


@pydantic_dataclass(frozen=True)
@dataclass(frozen=True)
class PipelineConfig:
    """Top-level configuration tree; read-only once resolved."""

    model_base_path: str = "models/"
    debug: bool = False
    async_mode: bool = True               # run enabled roles concurrently
    video_optimized: bool = True          # allow reuse of detections across frames
    instance_iou_threshold: Probability = 0.3
    backend: InferenceConfig = field(default_factory=InferenceConfig)
    face: FaceConfig = field(default_factory=FaceConfig)
    body: BodyConfig = field(default_factory=BodyConfig)
    hand: HandConfig = field(default_factory=HandConfig)
    object: ObjectConfig = field(default_factory=ObjectConfig)
