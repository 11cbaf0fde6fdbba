from .aggregator import FrameResult, aggregate
from .config import (
    BodyConfig,
    DetectorConfig,
    FaceConfig,
    HandConfig,
    ObjectConfig,
    PipelineConfig,
    ScheduledStageConfig,
    StageConfig,
)
from .coordinator import (
    ConcurrentStrategy,
    ExecutionStrategy,
    SequentialStrategy,
    create_execution_strategy,
)
from .loader import load_config_dict, load_config_from_yaml
from .orchestrator import InstanceRecord, RolePipeline, RoleResult
from .resolver import resolve_config
from .session import PerceptionSession
from .stages import RolePlan, StageDescriptor, build_plan, build_plans, validate_plan

__all__ = [
    "FrameResult",
    "aggregate",
    "BodyConfig",
    "DetectorConfig",
    "FaceConfig",
    "HandConfig",
    "ObjectConfig",
    "PipelineConfig",
    "ScheduledStageConfig",
    "StageConfig",
    "ConcurrentStrategy",
    "ExecutionStrategy",
    "SequentialStrategy",
    "create_execution_strategy",
    "load_config_dict",
    "load_config_from_yaml",
    "InstanceRecord",
    "RolePipeline",
    "RoleResult",
    "resolve_config",
    "PerceptionSession",
    "RolePlan",
    "StageDescriptor",
    "build_plan",
    "build_plans",
    "validate_plan",
]
