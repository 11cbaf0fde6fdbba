from typing import Literal, Optional
from dataclasses import dataclass, field
from pydantic.dataclasses import dataclass as pydantic_dataclass

from .wrappers.onnx.config import OnnxBackendConfig


@pydantic_dataclass(frozen=True)
@dataclass(frozen=True)
class InferenceConfig:
    type: Literal["onnx"] = "onnx"
    onnx: Optional[OnnxBackendConfig] = field(default_factory=OnnxBackendConfig)
