from typing import Literal
from dataclasses import dataclass
from pydantic.dataclasses import dataclass as pydantic_dataclass


@pydantic_dataclass(frozen=True)
@dataclass(frozen=True)
class OnnxBackendConfig:
    execution_provider: Literal["cpu", "cuda"] = "cpu"
