from typing import Literal, Optional, Tuple
from dataclasses import dataclass

@dataclass
class OnnxModelConfig:
    model_path: str
    execution_provider: Literal["cpu", "cuda"] = "cpu"
    input_size: Optional[Tuple[int, int]] = None  # (width, height); None reads it from the model
