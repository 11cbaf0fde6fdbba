"""
ONNX Runtime Model Package
"""
from .model import OnnxModel
from .config import OnnxModelConfig
from .output import OnnxOutput

__all__ = [
    'OnnxModel',
    'OnnxModelConfig',
    'OnnxOutput',
]
