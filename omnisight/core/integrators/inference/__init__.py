from .api import InferenceBackend
from .config import InferenceConfig
from .factory import create_inference_backend

__all__ = [
    "InferenceBackend",
    "InferenceConfig",
    "create_inference_backend",
]
