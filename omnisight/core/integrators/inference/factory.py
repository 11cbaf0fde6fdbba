from .api import InferenceBackend
from .config import InferenceConfig

def create_inference_backend(config: InferenceConfig, model_base_path: str) -> InferenceBackend:

    if config.type == "onnx":
        from .wrappers.onnx.wrapper import OnnxInferenceBackend
        assert config.onnx
        return OnnxInferenceBackend(config.onnx, model_base_path)

    raise ValueError(f"Unknown inference backend type: {config.type}")
