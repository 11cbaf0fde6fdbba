from . import onnx_runtime

__all__ = [
    'onnx_runtime',
]
