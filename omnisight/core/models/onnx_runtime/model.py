import logging
from pathlib import Path
from typing import List, Tuple, cast

import cv2
import numpy as np
import onnxruntime as ort

from .config import OnnxModelConfig
from .output import OnnxOutput

LOGGER = logging.getLogger(__name__)


class OnnxModel:
    """Single ONNX session taking one BGR image (or image region) per call."""

    def __init__(self, config: OnnxModelConfig):
        self.model_path = config.model_path

        model_file = Path(self.model_path)
        if not model_file.exists():
            raise FileNotFoundError(f"ONNX model not found: {self.model_path}")
        providers = self._setup_execution_providers(config.execution_provider)

        try:
            self.session = ort.InferenceSession(str(model_file), providers=providers)
        except Exception as e:
            raise RuntimeError(f"Failed to initialize ONNX model {model_file.name}: {e}") from e

        input_info = self.session.get_inputs()[0]
        self.input_name = input_info.name
        self.input_shape = input_info.shape
        self.input_size = config.input_size or self._static_input_size(self.input_shape)
        LOGGER.info(
            "ONNX model loaded: %s (input %s, provider %s)",
            model_file.name, self.input_shape, config.execution_provider,
        )

    @staticmethod
    def _static_input_size(shape) -> Tuple[int, int]:
        """(width, height) from an NCHW input shape; (0, 0) when the model takes any size."""
        if len(shape) == 4 and isinstance(shape[2], int) and isinstance(shape[3], int):
            return (shape[3], shape[2])
        return (0, 0)

    def _preprocess(self, image: np.ndarray) -> Tuple[np.ndarray, Tuple[float, float]]:
        """
        Resizes to the model input size and converts to [1, 3, H, W] float32.

        Returns the tensor and the (x, y) scale back to the source image.
        """
        orig_h, orig_w = image.shape[:2]
        width, height = self.input_size
        if width > 0 and height > 0:
            image = cv2.resize(image, (width, height))
        else:
            width, height = orig_w, orig_h
        if image.ndim == 2:
            image = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)

        processed = image.astype(np.float32)
        transposed = np.transpose(processed, (2, 0, 1))  # HWC -> CHW
        contiguous = np.ascontiguousarray(transposed, dtype=np.float32)
        batched = np.expand_dims(contiguous, axis=0)
        return batched, (orig_w / width, orig_h / height)

    def __call__(self, image: np.ndarray) -> OnnxOutput:
        try:
            tensor, scale = self._preprocess(image)
            self._validate_input(tensor)
            raw_outputs = self.session.run(None, {self.input_name: tensor})
        except Exception as e:
            raise RuntimeError(f"ONNX inference failed for {Path(self.model_path).name}: {e}") from e
        return OnnxOutput(outputs=cast(List[np.ndarray], raw_outputs), scale=scale)

    def _setup_execution_providers(self, execution_provider: str) -> List[str]:
        providers = []
        if execution_provider == "cuda":
            providers.append("CUDAExecutionProvider")
        providers.append("CPUExecutionProvider")
        return providers

    def _validate_input(self, input_data: np.ndarray) -> None:
        if len(input_data.shape) != 4:
            raise ValueError(f"Expected 4D input [batch, channels, height, width], got {input_data.shape}")
        if input_data.dtype != np.float32:
            raise ValueError(f"Expected float32 input, got {input_data.dtype}")
        if input_data.shape[0] != 1:
            raise ValueError(f"Expected batch size 1, got {input_data.shape[0]}")
