"""
ONNX Runtime inference backend.

Sessions are created lazily, one per model id, with the model id resolved
against the configured model base path. Blocking `session.run` calls go to a
worker thread so that concurrently scheduled roles overlap.
"""
import asyncio
import logging
from pathlib import Path
from typing import Dict

from omnisight.core.dtypes.media import ImageArray
from omnisight.core.errors import InferenceError
from omnisight.core.models.onnx_runtime import OnnxModel, OnnxModelConfig, OnnxOutput
from ...api import InferenceBackend
from .config import OnnxBackendConfig

LOGGER = logging.getLogger(__name__)


class OnnxInferenceBackend(InferenceBackend):
    def __init__(self, config: OnnxBackendConfig, model_base_path: str):
        self.config = config
        self.model_base_path = Path(model_base_path)
        self._models: Dict[str, OnnxModel] = {}

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        del exc_type, exc_val, exc_tb
        self._models.clear()

    def resolve_path(self, model_id: str) -> Path:
        path = Path(model_id)
        return path if path.is_absolute() else self.model_base_path / path

    def _load(self, model_id: str) -> OnnxModel:
        model = self._models.get(model_id)
        if model is None:
            try:
                model = OnnxModel(OnnxModelConfig(
                    model_path=str(self.resolve_path(model_id)),
                    execution_provider=self.config.execution_provider,
                ))
            except (FileNotFoundError, RuntimeError) as e:
                raise InferenceError(model_id, str(e)) from e
            self._models[model_id] = model
        return model

    async def infer(self, model_id: str, data: ImageArray) -> OnnxOutput:
        model = self._load(model_id)
        try:
            return await asyncio.to_thread(model, data)
        except RuntimeError as e:
            raise InferenceError(model_id, str(e)) from e
