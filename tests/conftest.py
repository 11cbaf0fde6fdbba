"""
Shared fixtures for the omnisight test suite.

`FakeBackend` stands in for the inference integrator: responses, delays and
failures are scripted per model id, and every call is recorded.
"""
import asyncio
from collections import defaultdict, deque
from typing import Any, Deque, Dict, List, Optional, Set

import numpy as np
import pytest

from omnisight.core.errors import InferenceError
from omnisight.core.integrators.inference import InferenceBackend
from omnisight.core.pipeline import PerceptionSession, resolve_config

FACE_BOX = {"x": 10, "y": 10, "width": 40, "height": 40, "confidence": 0.9}
BODY_BOX = {"x": 5, "y": 5, "width": 80, "height": 90, "confidence": 0.8}
HAND_BOX = {"x": 60, "y": 60, "width": 20, "height": 20, "confidence": 0.7}


def mesh_grid() -> np.ndarray:
    """468 face-region points laid out on a 30-column grid so both eye contours have extent."""
    idx = np.arange(468)
    return np.stack([idx % 30, idx // 30, np.zeros(468)], axis=1).astype(np.float32)


DEFAULT_RESPONSES: Dict[str, Any] = {
    "blazeface.onnx": [FACE_BOX],
    "posenet.onnx": [BODY_BOX],
    "handdetect.onnx": [HAND_BOX],
    "nanodet.onnx": [],
    "facemesh.onnx": mesh_grid(),
    "iris.onnx": np.ones((5, 3), dtype=np.float32),
    "faceres.onnx": {"age": 30.0, "gender": "female", "gender_score": 0.9, "descriptor": [0.1, 0.2]},
    "emotion.onnx": [0.0, 0.0, 0.0, 0.75, 0.25, 0.0, 0.0],
    "handskeleton.onnx": np.ones((21, 3), dtype=np.float32),
}


class FakeBackend(InferenceBackend):
    def __init__(self, responses: Optional[Dict[str, Any]] = None):
        self.responses: Dict[str, Any] = dict(DEFAULT_RESPONSES)
        self.responses.update(responses or {})
        self.queued: Dict[str, Deque[Any]] = defaultdict(deque)
        self.delays: Dict[str, float] = {}
        self.failures: Set[str] = set()
        self.calls: List[str] = []
        self.completed: List[str] = []
        self.entered = False

    def __enter__(self):
        self.entered = True
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.entered = False

    def queue(self, model_id: str, *responses: Any) -> None:
        """Responses used, in order, by the next calls before falling back to the default."""
        self.queued[model_id].extend(responses)

    def count(self, model_id: str) -> int:
        return self.calls.count(model_id)

    async def infer(self, model_id: str, data: np.ndarray) -> Any:
        self.calls.append(model_id)
        await asyncio.sleep(self.delays.get(model_id, 0))
        if model_id in self.failures:
            raise InferenceError(model_id, "scripted failure")
        if self.queued[model_id]:
            response = self.queued[model_id].popleft()
        else:
            response = self.responses.get(model_id)
        self.completed.append(model_id)
        if callable(response):
            return response(data)
        return response


@pytest.fixture
def image() -> np.ndarray:
    return np.zeros((100, 100, 3), dtype=np.uint8)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def make_session(backend):
    """Builds a session on the fake backend from a partial configuration mapping."""

    def _make(overrides: Optional[Dict[str, Any]] = None) -> PerceptionSession:
        return PerceptionSession(resolve_config(overrides or {}), backend=backend)

    return _make
