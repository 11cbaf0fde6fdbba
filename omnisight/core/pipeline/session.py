"""Perception session: the object applications hold on to.

The session owns the resolved configuration, the inference backend, the
skip-state store and the role pipelines built from the configuration. Only
one frame is in flight at a time; submitting a newer frame cancels the older
one, whose caller receives `FrameSuperseded`.
"""
from __future__ import annotations

import asyncio
import logging
import math
from typing import Any, List, Mapping, Optional, Sequence, Set, Tuple, Union

import numpy as np

from omnisight.core.dtypes.media import FrameID, ImageArray
from omnisight.core.errors import FrameSuperseded, InputError
from omnisight.core.integrators.inference import InferenceBackend, create_inference_backend
from omnisight.core.io_utils import Timer
from omnisight.core.scheduling import InstanceTracker, SkipStateStore
from .aggregator import FrameResult, aggregate
from .config import PipelineConfig
from .coordinator import ExecutionStrategy, create_execution_strategy
from .orchestrator import RolePipeline
from .resolver import resolve_config
from .stages import build_plans

LOGGER = logging.getLogger(__name__)

# Distance multiplier matching the descriptor scale of the description model
SIMILARITY_ORDER = 5.0


class PerceptionSession:
    def __init__(
        self,
        config: Union[PipelineConfig, Mapping[str, Any], None] = None,
        backend: Optional[InferenceBackend] = None,
    ):
        self.config = config if isinstance(config, PipelineConfig) else resolve_config(config)
        self._owns_backend = backend is None
        self.backend = backend if backend is not None else self._create_backend()

        self._frame_counter: FrameID = 0
        self._inflight: Optional[Tuple[FrameID, asyncio.Task]] = None
        self._superseded: Set[FrameID] = set()
        self._build()

    def _create_backend(self) -> InferenceBackend:
        return create_inference_backend(self.config.backend, self.config.model_base_path)

    def _build(self) -> None:
        """Fresh store, trackers and pipelines for the current configuration."""
        self.store = SkipStateStore()
        self.strategy: ExecutionStrategy = create_execution_strategy(self.config.async_mode)
        self.pipelines: List[RolePipeline] = [
            RolePipeline(
                plan,
                self.backend,
                self.store,
                InstanceTracker(self.config.instance_iou_threshold),
                self.config.video_optimized,
            )
            for plan in build_plans(self.config)
        ]
        LOGGER.debug(
            "Session built: roles=%s async=%s video_optimized=%s",
            [pipeline.role.value for pipeline in self.pipelines],
            self.config.async_mode, self.config.video_optimized,
        )

    def __enter__(self) -> PerceptionSession:
        self.backend.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.backend.__exit__(exc_type, exc_val, exc_tb)

    def configure(self, overrides: Mapping[str, Any]) -> PipelineConfig:
        """Merges `overrides` over the current configuration.

        Any change rebuilds the pipelines and starts from an empty skip-state
        store; frames still in flight commit into the store they started with.
        """
        updated = resolve_config(overrides, base=self.config)
        if updated == self.config:
            return self.config

        backend_changed = (
            updated.backend != self.config.backend
            or updated.model_base_path != self.config.model_base_path
        )
        self.config = updated
        if backend_changed and self._owns_backend:
            self.backend.__exit__(None, None, None)
            self.backend = self._create_backend()
        self._build()
        return self.config

    def reset(self) -> None:
        self._build()

    @staticmethod
    def check_input(image: Any) -> ImageArray:
        if image is None:
            raise InputError("No frame given")
        if not isinstance(image, np.ndarray):
            raise InputError(f"Frame must be a numpy array, got {type(image).__name__}")
        if image.ndim not in (2, 3) or image.size == 0:
            raise InputError(f"Frame has unusable shape {image.shape}")
        if image.ndim == 3 and image.shape[2] not in (1, 3, 4):
            raise InputError(f"Frame has unsupported channel count {image.shape[2]}")
        return image

    async def _run_frame(self, image: ImageArray, frame_id: FrameID) -> FrameResult:
        strategy, pipelines = self.strategy, list(self.pipelines)
        with Timer() as timer:
            role_results = await strategy.run(pipelines, image, frame_id)
        # No suspension from here on: the frame commits all of its roles or none.
        by_role = {pipeline.role: pipeline for pipeline in pipelines}
        for result in role_results:
            by_role[result.role].commit(result)
        return aggregate(frame_id, role_results, total_time=timer.get())

    async def detect(
        self,
        image: ImageArray,
        overrides: Optional[Mapping[str, Any]] = None,
    ) -> FrameResult:
        image = self.check_input(image)
        if overrides:
            self.configure(overrides)

        self._frame_counter += 1
        frame_id = self._frame_counter

        if self._inflight is not None:
            previous_id, previous = self._inflight
            if not previous.done():
                self._superseded.add(previous_id)
                previous.cancel()

        task = asyncio.ensure_future(self._run_frame(image, frame_id))
        self._inflight = (frame_id, task)
        try:
            return await task
        except asyncio.CancelledError:
            if frame_id in self._superseded:
                self._superseded.discard(frame_id)
                raise FrameSuperseded(frame_id) from None
            raise
        finally:
            if self._inflight is not None and self._inflight[1] is task:
                self._inflight = None

    def process(self, image: ImageArray, overrides: Optional[Mapping[str, Any]] = None) -> FrameResult:
        """Synchronous `detect` for callers without an event loop."""
        return asyncio.run(self.detect(image, overrides))

    def __call__(self, image: ImageArray, overrides: Optional[Mapping[str, Any]] = None) -> FrameResult:
        return self.process(image, overrides)

    @staticmethod
    def similarity(embedding1: Sequence[float], embedding2: Sequence[float]) -> float:
        """Similarity in [0, 1] of two face descriptors; 0 when they cannot be compared."""
        if len(embedding1) == 0 or len(embedding1) != len(embedding2):
            return 0.0
        a = np.asarray(embedding1, dtype=np.float64)
        b = np.asarray(embedding2, dtype=np.float64)
        distance = SIMILARITY_ORDER * float(np.sqrt(np.sum((a - b) ** 2)))
        return max(math.trunc(1000 * (1 - distance)) / 1000, 0.0)
