import asyncio
import logging
from abc import ABC, abstractmethod
from typing import List, Sequence

from omnisight.core.dtypes import ROLE_ORDER
from omnisight.core.dtypes.media import FrameID, ImageArray
from .orchestrator import RolePipeline, RoleResult

LOGGER = logging.getLogger(__name__)


class ExecutionStrategy(ABC):
    """Runs the role pipelines of one frame.

    Either strategy lets every role finish before an unexpected exception is
    re-raised, and propagates cancellation unchanged.
    """

    @abstractmethod
    async def run(
        self,
        pipelines: Sequence[RolePipeline],
        image: ImageArray,
        frame_id: FrameID,
    ) -> List[RoleResult]:
        pass


class ConcurrentStrategy(ExecutionStrategy):
    async def run(self, pipelines, image, frame_id):
        outcomes = await asyncio.gather(
            *(pipeline.run(image, frame_id) for pipeline in pipelines),
            return_exceptions=True,
        )
        results: List[RoleResult] = []
        errors: List[BaseException] = []
        for pipeline, outcome in zip(pipelines, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                LOGGER.error(
                    "Frame %s: %s role raised unexpectedly",
                    frame_id, pipeline.role.value, exc_info=outcome,
                )
                errors.append(outcome)
                continue
            results.append(outcome)
        if errors:
            raise errors[0]
        return results


class SequentialStrategy(ExecutionStrategy):
    async def run(self, pipelines, image, frame_id):
        ordered = sorted(pipelines, key=lambda pipeline: ROLE_ORDER.index(pipeline.role))
        results: List[RoleResult] = []
        errors: List[Exception] = []
        for pipeline in ordered:
            try:
                results.append(await pipeline.run(image, frame_id))
            except Exception as e:
                LOGGER.exception("Frame %s: %s role raised unexpectedly", frame_id, pipeline.role.value)
                errors.append(e)
        if errors:
            raise errors[0]
        return results


def create_execution_strategy(async_mode: bool) -> ExecutionStrategy:
    return ConcurrentStrategy() if async_mode else SequentialStrategy()
