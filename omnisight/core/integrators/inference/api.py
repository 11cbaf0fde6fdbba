from abc import ABC, abstractmethod
from typing import Any

from omnisight.core.dtypes.media import ImageArray


class InferenceBackend(ABC):
    """Runs one model on one image or image region.

    Implementations raise `InferenceError` when the model cannot be loaded or
    the invocation fails. `infer` is the only place the scheduling core
    suspends.
    """

    @abstractmethod
    async def infer(self, model_id: str, data: ImageArray) -> Any:
        pass

    @abstractmethod
    def __enter__(self):
        pass

    @abstractmethod
    def __exit__(self, exc_type, exc_val, exc_tb):
        pass
