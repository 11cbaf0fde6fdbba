from typing import List, NamedTuple, Tuple
import numpy as np


class OnnxOutput(NamedTuple):
    """Raw session outputs plus the factors mapping model-input pixels back to the source region."""
    outputs: List[np.ndarray]
    scale: Tuple[float, float]  # (x, y)

    @property
    def first(self) -> np.ndarray:
        return self.outputs[0] if self.outputs else np.zeros((0,), dtype=np.float32)
