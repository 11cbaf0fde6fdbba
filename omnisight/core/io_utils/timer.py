import time
from typing import Optional

class Timer:
    """Context manager measuring wall time of a block in milliseconds."""

    def __init__(self):
        self.elapsed_ms: Optional[float] = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args):
        self.elapsed_ms = (time.perf_counter() - self.start_time) * 1000.0

    def get(self) -> float:
        return self.elapsed_ms if self.elapsed_ms else 0.0
