from . import media_stream
from .timer import Timer

__all__ = [
    "media_stream",
    "Timer",
]
