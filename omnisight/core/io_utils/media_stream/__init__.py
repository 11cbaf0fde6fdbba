from .factory import create_media_stream_reader, parse_source
from .config import (
    MediaStreamConfig,
    CameraStreamConfig,
    VideoStreamConfig,
    ImageDirectoryConfig,
)

# Core abstract class only
from .media_stream import MediaStreamReader

# Public API - factory pattern encouraged
__all__ = [
    "create_media_stream_reader",
    "parse_source",
    "MediaStreamConfig",
    "CameraStreamConfig",
    "VideoStreamConfig",
    "ImageDirectoryConfig",
    "MediaStreamReader",
]
