from dataclasses import dataclass
from typing import Literal, Optional
from pydantic.dataclasses import dataclass as pydantic_dataclass


@pydantic_dataclass
@dataclass
class CameraStreamConfig:
    video_id: int


@pydantic_dataclass
@dataclass
class VideoStreamConfig:
    video_path: str


@pydantic_dataclass
@dataclass
class ImageDirectoryConfig:
    image_dir: str
    sort_method: Literal["natural", "name", "time"] = "natural"
    fps: float = 1.0


@pydantic_dataclass
@dataclass
class MediaStreamConfig:
    type: Literal["camera", "video", "directory"]
    camera: Optional[CameraStreamConfig] = None
    video: Optional[VideoStreamConfig] = None
    directory: Optional[ImageDirectoryConfig] = None
