from pathlib import Path
from .config import (
    CameraStreamConfig,
    ImageDirectoryConfig,
    MediaStreamConfig,
    VideoStreamConfig,
)
from .media_stream import MediaStreamReader, CameraStreamReader, VideoStreamReader, ImageDirectoryReader


def create_media_stream_reader(config: MediaStreamConfig) -> MediaStreamReader:
    """Factory function to create MediaStreamReader based on configuration"""

    if config.type == "camera":
        assert config.camera
        return CameraStreamReader(config.camera.video_id)

    if config.type == "video":
        assert config.video
        return VideoStreamReader(config.video.video_path)

    if config.type == "directory":
        assert config.directory
        return ImageDirectoryReader(
            config.directory.image_dir,
            sort_method=config.directory.sort_method,
            fps=config.directory.fps,
        )

    raise ValueError(f"Unknown stream type: {config.type}")


def parse_source(source: str) -> MediaStreamConfig:
    """Builds a stream config from a command-line source string.

    `camera:<index>` opens a camera, an existing directory reads its images,
    anything else is treated as a video file path.
    """
    if source.startswith("camera:"):
        video_id = int(source.split(":", 1)[1])
        return MediaStreamConfig(type="camera", camera=CameraStreamConfig(video_id=video_id))
    if Path(source).is_dir():
        return MediaStreamConfig(type="directory", directory=ImageDirectoryConfig(image_dir=source))
    return MediaStreamConfig(type="video", video=VideoStreamConfig(video_path=source))
