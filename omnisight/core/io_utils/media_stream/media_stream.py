from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Iterator, List, Literal, Optional, Union
from pathlib import Path
import logging
import re
import time

import cv2

from omnisight.core.dtypes.media import ImageArray

LOGGER = logging.getLogger(__name__)


class TimestampManager:
    def __init__(self, max_history: int = 60):
        self.timestamps: List[float] = []
        self.max_history = max_history
        self.start_time: Optional[float] = None

    def add_timestamp(self) -> None:
        self.timestamps.append(time.time())
        if len(self.timestamps) > self.max_history:
            self.timestamps.pop(0)

    def set_start_time(self) -> None:
        self.start_time = time.time()

    def get_current_time(self) -> float:
        return 0.0 if self.start_time is None else time.time() - self.start_time

    def calculate_fps(self) -> float:
        if len(self.timestamps) < 2: return 0.0
        durations = [t2 - t1 for t1, t2 in zip(self.timestamps, self.timestamps[1:])]
        avg_duration = sum(durations) / len(durations)
        return 1.0 / avg_duration if avg_duration > 0 else 0.0


class MediaStreamReader(ABC):
    """Iterates BGR frames from one source.

    `is_video` tells the session whether consecutive frames are temporally
    related; detection reuse only makes sense when they are.
    """

    @abstractmethod
    def __enter__(self) -> MediaStreamReader: pass

    @abstractmethod
    def __exit__(self, *args) -> Optional[bool]: pass

    @abstractmethod
    def __iter__(self) -> Iterator[ImageArray]: pass

    @property
    @abstractmethod
    def fps(self) -> float: pass

    @property
    @abstractmethod
    def current_time(self) -> float: pass

    @property
    @abstractmethod
    def is_video(self) -> bool: pass


class CameraStreamReader(MediaStreamReader):
    def __init__(self, video_id: int):
        self.video_id = video_id
        self.cap: Optional[cv2.VideoCapture] = None
        self._timestamp_mgr = TimestampManager()

    def __enter__(self):
        self.cap = cv2.VideoCapture(self.video_id)
        if not self.cap.isOpened():
            raise ValueError(f"Cannot open camera {self.video_id}")
        LOGGER.info("Camera %s opened", self.video_id)
        return self

    def __exit__(self, *args):
        if self.cap:
            self.cap.release()
            self.cap = None

    def __iter__(self):
        if not self.cap: return
        self._timestamp_mgr.set_start_time()
        while True:
            ret, frame = self.cap.read()
            if not ret: break
            self._timestamp_mgr.add_timestamp()
            yield frame

    @property
    def current_time(self) -> float:
        return self._timestamp_mgr.get_current_time()

    @property
    def fps(self) -> float:
        return self._timestamp_mgr.calculate_fps()

    @property
    def is_video(self) -> bool:
        return True


class VideoStreamReader(MediaStreamReader):
    def __init__(self, video_path: str):
        self.video_path = Path(video_path)
        self.current_frame_index: Optional[int] = None
        self.cap: Optional[cv2.VideoCapture] = None

    def __enter__(self):
        if not self.video_path.exists():
            raise ValueError(f"Video file not found: {self.video_path}")
        self.cap = cv2.VideoCapture(str(self.video_path))
        if not self.cap.isOpened():
            raise ValueError(f"Failed to open video: {self.video_path}")
        LOGGER.info("Video %s opened (%.1f fps)", self.video_path.name, self.fps)
        return self

    def __exit__(self, *args):
        if self.cap:
            self.cap.release()
            self.cap = None

    @property
    def fps(self) -> float:
        return self.cap.get(cv2.CAP_PROP_FPS) if self.cap else 0.0

    @property
    def current_time(self) -> float:
        if self.current_frame_index is None: return 0.0
        return self.current_frame_index / self.fps if self.fps > 0 else 0.0

    @property
    def is_video(self) -> bool:
        return True

    def __iter__(self):
        assert self.cap
        frame_idx = 0
        while True:
            ret, frame = self.cap.read()
            if not ret: break
            self.current_frame_index = frame_idx
            yield frame
            frame_idx += 1


class ImageDirectoryReader(MediaStreamReader):
    _IMAGE_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.bmp', '.tiff', '.tif', '.webp'}
    SORT_METHOD = Literal["natural", "name", "time"]

    def __init__(self, image_dir: str, sort_method: SORT_METHOD = "natural", fps: float = 1.0):
        self.image_dir = Path(image_dir)
        if not self.image_dir.exists(): raise ValueError(f"Image directory not found: {image_dir}")
        if not self.image_dir.is_dir(): raise ValueError(f"Path is not a directory: {image_dir}")

        self.image_paths = self.generate_image_paths(sort_method)
        if not self.image_paths: raise ValueError(f"No image files found in directory: {image_dir}")

        self._fps = fps
        self.current_frame_index: Optional[int] = None

    def __enter__(self): return self
    def __exit__(self, *args): pass

    def generate_image_paths(self, sort_method: SORT_METHOD) -> List[Path]:
        image_paths = [
            p for p in self.image_dir.iterdir()
            if p.is_file() and p.suffix.lower() in self._IMAGE_EXTENSIONS
        ]

        if sort_method == "natural":
            def natural_sort_key(path: Path) -> List[Union[str, int]]:
                """frame1, frame2, frame10 rather than frame1, frame10, frame2"""
                parts: List[Union[str, int]] = []
                for part in re.split(r'(\d+)', path.stem):
                    if part.isdigit(): parts.append(int(part))
                    else: parts.append(part.lower())
                return parts
            image_paths.sort(key=natural_sort_key)
        elif sort_method == "name":
            image_paths.sort(key=lambda p: p.name.lower())
        elif sort_method == "time":
            image_paths.sort(key=lambda p: p.stat().st_mtime)

        return image_paths

    @property
    def fps(self) -> float: return self._fps

    @property
    def current_time(self) -> float:
        if self.current_frame_index is None: return 0.0
        return self.current_frame_index / self._fps

    @property
    def is_video(self) -> bool:
        return False

    def __iter__(self):
        for frame_idx, image_path in enumerate(self.image_paths):
            frame = cv2.imread(str(image_path))
            if frame is None:
                LOGGER.warning("Failed to load image: %s", image_path)
                continue
            self.current_frame_index = frame_idx
            yield frame
