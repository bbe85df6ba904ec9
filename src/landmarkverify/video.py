"""Recorded camera video as a frame source sampled at the capture interval."""

from collections.abc import Iterator
from pathlib import Path

import cv2
import numpy as np

from .models import VideoInfo


class VideoFrameSource:
    """Reads a camera recording and yields RGB frames at a fixed capture cadence."""

    def __init__(
        self,
        video_path: Path,
        capture_interval_s: float = 2.0,
        max_seconds: float | None = None,
    ):
        """Initialize video frame source.

        Args:
            video_path: Path to video file
            capture_interval_s: Seconds of video time between captured frames
            max_seconds: Stop after this many seconds of video (None = whole video)
        """
        if capture_interval_s <= 0:
            msg = f"capture_interval_s must be positive, got {capture_interval_s}"
            raise ValueError(msg)

        self.video_path = Path(video_path)
        self.capture_interval_s = capture_interval_s
        self.max_seconds = max_seconds

        # Get video info
        self.video_info = self._get_video_info()

    def _get_video_info(self) -> VideoInfo:
        """Extract video information.

        Returns:
            VideoInfo with fps, total_frames, width, height
        """
        cap = self.open()

        fps = cap.get(cv2.CAP_PROP_FPS)
        total_frames = int(cap.get(cv2.CAP_PROP_FRAME_COUNT))
        width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))

        cap.release()

        if self.max_seconds is not None and fps > 0:
            total_frames = min(total_frames, int(self.max_seconds * fps))

        return VideoInfo(
            fps=fps,
            total_frames=total_frames,
            width=width,
            height=height,
        )

    def open(self) -> cv2.VideoCapture:
        """Open video for reading.

        Returns:
            OpenCV VideoCapture object
        """
        cap = cv2.VideoCapture(str(self.video_path))
        if not cap.isOpened():
            raise ValueError(f"Could not open video: {self.video_path}")
        return cap

    def get_info(self) -> VideoInfo:
        return self.video_info

    def frame_step(self) -> int:
        """Number of video frames between two captures (at least 1)."""
        fps = self.video_info.fps
        if fps <= 0:
            return 1
        return max(1, round(self.capture_interval_s * fps))

    def iter_frames(self) -> Iterator[tuple[int, float, np.ndarray]]:
        """Yield (frame_index, timestamp_s, rgb_frame) once per capture interval.

        Frames in between are grabbed without decoding.
        """
        step = self.frame_step()
        fps = self.video_info.fps
        total = self.video_info.total_frames

        cap = self.open()
        try:
            frame_index = 0
            while total <= 0 or frame_index < total:
                if frame_index % step == 0:
                    ok, frame = cap.read()
                    if not ok:
                        break
                    timestamp = frame_index / fps if fps > 0 else 0.0
                    yield frame_index, timestamp, self.frame_to_rgb(frame)
                elif not cap.grab():
                    break
                frame_index += 1
        finally:
            cap.release()

    @staticmethod
    def frame_to_rgb(frame: np.ndarray) -> np.ndarray:
        """Convert a BGR frame from cv2 to RGB."""
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
