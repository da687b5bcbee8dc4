"""Video sources.

Supported backends:
- OpenCV capture for webcams (index or /dev/video* path).
- OpenCV capture for video files (replay at the file's own frame times).
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
import time
from typing import Optional, Protocol, Union

import cv2

from ..models import VideoFrame


class FrameSource(Protocol):
    def start(self) -> None: ...

    def read(self) -> VideoFrame: ...

    def stop(self) -> None: ...


def _is_video_file(device: Union[int, str]) -> bool:
    return isinstance(device, str) and not device.startswith("/dev/video") and Path(device).is_file()


def open_source(
    device: Union[int, str, None],
    width: int = 640,
    height: int = 480,
    fps: int = 30,
) -> FrameSource:
    if device is None:
        raise ValueError("A camera index, device path or video file is required.")
    if isinstance(device, str) and device.isdigit():
        device = int(device)
    if _is_video_file(device):
        return VideoFileSource(path=str(device))
    return WebcamSource(device=device, width=width, height=height, fps=fps)


@dataclass
class WebcamSource:
    # Accept either an integer index (0, 1, 2, ...) or a Linux device path
    # such as /dev/video2.
    device: Union[int, str] = 0
    width: int = 640
    height: int = 480
    fps: int = 30

    _cap: Optional[cv2.VideoCapture] = None
    _frame_id: int = 0

    def start(self) -> None:
        cap: Optional[cv2.VideoCapture] = None
        allow_cap_any = os.environ.get("VDRESSER_V4L2_CAP_ANY_FALLBACK", "").strip() == "1"
        backend = cv2.CAP_V4L2 if os.name == "posix" and hasattr(cv2, "CAP_V4L2") else cv2.CAP_ANY

        def _try(dev: Union[int, str], api: Optional[int] = None) -> bool:
            nonlocal cap
            cap = cv2.VideoCapture(dev) if api is None else cv2.VideoCapture(dev, api)
            ok = cap.isOpened()
            if not ok:
                cap.release()
                cap = None
            return ok

        if isinstance(self.device, str) and self.device.startswith("/dev/video"):
            suffix = self.device.replace("/dev/video", "")
            if not (suffix.isdigit() and _try(int(suffix), backend)):
                _try(self.device, backend)
        else:
            _try(self.device, backend)
        if cap is None and (allow_cap_any or backend == cv2.CAP_ANY):
            _try(self.device)

        if cap is None:
            raise RuntimeError(
                "OpenCV could not open the camera. Try a different --camera value (e.g. 1, 2, 3) "
                "or a device path like /dev/video2. Also check camera permission and that no other app is using it."
            )

        cap.set(cv2.CAP_PROP_FRAME_WIDTH, float(self.width))
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, float(self.height))
        cap.set(cv2.CAP_PROP_FPS, float(self.fps))
        self._cap = cap

    def read(self) -> VideoFrame:
        if self._cap is None:
            return VideoFrame(image=None, timestamp=None, width=self.width, height=self.height, frame_id=self._frame_id)
        ok, frame = self._cap.read()
        if not ok or frame is None:
            return VideoFrame(image=None, timestamp=None, width=self.width, height=self.height, frame_id=self._frame_id)
        self._frame_id += 1
        h, w = frame.shape[:2]
        return VideoFrame(image=frame, timestamp=time.monotonic(), width=int(w), height=int(h), frame_id=self._frame_id)

    def stop(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None


@dataclass
class VideoFileSource:
    path: str
    loop: bool = False

    _cap: Optional[cv2.VideoCapture] = None
    _frame_id: int = 0

    def start(self) -> None:
        cap = cv2.VideoCapture(self.path)
        if not cap.isOpened():
            cap.release()
            raise RuntimeError(f"OpenCV could not open the video file: {self.path}")
        self._cap = cap

    def read(self) -> VideoFrame:
        if self._cap is None:
            return VideoFrame(image=None, timestamp=None, frame_id=self._frame_id)
        ok, frame = self._cap.read()
        if (not ok or frame is None) and self.loop:
            self._cap.set(cv2.CAP_PROP_POS_FRAMES, 0)
            ok, frame = self._cap.read()
        if not ok or frame is None:
            return VideoFrame(image=None, timestamp=None, frame_id=self._frame_id)
        self._frame_id += 1
        ts = float(self._cap.get(cv2.CAP_PROP_POS_MSEC)) / 1000.0
        h, w = frame.shape[:2]
        return VideoFrame(image=frame, timestamp=ts, width=int(w), height=int(h), frame_id=self._frame_id)

    def stop(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None
