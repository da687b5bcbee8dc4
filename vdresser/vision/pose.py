from __future__ import annotations

import threading
from typing import Any, Optional

import numpy as np

from ..config import PoseConfig
from ..errors import DetectionUnavailable, InitializationFailure
from ..models import POSE_LANDMARK_COUNT, Keypoint, LandmarkFrame


class PoseLandmarkSource:
    """Mediapipe-based landmark source (one person, 33 keypoints).

    The backend is loaded on a background thread by ``initialize``; ``ready``
    flips once it can be used and ``error`` holds the failure otherwise.
    """

    def __init__(self, config: Optional[PoseConfig] = None) -> None:
        self.config = config or PoseConfig()
        self.mp: Any = None
        self._pose: Any = None
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()
        self._error: Optional[InitializationFailure] = None

    @property
    def ready(self) -> bool:
        return self._ready.is_set()

    @property
    def error(self) -> Optional[InitializationFailure]:
        return self._error

    @property
    def initializing(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def initialize(self, background: bool = True) -> None:
        if self.ready or self.initializing:
            return
        self._error = None
        if not background:
            self._load()
            return
        self._thread = threading.Thread(target=self._load, name="vdresser-pose-init", daemon=True)
        self._thread.start()

    def wait_ready(self, timeout: Optional[float] = None) -> bool:
        if self._thread is not None:
            self._thread.join(timeout)
        return self.ready

    def _load(self) -> None:
        try:
            # Lazy import so the package can be imported even if mediapipe isn't installed yet
            import mediapipe as mp
        except ModuleNotFoundError as exc:
            self._error = InitializationFailure(
                "Missing dependency: mediapipe. Install requirements with `pip install -e .`."
            )
            self._error.__cause__ = exc
            return

        # MediaPipe removed the legacy "Solutions" API from mediapipe>=0.10.30.
        if not hasattr(mp, "solutions"):
            self._error = InitializationFailure(
                "Your mediapipe package does not include the Solutions API (mp.solutions.*). "
                "Install a compatible version, e.g.:\n\n"
                "  pip install 'mediapipe<0.10.30'\n"
            )
            return

        try:
            pose = mp.solutions.pose.Pose(
                static_image_mode=False,
                model_complexity=self.config.model_complexity,
                enable_segmentation=False,
                min_detection_confidence=self.config.min_detection_confidence,
                min_tracking_confidence=self.config.min_tracking_confidence,
            )
        except Exception as exc:
            self._error = InitializationFailure(f"Could not initialize pose detection: {exc}")
            self._error.__cause__ = exc
            return

        with self._lock:
            self.mp = mp
            self._pose = pose
        self._ready.set()

    def detect(self, frame_bgr: np.ndarray, timestamp_ms: float) -> Optional[LandmarkFrame]:
        # The solutions tracker consumes frames in arrival order; the timestamp
        # is accepted for parity with video-mode detectors.
        del timestamp_ms
        if not self.ready:
            raise DetectionUnavailable("Pose detection is not ready.")
        frame_rgb = np.ascontiguousarray(frame_bgr[:, :, ::-1])
        frame_rgb.flags.writeable = False
        try:
            with self._lock:
                res = self._pose.process(frame_rgb)
        except Exception as exc:
            raise DetectionUnavailable(f"Pose detection failed: {exc}") from exc

        if res.pose_landmarks is None:
            return None
        points = res.pose_landmarks.landmark
        if len(points) != POSE_LANDMARK_COUNT:
            return None
        return tuple(
            Keypoint(
                x=float(p.x),
                y=float(p.y),
                z=float(p.z),
                visibility=float(getattr(p, "visibility", 0.0) or 0.0),
            )
            for p in points
        )

    def close(self) -> None:
        with self._lock:
            if self._pose is not None:
                self._pose.close()
                self._pose = None
        self._ready.clear()
