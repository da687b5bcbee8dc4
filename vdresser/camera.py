from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
import traceback
from typing import Any, Callable, Optional, Union

from .models import VideoFrame
from .notices import NoticeBoard
from .vision.source import open_source


class CameraState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    STREAMING = "STREAMING"
    ERROR = "ERROR"


@dataclass(frozen=True)
class CameraSnapshot:
    state: CameraState
    device: Union[int, str, None]
    status_message: str
    technical_details: str


SourceFactory = Callable[..., Any]
WebcamNodesProvider = Callable[[], list[Path]]


def _default_webcam_nodes_provider() -> list[Path]:
    return sorted(Path("/dev").glob("video*"))


class CameraManager:
    def __init__(
        self,
        camera: Union[int, str, None] = 0,
        width: int = 640,
        height: int = 480,
        fps: int = 30,
        source_factory: SourceFactory = open_source,
        webcam_nodes_provider: WebcamNodesProvider = _default_webcam_nodes_provider,
        notices: Optional[NoticeBoard] = None,
        lost_frame_limit: int = 20,
    ) -> None:
        self.camera = camera
        self.width = int(width)
        self.height = int(height)
        self.fps = int(fps)
        self.source_factory = source_factory
        self.webcam_nodes_provider = webcam_nodes_provider
        self.notices = notices or NoticeBoard(echo=False)

        self._source = None
        self._lost_frame_limit = max(1, int(lost_frame_limit))
        self._empty_frame_count = 0
        self.last_frame: Optional[VideoFrame] = None

        self.state = CameraState.DISCONNECTED
        self.status_message = "Webcam off."
        self.technical_details = ""

    @property
    def streaming(self) -> bool:
        return self.state == CameraState.STREAMING and self._source is not None

    def snapshot(self) -> CameraSnapshot:
        return CameraSnapshot(
            state=self.state,
            device=self.camera,
            status_message=self.status_message,
            technical_details=self.technical_details,
        )

    def connect(self) -> CameraSnapshot:
        self.notices.log("INFO", f"event=camera_connect device={self.camera!r}")
        if self.streaming:
            return self.snapshot()
        self.state = CameraState.CONNECTING
        self.status_message = "Connecting to webcam..."
        self.technical_details = ""
        try:
            self._source = self._open_with_fallback()
            self._empty_frame_count = 0
            self.state = CameraState.STREAMING
            self.status_message = "Webcam stream active."
            self.notices.log("INFO", f"state={self.state.value} device={self.camera!r}")
        except Exception as exc:
            self._source = None
            self._set_connect_error(exc, traceback.format_exc())
        return self.snapshot()

    def disconnect(self) -> CameraSnapshot:
        self.notices.log("INFO", f"event=camera_disconnect device={self.camera!r}")
        self._disconnect_source()
        self.state = CameraState.DISCONNECTED
        self.status_message = "Webcam off."
        self.technical_details = ""
        return self.snapshot()

    def device_lost(self, reason: str, details: str = "") -> CameraSnapshot:
        self.notices.log("ERROR", f"event=device_lost device={self.camera!r} reason={reason}")
        self._disconnect_source()
        self.state = CameraState.ERROR
        self.status_message = "Webcam disconnected. Reconnect it and enable the webcam again."
        self.technical_details = f"{reason}\n{details}".strip()
        return self.snapshot()

    def read_frame(self) -> VideoFrame:
        if not self.streaming:
            return VideoFrame(image=None, timestamp=None)
        try:
            frame = self._source.read()
        except Exception:
            self.device_lost("Read failed while streaming.", details=traceback.format_exc())
            return VideoFrame(image=None, timestamp=None)

        if frame.image is None:
            self._empty_frame_count += 1
            if self._empty_frame_count >= self._lost_frame_limit:
                self.device_lost("No frames received from the webcam.")
            return frame
        self._empty_frame_count = 0
        self.last_frame = frame
        return frame

    def _candidates(self) -> list[Union[int, str]]:
        candidates: list[Union[int, str]] = []
        seen: set[str] = set()

        def _add(value: Union[int, str, None]) -> None:
            if value in (None, ""):
                return
            candidate: Union[int, str] = int(value) if isinstance(value, str) and value.isdigit() else value
            key = f"{type(candidate).__name__}:{candidate}"
            if key in seen:
                return
            seen.add(key)
            candidates.append(candidate)

        _add(self.camera)
        # Explicit files and device paths are not second-guessed.
        if isinstance(self.camera, str) and not self.camera.isdigit():
            return candidates
        for node in self.webcam_nodes_provider():
            _add(str(node))
        return candidates or [0]

    def _open_with_fallback(self):
        errors: list[str] = []
        candidates = self._candidates()
        for candidate in candidates:
            source = self.source_factory(device=candidate, width=self.width, height=self.height, fps=self.fps)
            try:
                source.start()
                self.camera = candidate
                self.notices.log("INFO", f"Webcam stream opened with camera={candidate!r}")
                return source
            except Exception as exc:
                errors.append(f"{candidate!r}: {exc}")
                self.notices.log("WARNING", f"Webcam candidate failed camera={candidate!r}: {exc}")
                try:
                    source.stop()
                except Exception:
                    pass
        tried_text = ", ".join(str(c) for c in candidates)
        raise RuntimeError(
            "OpenCV could not open the webcam from the available candidates. "
            f"Tried: {tried_text}. " + "; ".join(errors)
        )

    def _disconnect_source(self) -> None:
        if self._source is not None:
            try:
                self._source.stop()
            except Exception as exc:
                self.notices.log("WARNING", f"Source stop failed: {exc}")
            finally:
                self._source = None
        self._empty_frame_count = 0
        self.last_frame = None

    def _set_connect_error(self, exc: Exception, details: str) -> None:
        self.state = CameraState.ERROR
        lower = str(exc).lower()
        if "permission" in lower or "denied" in lower:
            msg = "Webcam access denied. Grant camera access and try again."
        elif "could not open" in lower:
            msg = "Could not access webcam. Check --camera and that no other app is using it."
        else:
            msg = "No webcam detected or webcam connection failed."
        self.status_message = msg
        self.technical_details = details.strip() or str(exc)
        self.notices.log("ERROR", f"Connect failed for camera={self.camera!r}: {exc}")
