"""Frame loop controller.

Single-owner state machine for the try-on session. Every transition (tick,
manual adjustment, model load, camera toggle, feedback, advisor completion)
runs on the loop thread; the fit advisor call itself runs on a dispatcher
worker and its completion is delivered back through ``pump``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import time
from typing import Any, Callable, Optional, Protocol, Union

from .camera import CameraState
from .dispatch import Dispatcher, ThreadedDispatcher
from .errors import (
    AdjustmentError,
    AdjustmentTransportFailure,
    AdjustmentValidationFailure,
    DetectionUnavailable,
    GarmentLoadError,
)
from .fit_advisor import FitAdvisor
from .garment import load_garment
from .models import (
    DEFAULT_FRAME_HEIGHT,
    DEFAULT_FRAME_WIDTH,
    DEFAULT_PARAMETERS,
    AdjustmentRequest,
    FitAdvice,
    GarmentModel,
    LandmarkFrame,
    ModelParameters,
    VideoFrame,
)
from .notices import NoticeBoard


class LandmarkSource(Protocol):
    @property
    def ready(self) -> bool: ...

    @property
    def error(self) -> Optional[Exception]: ...

    def initialize(self) -> None: ...

    def detect(self, frame: Any, timestamp_ms: float) -> Optional[LandmarkFrame]: ...


class Camera(Protocol):
    state: CameraState
    status_message: str

    def connect(self) -> Any: ...

    def disconnect(self) -> Any: ...

    def read_frame(self) -> VideoFrame: ...


class TickOutcome(str, Enum):
    SKIPPED_DISABLED = "skipped_disabled"
    SKIPPED_NOT_READY = "skipped_not_ready"
    SKIPPED_NO_FRAME = "skipped_no_frame"
    SKIPPED_STALE_FRAME = "skipped_stale_frame"
    SKIPPED_DETECTION = "skipped_detection"
    NO_PERSON = "no_person"
    DETECTED = "detected"
    ADJUSTMENT_DISPATCHED = "adjustment_dispatched"


@dataclass
class ControllerState:
    camera_enabled: bool = False
    last_frame_timestamp: Optional[float] = None
    adjustment_in_flight: bool = False
    current_parameters: ModelParameters = DEFAULT_PARAMETERS
    current_landmarks: Optional[LandmarkFrame] = None
    initializing: bool = False
    init_error: Optional[str] = None
    garment: Optional[GarmentModel] = None
    feedback: Optional[str] = None
    last_reasoning: str = ""
    model_generation: int = 0
    auto_adjust: bool = True
    frame_width: int = 0
    frame_height: int = 0


@dataclass(frozen=True)
class ControllerSnapshot:
    camera_enabled: bool
    adjustment_in_flight: bool
    current_parameters: ModelParameters
    current_landmarks: Optional[LandmarkFrame]
    initializing: bool
    init_error: Optional[str]
    landmarks_ready: bool
    garment: Optional[GarmentModel]
    feedback: Optional[str]
    last_reasoning: str
    auto_adjust: bool
    frame_width: int
    frame_height: int

    @property
    def pose_detected(self) -> bool:
        return self.current_landmarks is not None

    @property
    def can_adjust(self) -> bool:
        return (
            self.camera_enabled
            and self.garment is not None
            and self.current_landmarks is not None
            and not self.adjustment_in_flight
            and not self.initializing
        )


StateSubscriber = Callable[[ControllerSnapshot], None]
GarmentLoader = Callable[[Union[str, Any]], GarmentModel]


class FrameLoopController:
    def __init__(
        self,
        landmark_source: LandmarkSource,
        fit_advisor: FitAdvisor,
        camera: Camera,
        dispatcher: Optional[Dispatcher] = None,
        notices: Optional[NoticeBoard] = None,
        auto_adjust: bool = True,
        garment_loader: GarmentLoader = load_garment,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.landmark_source = landmark_source
        self.fit_advisor = fit_advisor
        self.camera = camera
        self.dispatcher = dispatcher or ThreadedDispatcher()
        self.notices = notices or NoticeBoard()
        self.garment_loader = garment_loader
        self._clock = clock
        self._state = ControllerState(auto_adjust=bool(auto_adjust))
        self._subscribers: dict[int, StateSubscriber] = {}
        self._next_subscriber_id = 1

    # -- observation -------------------------------------------------------

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def camera_enabled(self) -> bool:
        return self._state.camera_enabled

    def snapshot(self) -> ControllerSnapshot:
        st = self._state
        return ControllerSnapshot(
            camera_enabled=st.camera_enabled,
            adjustment_in_flight=st.adjustment_in_flight,
            current_parameters=st.current_parameters,
            current_landmarks=st.current_landmarks,
            initializing=st.initializing,
            init_error=st.init_error,
            landmarks_ready=self._landmarks_ready(),
            garment=st.garment,
            feedback=st.feedback,
            last_reasoning=st.last_reasoning,
            auto_adjust=st.auto_adjust,
            frame_width=st.frame_width,
            frame_height=st.frame_height,
        )

    def subscribe(self, callback: StateSubscriber, emit_initial: bool = True) -> int:
        token = self._next_subscriber_id
        self._next_subscriber_id += 1
        self._subscribers[token] = callback
        if emit_initial:
            callback(self.snapshot())
        return token

    def unsubscribe(self, token: int) -> None:
        self._subscribers.pop(token, None)

    def _emit(self) -> None:
        snapshot = self.snapshot()
        for callback in list(self._subscribers.values()):
            try:
                callback(snapshot)
            except Exception as exc:
                self.notices.log("WARNING", f"State subscriber failed: {exc}")

    # -- lifecycle ---------------------------------------------------------

    def start(self) -> None:
        """Kick off landmark source loading. Camera control stays locked until it resolves."""
        if self._landmarks_ready():
            return
        self._state.initializing = True
        self._state.init_error = None
        self.notices.log("INFO", "event=landmark_source_initialize")
        self.landmark_source.initialize()
        self._poll_initialization()
        self._emit()

    def shutdown(self) -> None:
        self.set_camera_enabled(False)
        self.dispatcher.close()
        close = getattr(self.landmark_source, "close", None)
        if callable(close):
            close()

    def pump(self) -> None:
        """Deliver finished advisor calls and pick up landmark source readiness."""
        self._poll_initialization()
        self.dispatcher.drain()

    def _landmarks_ready(self) -> bool:
        return bool(self.landmark_source.ready)

    def _poll_initialization(self) -> None:
        st = self._state
        if not st.initializing:
            return
        if self._landmarks_ready():
            st.initializing = False
            self.notices.post("Pose detection ready", "Webcam can now be enabled.")
            self._emit()
            return
        error = self.landmark_source.error
        if error is not None:
            st.initializing = False
            st.init_error = str(error)
            self.notices.post("Initialization Error", "Could not initialize pose detection.", variant="destructive")
            self.notices.log("ERROR", f"Landmark source failed: {error}")
            self._emit()

    # -- frame loop --------------------------------------------------------

    def tick(self) -> TickOutcome:
        self.pump()
        st = self._state
        if not st.camera_enabled:
            return TickOutcome.SKIPPED_DISABLED
        if not self._landmarks_ready():
            return TickOutcome.SKIPPED_NOT_READY

        frame = self.camera.read_frame()
        if self.camera.state == CameraState.ERROR:
            self._camera_failed()
            return TickOutcome.SKIPPED_NO_FRAME
        if frame.image is None:
            return TickOutcome.SKIPPED_NO_FRAME
        if self._is_stale(frame):
            return TickOutcome.SKIPPED_STALE_FRAME

        st.last_frame_timestamp = frame.timestamp
        st.frame_width = int(frame.width)
        st.frame_height = int(frame.height)
        try:
            landmarks = self.landmark_source.detect(frame.image, self._clock() * 1000.0)
        except DetectionUnavailable as exc:
            self.notices.log("WARNING", f"Detection skipped: {exc}")
            return TickOutcome.SKIPPED_DETECTION

        st.current_landmarks = landmarks
        if landmarks is None:
            self._emit()
            return TickOutcome.NO_PERSON
        if st.auto_adjust and st.garment is not None and not st.adjustment_in_flight:
            self._dispatch_adjustment(manual=False)
            return TickOutcome.ADJUSTMENT_DISPATCHED
        self._emit()
        return TickOutcome.DETECTED

    def _is_stale(self, frame: VideoFrame) -> bool:
        # Same source timestamp as the previous tick: the source has not advanced.
        last = self._state.last_frame_timestamp
        return frame.timestamp is not None and last is not None and frame.timestamp == last

    # -- adjustments -------------------------------------------------------

    def request_manual_adjustment(self) -> bool:
        self.pump()
        st = self._state
        if st.adjustment_in_flight:
            self.notices.post("Please wait", "A fit adjustment is already in progress.")
            return False
        if st.initializing or not self._landmarks_ready():
            self.notices.post("Please wait", "Pose detection is still initializing.")
            return False
        if not st.camera_enabled or st.garment is None or st.current_landmarks is None:
            self.notices.post("Cannot adjust", "Enable webcam, load a model, and ensure pose is detected.")
            return False
        self._dispatch_adjustment(manual=True)
        return True

    def build_request(self) -> Optional[AdjustmentRequest]:
        st = self._state
        if st.current_landmarks is None:
            return None
        return AdjustmentRequest(
            keypoints=st.current_landmarks,
            current_parameters=st.current_parameters,
            frame_width=st.frame_width or DEFAULT_FRAME_WIDTH,
            frame_height=st.frame_height or DEFAULT_FRAME_HEIGHT,
            feedback=st.feedback,
        )

    def _dispatch_adjustment(self, manual: bool) -> None:
        st = self._state
        request = self.build_request()
        if request is None:
            return
        generation = st.model_generation
        advisor = self.fit_advisor

        def _call() -> FitAdvice:
            return advisor.improve_fit(request)

        def _done(result: Any, error: Optional[BaseException]) -> None:
            self._on_adjustment_done(result, error, request, generation, manual)

        st.adjustment_in_flight = True
        self.notices.log("INFO", f"event=adjustment_dispatched manual={manual} generation={generation}")
        try:
            self.dispatcher.submit(_call, _done)
        except RuntimeError as exc:
            st.adjustment_in_flight = False
            self.notices.log("ERROR", f"Could not dispatch adjustment: {exc}")
        self._emit()

    def _on_adjustment_done(
        self,
        result: Any,
        error: Optional[BaseException],
        request: AdjustmentRequest,
        generation: int,
        manual: bool,
    ) -> None:
        st = self._state
        st.adjustment_in_flight = False
        if error is not None and not isinstance(error, Exception):
            self._emit()
            raise error
        if error is None and not isinstance(result, FitAdvice):
            error = AdjustmentValidationFailure(f"Fit advisor returned {type(result).__name__}, expected FitAdvice.")

        if error is not None:
            if not isinstance(error, AdjustmentError):
                error = AdjustmentTransportFailure(f"Unexpected fit advisor failure: {error!r}")
            kind = "validation" if isinstance(error, AdjustmentValidationFailure) else "transport"
            self.notices.log("ERROR", f"Adjustment failed kind={kind}: {error}")
            description = "Could not re-adjust model fit." if manual else "Could not adjust model fit."
            self.notices.post("AI Error", description, variant="destructive")
        elif generation != st.model_generation or st.garment is None:
            self.notices.log(
                "INFO",
                f"Discarded adjustment for model generation {generation} (current {st.model_generation}).",
            )
            if manual:
                self.notices.post("Adjustment Discarded", "The model changed while the fit was being adjusted.")
        else:
            st.current_parameters = result.updated_parameters
            st.last_reasoning = result.reasoning
            if request.feedback is not None and st.feedback == request.feedback:
                st.feedback = None
            self.notices.log("INFO", f"Applied parameters {result.updated_parameters.to_dict()}")
            if manual:
                self.notices.post("Model Re-Adjusted", "AI has updated the model fit based on current pose.")
        self._emit()

    # -- presentation commands ---------------------------------------------

    def set_camera_enabled(self, enabled: bool) -> bool:
        self.pump()
        st = self._state
        if not enabled:
            if st.camera_enabled or self.camera.state != CameraState.DISCONNECTED:
                self.camera.disconnect()
            st.camera_enabled = False
            st.current_landmarks = None
            st.last_frame_timestamp = None
            self._emit()
            return False

        if st.camera_enabled:
            return True
        if st.init_error is not None:
            self.notices.post("Initialization Error", st.init_error, variant="destructive")
            return False
        if st.initializing or not self._landmarks_ready():
            self.notices.post("Please wait", "Pose detection is still initializing.")
            return False

        self.camera.connect()
        if self.camera.state != CameraState.STREAMING:
            st.camera_enabled = False
            self.notices.post("Webcam Error", self.camera.status_message or "Could not access webcam.", variant="destructive")
            self._emit()
            return False
        st.camera_enabled = True
        st.last_frame_timestamp = None
        self._emit()
        return True

    def toggle_camera(self) -> bool:
        return self.set_camera_enabled(not self._state.camera_enabled)

    def _camera_failed(self) -> None:
        st = self._state
        st.camera_enabled = False
        st.current_landmarks = None
        st.last_frame_timestamp = None
        self.notices.post("Webcam Error", self.camera.status_message or "Webcam disconnected.", variant="destructive")
        self._emit()

    def load_model(self, ref: Union[str, Any]) -> Optional[GarmentModel]:
        try:
            garment = self.garment_loader(ref)
        except GarmentLoadError as exc:
            self.notices.post("Model Error", str(exc), variant="destructive")
            return None
        st = self._state
        st.garment = garment
        st.current_parameters = DEFAULT_PARAMETERS
        st.last_reasoning = ""
        st.model_generation += 1
        self.notices.post("Model Loaded", f"{garment.name} is ready.")
        self._emit()
        return garment

    def provide_feedback(self, text: Optional[str]) -> None:
        cleaned = (text or "").strip()
        self._state.feedback = cleaned or None
        self.notices.log("INFO", f"event=feedback value={cleaned!r}")
        self._emit()

    def set_auto_adjust(self, enabled: bool) -> None:
        self._state.auto_adjust = bool(enabled)
        self._emit()
