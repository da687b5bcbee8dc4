from __future__ import annotations

import json
from pathlib import Path
from typing import Optional, Union

import cv2
import numpy as np

from .camera import CameraManager
from .config import AppConfig
from .controller import ControllerSnapshot, FrameLoopController
from .fit_advisor import GeminiFitAdvisor
from .loop import FrameLoop
from .notices import NoticeBoard
from .vision.overlay import draw_pose_overlay, mirror_landmarks, placeholder_frame
from .vision.pose import PoseLandmarkSource


_TEXT_FONT = cv2.FONT_HERSHEY_TRIPLEX
_TEXT_COLOUR = (235, 235, 235)
_TEXT_ACCENT = (0, 230, 255)
_TEXT_OK = (80, 200, 80)
_TEXT_ERROR = (60, 60, 230)
_TEXT_BG = (8, 8, 10)

_FEEDBACK_KEYS = {
    ord("1"): "looser",
    ord("2"): "tighter",
}


def _draw_text_bg(img, x: int, y: int, w: int, h: int, pad: int = 6, alpha: float = 0.55) -> None:
    y0 = max(0, y - h - pad)
    x0 = max(0, x - pad)
    x1 = min(img.shape[1] - 1, x + w + pad)
    y1 = min(img.shape[0] - 1, y + pad)
    overlay = img.copy()
    cv2.rectangle(overlay, (x0, y0), (x1, y1), _TEXT_BG, -1)
    cv2.addWeighted(overlay, alpha, img, 1 - alpha, 0, img)


def _put_text(
    img,
    text,
    y,
    scale=0.55,
    colour=_TEXT_COLOUR,
    x: int = 12,
    bg: bool = True,
    thickness: int = 1,
):
    (tw, th), _ = cv2.getTextSize(text, _TEXT_FONT, scale, thickness)
    if bg:
        _draw_text_bg(img, x, y, tw, th)
    cv2.putText(img, text, (x, y), _TEXT_FONT, scale, colour, thickness, cv2.LINE_AA)


def status_line(snap: ControllerSnapshot) -> tuple[str, tuple[int, int, int]]:
    if snap.initializing:
        return "Initializing...", _TEXT_COLOUR
    if snap.init_error:
        return "Pose detection unavailable", _TEXT_ERROR
    if not snap.camera_enabled:
        return "Webcam off", _TEXT_COLOUR
    if snap.adjustment_in_flight:
        return "Adjusting fit...", _TEXT_ACCENT
    if snap.pose_detected:
        return "Pose Detected!", _TEXT_OK
    return "Searching for Pose...", _TEXT_COLOUR


def key_help(snap: ControllerSnapshot) -> str:
    adjust = "A adjust" if snap.can_adjust else "A adjust (unavailable)"
    return f"C webcam  {adjust}  L load  1 looser  2 tighter  0 clear  T auto  Q quit"


def _wrap(text: str, width: int = 70) -> list[str]:
    words = text.split()
    lines: list[str] = []
    cur = ""
    for word in words:
        if cur and len(cur) + 1 + len(word) > width:
            lines.append(cur)
            cur = word
        else:
            cur = f"{cur} {word}".strip()
    if cur:
        lines.append(cur)
    return lines


def render_frame(
    image: Optional[np.ndarray],
    snap: ControllerSnapshot,
    notices: list[str],
    width: int,
    height: int,
    mirror: bool = True,
) -> np.ndarray:
    if image is None or not snap.camera_enabled:
        out = placeholder_frame(width, height, "Press C to enable the webcam")
    else:
        out = cv2.flip(image, 1) if mirror else image.copy()
        landmarks = snap.current_landmarks
        if landmarks is not None:
            out = draw_pose_overlay(out, mirror_landmarks(landmarks) if mirror else landmarks)

    text, colour = status_line(snap)
    _put_text(out, text, 28, scale=0.65, colour=colour)

    model = snap.garment.name if snap.garment is not None else "none (L to load)"
    _put_text(out, f"Model: {model}", 56)
    p = snap.current_parameters
    _put_text(
        out,
        f"scale {p.scale:.2f}  rotY {p.rotation_y:.2f}  pos ({p.position_x:.2f}, {p.position_y:.2f}, {p.position_z:.2f})",
        82,
    )
    auto = "on" if snap.auto_adjust else "off"
    feedback = snap.feedback or "-"
    _put_text(out, f"Auto adjust: {auto}   Feedback: {feedback}", 108)

    y = 134
    for line in _wrap(snap.last_reasoning)[:3]:
        _put_text(out, line, y, scale=0.45, colour=(200, 200, 200))
        y += 20

    h = out.shape[0]
    ny = h - 40
    for line in reversed(notices[-3:]):
        _put_text(out, line, ny, scale=0.5, colour=_TEXT_ACCENT)
        ny -= 24
    _put_text(out, key_help(snap), h - 12, scale=0.42)
    return out


def build_controller(
    config: AppConfig,
    camera: Union[int, str, None] = None,
    notices: Optional[NoticeBoard] = None,
) -> FrameLoopController:
    notices = notices or NoticeBoard(log_path=config.log_path)
    cam = CameraManager(
        camera=config.camera.device if camera is None else camera,
        width=config.camera.width,
        height=config.camera.height,
        fps=config.camera.fps,
        notices=notices,
        lost_frame_limit=config.camera.lost_frame_limit,
    )
    advisor = GeminiFitAdvisor(config.advisor, api_key=config.resolved_api_key())
    if advisor.api_key is None:
        notices.post(
            "Fit advisor offline",
            f"Set {config.advisor.api_key_env} to enable AI fit adjustments. Auto adjust is off.",
        )
    return FrameLoopController(
        landmark_source=PoseLandmarkSource(config.pose),
        fit_advisor=advisor,
        camera=cam,
        notices=notices,
        auto_adjust=config.loop.auto_adjust and advisor.api_key is not None,
    )


def run_live(
    config: AppConfig,
    camera: Union[int, str, None] = None,
    model: Optional[str] = None,
    feedback: Optional[str] = None,
) -> None:
    notices = NoticeBoard(log_path=config.log_path)
    controller = build_controller(config, camera=camera, notices=notices)
    loop = FrameLoop(controller, poll_interval_s=config.loop.poll_interval_s)
    controller.start()
    if model:
        controller.load_model(model)
    if feedback:
        controller.provide_feedback(feedback)

    width, height = config.camera.width, config.camera.height
    window_name = "Virtual Dresser"
    cv2.namedWindow(window_name, cv2.WINDOW_NORMAL)
    cv2.resizeWindow(window_name, width, height)
    print("Virtual Dresser started. Press C to enable the webcam, Q to quit.")

    try:
        while True:
            if controller.camera_enabled:
                loop.step()
            else:
                controller.pump()

            visible = [n.text() for n in notices.recent(config.loop.notice_seconds)]

            frame = controller.camera.last_frame
            out = render_frame(
                frame.image if frame is not None else None,
                controller.snapshot(),
                visible,
                width,
                height,
                mirror=config.camera.mirror,
            )
            cv2.imshow(window_name, out)

            key = cv2.waitKey(1) & 0xFF
            if key in (ord("q"), ord("Q")):
                break
            if key in (ord("c"), ord("C")):
                controller.toggle_camera()
            if key in (ord("a"), ord("A")):
                controller.request_manual_adjustment()
            if key in (ord("l"), ord("L")):
                if model:
                    controller.load_model(model)
                else:
                    notices.post("No model selected", "Pass --model path/to/garment.glb")
            if key in _FEEDBACK_KEYS:
                controller.provide_feedback(_FEEDBACK_KEYS[key])
            if key == ord("0"):
                controller.provide_feedback(None)
            if key in (ord("t"), ord("T")):
                controller.set_auto_adjust(not controller.snapshot().auto_adjust)
    finally:
        controller.shutdown()
        cv2.destroyAllWindows()


def run_headless(
    config: AppConfig,
    camera: Union[int, str, None] = None,
    model: Optional[str] = None,
    feedback: Optional[str] = None,
    ticks: int = 300,
    settle_s: float = 30.0,
) -> dict:
    notices = NoticeBoard(log_path=config.log_path)
    controller = build_controller(config, camera=camera, notices=notices)
    loop = FrameLoop(controller, poll_interval_s=config.loop.poll_interval_s)
    controller.start()
    if not controller.landmark_source.wait_ready():
        controller.pump()
        controller.shutdown()
        return {"ok": False, "error": controller.snapshot().init_error}
    controller.pump()
    if model and controller.load_model(model) is None:
        controller.shutdown()
        return {"ok": False, "error": "model could not be loaded"}
    if feedback:
        controller.provide_feedback(feedback)
    if not controller.set_camera_enabled(True):
        controller.shutdown()
        return {"ok": False, "error": controller.camera.status_message}

    try:
        stats = loop.run(max_ticks=ticks)
        settled = loop.settle(settle_s)
    finally:
        controller.shutdown()
    snap = controller.snapshot()
    return {
        "ok": True,
        "ticks": stats.ticks,
        "outcomes": {k.value: v for k, v in stats.outcomes.items()},
        "settled": settled,
        "parameters": snap.current_parameters.to_dict(),
        "reasoning": snap.last_reasoning,
        "pose_detected": snap.pose_detected,
    }


def load_landmarks_file(path: Path) -> list[dict]:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("keypoints") or data.get("poseLandmarks") or []
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a list of keypoints.")
    return data
