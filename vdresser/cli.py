from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Optional, Union

from .app import load_landmarks_file, run_headless, run_live
from .config import load_config
from .errors import AdjustmentError, ConfigError, GarmentLoadError
from .fit_advisor import GeminiFitAdvisor
from .garment import load_garment
from .models import (
    DEFAULT_FRAME_HEIGHT,
    DEFAULT_FRAME_WIDTH,
    DEFAULT_PARAMETERS,
    AdjustmentRequest,
    ModelParameters,
    make_landmark_frame,
)


def _camera_arg(value: Optional[str]) -> Union[int, str, None]:
    if value is None:
        return None
    return int(value) if value.isdigit() else value


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="vdresser",
        description="Virtual try-on: fit a 3D garment to your webcam pose with AI-suggested adjustments.",
    )
    p.add_argument("--config", default=None, help="YAML config file (default: config/vdresser.yaml).")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_live = sub.add_parser("live", help="Start the live try-on window")
    # Accept both --camera and --cam-index.
    p_live.add_argument(
        "--camera",
        "--cam-index",
        dest="camera",
        default=None,
        help="Camera index (e.g. 0, 1), device path (e.g. /dev/video2) or a video file.",
    )
    p_live.add_argument("--model", default=None, help="Garment model (.glb/.gltf path or http(s) URL).")
    p_live.add_argument("--feedback", default=None, help="Initial fit feedback, e.g. 'looser'.")

    p_headless = sub.add_parser("headless", help="Run the frame loop without a window and print the result")
    p_headless.add_argument("--camera", "--video", dest="camera", default=None)
    p_headless.add_argument("--model", required=True)
    p_headless.add_argument("--feedback", default=None)
    p_headless.add_argument("--ticks", type=int, default=300)
    p_headless.add_argument("--settle", type=float, default=30.0, help="Seconds to wait for a pending adjustment.")

    p_advise = sub.add_parser("advise", help="Ask the fit advisor once, from a landmarks JSON file")
    p_advise.add_argument("--landmarks", required=True, help="JSON list of 33 {x, y, z, visibility} keypoints.")
    p_advise.add_argument("--params", default=None, help="Current parameters as JSON (camelCase keys).")
    p_advise.add_argument("--feedback", default=None)
    p_advise.add_argument("--width", type=int, default=DEFAULT_FRAME_WIDTH)
    p_advise.add_argument("--height", type=int, default=DEFAULT_FRAME_HEIGHT)

    p_inspect = sub.add_parser("inspect-model", help="Validate a garment model and print its metadata")
    p_inspect.add_argument("ref", help=".glb/.gltf path or http(s) URL")

    return p


def main(argv: list[str] | None = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)

    try:
        config = load_config(Path(args.config) if args.config else None)
    except ConfigError as e:
        print(f"[vdresser] {e}")
        return 2

    if args.cmd == "live":
        run_live(config, camera=_camera_arg(args.camera), model=args.model, feedback=args.feedback)
        return 0

    if args.cmd == "headless":
        result = run_headless(
            config,
            camera=_camera_arg(args.camera),
            model=args.model,
            feedback=args.feedback,
            ticks=args.ticks,
            settle_s=args.settle,
        )
        print(json.dumps(result, indent=2))
        return 0 if result.get("ok") else 1

    if args.cmd == "advise":
        try:
            keypoints = make_landmark_frame(load_landmarks_file(Path(args.landmarks)))
            params = ModelParameters.from_dict(json.loads(args.params)) if args.params else DEFAULT_PARAMETERS
        except (OSError, ValueError, KeyError, TypeError) as e:
            print(f"[vdresser] {e}")
            return 2
        request = AdjustmentRequest(
            keypoints=keypoints,
            current_parameters=params,
            frame_width=args.width,
            frame_height=args.height,
            feedback=(args.feedback or "").strip() or None,
        )
        advisor = GeminiFitAdvisor(config.advisor, api_key=config.resolved_api_key())
        try:
            advice = advisor.improve_fit(request)
        except AdjustmentError as e:
            print(f"[vdresser] {e}")
            return 1
        out = {"updatedModelParameters": advice.updated_parameters.to_dict(), "reasoning": advice.reasoning}
        print(json.dumps(out, indent=2))
        return 0

    if args.cmd == "inspect-model":
        try:
            garment = load_garment(args.ref)
        except GarmentLoadError as e:
            print(f"[vdresser] {e}")
            return 1
        out = {
            "name": garment.name,
            "uri": garment.uri,
            "kind": garment.kind,
            "size_bytes": garment.size_bytes,
            "remote": garment.is_remote,
            **garment.meta,
        }
        print(json.dumps(out, indent=2))
        return 0

    return 2
