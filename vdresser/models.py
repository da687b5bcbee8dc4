from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Sequence, Tuple

import numpy as np


# MediaPipe BlazePose topology.
POSE_LANDMARK_COUNT = 33

DEFAULT_FRAME_WIDTH = 640
DEFAULT_FRAME_HEIGHT = 480


@dataclass(frozen=True)
class ModelParameters:
    scale: float = 20.0
    rotation_y: float = 0.0
    position_x: float = 0.0
    position_y: float = -0.5
    position_z: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {
            "scale": float(self.scale),
            "rotationY": float(self.rotation_y),
            "positionX": float(self.position_x),
            "positionY": float(self.position_y),
            "positionZ": float(self.position_z),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "ModelParameters":
        if not isinstance(data, dict):
            raise ValueError(f"Model parameters must be a JSON object, got {type(data).__name__}.")
        return ModelParameters(
            scale=float(data["scale"]),
            rotation_y=float(data["rotationY"]),
            position_x=float(data["positionX"]),
            position_y=float(data["positionY"]),
            position_z=float(data["positionZ"]),
        )


DEFAULT_PARAMETERS = ModelParameters()


@dataclass(frozen=True)
class Keypoint:
    x: float
    y: float
    z: float
    visibility: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {"x": float(self.x), "y": float(self.y), "z": float(self.z), "visibility": float(self.visibility)}


LandmarkFrame = Tuple[Keypoint, ...]


def make_landmark_frame(points: Sequence[Any]) -> LandmarkFrame:
    """Build a LandmarkFrame from keypoints, dicts or (x, y, z[, visibility]) tuples."""
    out: list[Keypoint] = []
    for p in points:
        if isinstance(p, Keypoint):
            out.append(p)
        elif isinstance(p, dict):
            vis = p.get("visibility")
            out.append(Keypoint(float(p["x"]), float(p["y"]), float(p.get("z", 0.0)), float(vis or 0.0)))
        elif isinstance(p, (list, tuple)) and len(p) >= 3:
            vals = list(p)
            vis = vals[3] if len(vals) > 3 and vals[3] is not None else 0.0
            out.append(Keypoint(float(vals[0]), float(vals[1]), float(vals[2]), float(vis)))
        else:
            raise ValueError(f"Keypoint {len(out)} must be an object or an (x, y, z) list, got {p!r}.")
    if len(out) != POSE_LANDMARK_COUNT:
        raise ValueError(f"Expected {POSE_LANDMARK_COUNT} keypoints, got {len(out)}")
    return tuple(out)


@dataclass(frozen=True)
class VideoFrame:
    image: Optional[np.ndarray]
    timestamp: Optional[float]
    width: int = 0
    height: int = 0
    frame_id: int = 0


@dataclass(frozen=True)
class AdjustmentRequest:
    keypoints: LandmarkFrame
    current_parameters: ModelParameters
    frame_width: int
    frame_height: int
    feedback: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "keypoints": [kp.to_dict() for kp in self.keypoints],
            "currentParameters": self.current_parameters.to_dict(),
            "frameWidth": int(self.frame_width),
            "frameHeight": int(self.frame_height),
        }
        if self.feedback:
            payload["feedback"] = self.feedback
        return payload


@dataclass(frozen=True)
class FitAdvice:
    updated_parameters: ModelParameters
    reasoning: str = ""


@dataclass(frozen=True)
class GarmentModel:
    name: str
    uri: str
    kind: str  # "glb" | "gltf"
    size_bytes: Optional[int] = None
    is_remote: bool = False
    meta: dict[str, Any] = field(default_factory=dict, compare=False)
