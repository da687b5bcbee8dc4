from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, ValidationError
import yaml

from .errors import ConfigError


_TRUTHY = {"1", "true", "yes", "on"}
_SECTIONS = ("camera", "pose", "advisor", "loop")


class CameraConfig(BaseModel):
    # Integer index (0, 1, 2, ...), a device path such as /dev/video2, or a video file.
    device: Union[int, str] = 0
    width: int = 640
    height: int = 480
    fps: int = 30
    mirror: bool = True
    lost_frame_limit: int = 20


class PoseConfig(BaseModel):
    model_complexity: int = Field(default=1, ge=0, le=2)
    min_detection_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    min_tracking_confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class AdvisorConfig(BaseModel):
    model: str = "gemini-2.5-flash"
    api_key_env: str = "GEMINI_API_KEY"
    api_key: Optional[str] = None
    timeout_s: float = Field(default=30.0, gt=0)
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)


class LoopConfig(BaseModel):
    poll_interval_s: float = Field(default=1.0 / 60.0, gt=0)
    auto_adjust: bool = True
    notice_seconds: float = 4.0


class AppConfig(BaseModel):
    camera: CameraConfig = Field(default_factory=CameraConfig)
    pose: PoseConfig = Field(default_factory=PoseConfig)
    advisor: AdvisorConfig = Field(default_factory=AdvisorConfig)
    loop: LoopConfig = Field(default_factory=LoopConfig)
    log_path: Optional[Path] = None

    def resolved_api_key(self) -> Optional[str]:
        if self.advisor.api_key:
            return self.advisor.api_key
        value = os.environ.get(self.advisor.api_key_env, "").strip()
        return value or None


def default_config_path() -> Path:
    return Path(__file__).resolve().parent.parent / "config" / "vdresser.yaml"


def _env_flag(raw: str) -> bool:
    return str(raw).strip().lower() in _TRUTHY


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    section = data.get(key)
    if section is None:
        section = data[key] = {}
    if not isinstance(section, dict):
        raise ConfigError(f"Config section '{key}' must be a mapping, got {type(section).__name__}.")
    return section


def _apply_env_overrides(data: dict[str, Any], env: dict[str, str]) -> dict[str, Any]:
    camera = env.get("VDRESSER_CAMERA")
    if camera is not None and camera.strip():
        cam = camera.strip()
        _section(data, "camera")["device"] = int(cam) if cam.isdigit() else cam
    model = env.get("VDRESSER_ADVISOR_MODEL")
    if model is not None and model.strip():
        _section(data, "advisor")["model"] = model.strip()
    auto = env.get("VDRESSER_AUTO_ADJUST")
    if auto is not None and auto.strip():
        _section(data, "loop")["auto_adjust"] = _env_flag(auto)
    log_path = env.get("VDRESSER_LOG_PATH")
    if log_path is not None and log_path.strip():
        data["log_path"] = log_path.strip()
    return data


def load_config(path: Optional[Path] = None, env: Optional[dict[str, str]] = None) -> AppConfig:
    cfg_path = Path(path) if path is not None else default_config_path()
    data: dict[str, Any] = {}
    if cfg_path.exists():
        try:
            loaded = yaml.safe_load(cfg_path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise ConfigError(f"Could not parse {cfg_path}: {exc}") from exc
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ConfigError(f"{cfg_path} must contain a mapping at the top level.")
        data = loaded
    elif path is not None:
        raise ConfigError(f"Config file not found: {cfg_path}")
    for key in _SECTIONS:
        if key in data:
            _section(data, key)
    data = _apply_env_overrides(data, dict(os.environ) if env is None else env)
    try:
        return AppConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration in {cfg_path}:\n{exc}") from exc
