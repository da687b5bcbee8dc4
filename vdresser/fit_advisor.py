"""Fit advisor: asks a hosted Gemini model for new garment transform parameters.

The reply is constrained with a JSON response schema and validated again with
pydantic before it is allowed anywhere near the controller state.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import AdvisorConfig
from .errors import AdjustmentTransportFailure, AdjustmentValidationFailure
from .models import AdjustmentRequest, FitAdvice, ModelParameters


class FitAdvisor(Protocol):
    def improve_fit(self, request: AdjustmentRequest) -> FitAdvice: ...


class WireParameters(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    scale: float = Field(ge=0, description="The updated scale of the 3D model.")
    rotationY: float = Field(description="The updated rotation of the 3D model around the Y axis, in radians.")
    positionX: float = Field(description="The updated X position of the 3D model.")
    positionY: float = Field(description="The updated Y position of the 3D model.")
    positionZ: float = Field(description="The updated Z position of the 3D model.")


class WireAdvice(BaseModel):
    updatedModelParameters: WireParameters
    reasoning: str = Field(description="Why the parameters were adjusted this way.")

    def to_advice(self) -> FitAdvice:
        return FitAdvice(
            updated_parameters=ModelParameters.from_dict(self.updatedModelParameters.model_dump()),
            reasoning=self.reasoning.strip(),
        )


SYSTEM_INSTRUCTION = (
    "You are an expert in adjusting 3D clothing models to fit a person's body "
    "based on pose landmarks and user feedback."
)


def build_fit_prompt(request: AdjustmentRequest) -> str:
    p = request.current_parameters
    lines = [
        "You are given the pose landmarks detected by MediaPipe, the current parameters of the 3D model "
        "(scale, rotationY, positionX, positionY, positionZ), and optional user feedback on the fit.",
        "Decide how to adjust the model parameters to improve the fit and explain your adjustments.",
        f"The video feed has dimensions width: {request.frame_width} and height: {request.frame_height}.",
        "",
        "Pose Landmarks:",
    ]
    for i, kp in enumerate(request.keypoints):
        lines.append(f"  {i}: x={kp.x:.4f}, y={kp.y:.4f}, z={kp.z:.4f}, visibility={kp.visibility:.3f}")
    lines += [
        "",
        "Current Model Parameters:",
        f"scale={p.scale}, rotationY={p.rotation_y}, positionX={p.position_x}, "
        f"positionY={p.position_y}, positionZ={p.position_z}",
        "",
        "User Feedback (if any):",
        f"  {request.feedback}" if request.feedback else "  No feedback provided.",
        "",
        "Consider how the landmarks relate to typical clothing fit. For example:",
        "* Shoulders (landmarks 11, 12) inform the shoulder width of a shirt.",
        "* Hips (landmarks 23, 24) inform the waist position of pants.",
        "* The overall scale of the pose informs the overall scale of the clothing.",
        "",
        "Output the updated model parameters and your reasoning.",
    ]
    return "\n".join(lines)


def parse_advice(text: Optional[str]) -> FitAdvice:
    if not text or not text.strip():
        raise AdjustmentValidationFailure("Fit advisor returned an empty response.")
    try:
        return WireAdvice.model_validate_json(text).to_advice()
    except ValidationError as exc:
        raise AdjustmentValidationFailure(f"Fit advisor response does not match the parameter schema: {exc}") from exc


class GeminiFitAdvisor:
    def __init__(
        self,
        config: Optional[AdvisorConfig] = None,
        api_key: Optional[str] = None,
        client: Any = None,
    ) -> None:
        self.config = config or AdvisorConfig()
        self.api_key = api_key
        self._client = client

    def _get_client(self) -> Any:
        if self._client is not None:
            return self._client
        if not self.api_key:
            raise AdjustmentTransportFailure(
                f"Gemini API key not configured. Set {self.config.api_key_env} or advisor.api_key."
            )
        from google import genai
        from google.genai import types

        self._client = genai.Client(
            api_key=self.api_key,
            http_options=types.HttpOptions(timeout=int(self.config.timeout_s * 1000)),
        )
        return self._client

    def _generation_config(self) -> Any:
        from google.genai import types

        return types.GenerateContentConfig(
            system_instruction=SYSTEM_INSTRUCTION,
            temperature=self.config.temperature,
            response_mime_type="application/json",
            response_schema=WireAdvice,
        )

    def improve_fit(self, request: AdjustmentRequest) -> FitAdvice:
        from google.genai import errors as genai_errors

        client = self._get_client()
        try:
            response = client.models.generate_content(
                model=self.config.model,
                contents=build_fit_prompt(request),
                config=self._generation_config(),
            )
        except genai_errors.APIError as exc:
            raise AdjustmentTransportFailure(f"Gemini API error {exc.code}: {exc.message}") from exc
        except (httpx.HTTPError, TimeoutError, ConnectionError) as exc:
            raise AdjustmentTransportFailure(f"Could not reach the fit advisor: {exc}") from exc
        return parse_advice(getattr(response, "text", None))
