from __future__ import annotations

import json
from types import SimpleNamespace
import unittest

import httpx

from vdresser.config import AdvisorConfig
from vdresser.errors import AdjustmentTransportFailure, AdjustmentValidationFailure
from vdresser.fit_advisor import GeminiFitAdvisor, WireAdvice, build_fit_prompt, parse_advice
from vdresser.models import (
    DEFAULT_PARAMETERS,
    POSE_LANDMARK_COUNT,
    AdjustmentRequest,
    Keypoint,
    ModelParameters,
)


def _request(feedback: str | None = None) -> AdjustmentRequest:
    keypoints = tuple(Keypoint(x=0.5, y=0.1 + i * 0.02, z=0.0, visibility=0.8) for i in range(POSE_LANDMARK_COUNT))
    return AdjustmentRequest(
        keypoints=keypoints,
        current_parameters=DEFAULT_PARAMETERS,
        frame_width=640,
        frame_height=480,
        feedback=feedback,
    )


def _reply(**overrides) -> str:
    params = {"scale": 18.5, "rotationY": 0.1, "positionX": 0.05, "positionY": -0.4, "positionZ": 0.0}
    params.update(overrides)
    return json.dumps({"updatedModelParameters": params, "reasoning": "Shoulders are narrower than the model."})


class _FakeModels:
    def __init__(self, text: str | None = None, error: Exception | None = None) -> None:
        self.text = text
        self.error = error
        self.calls: list[dict] = []

    def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.text)


class _FakeClient:
    def __init__(self, models: _FakeModels) -> None:
        self.models = models


class ParseAdviceTests(unittest.TestCase):
    def test_valid_reply_becomes_fit_advice(self) -> None:
        advice = parse_advice(_reply())
        self.assertEqual(
            advice.updated_parameters,
            ModelParameters(scale=18.5, rotation_y=0.1, position_x=0.05, position_y=-0.4, position_z=0.0),
        )
        self.assertEqual(advice.reasoning, "Shoulders are narrower than the model.")

    def test_empty_reply_is_a_validation_failure(self) -> None:
        with self.assertRaises(AdjustmentValidationFailure):
            parse_advice("")
        with self.assertRaises(AdjustmentValidationFailure):
            parse_advice(None)

    def test_missing_field_is_a_validation_failure(self) -> None:
        payload = json.loads(_reply())
        del payload["updatedModelParameters"]["positionZ"]
        with self.assertRaises(AdjustmentValidationFailure):
            parse_advice(json.dumps(payload))

    def test_negative_scale_is_rejected(self) -> None:
        with self.assertRaises(AdjustmentValidationFailure):
            parse_advice(_reply(scale=-1.0))

    def test_non_numeric_value_is_rejected(self) -> None:
        with self.assertRaises(AdjustmentValidationFailure):
            parse_advice(_reply(rotationY="a bit to the left"))

    def test_not_json_is_rejected(self) -> None:
        with self.assertRaises(AdjustmentValidationFailure):
            parse_advice("Sure! Make the shirt bigger.")

    def test_schema_requires_parameters_and_reasoning(self) -> None:
        schema = WireAdvice.model_json_schema()
        self.assertEqual(set(schema["required"]), {"updatedModelParameters", "reasoning"})


class PromptTests(unittest.TestCase):
    def test_prompt_lists_landmarks_parameters_and_frame_size(self) -> None:
        prompt = build_fit_prompt(_request())
        self.assertIn("width: 640 and height: 480", prompt)
        self.assertIn("  0: x=0.5000", prompt)
        self.assertIn(f"  {POSE_LANDMARK_COUNT - 1}: x=", prompt)
        self.assertIn("scale=20.0, rotationY=0.0, positionX=0.0, positionY=-0.5, positionZ=0.0", prompt)
        self.assertIn("No feedback provided.", prompt)

    def test_prompt_includes_feedback(self) -> None:
        prompt = build_fit_prompt(_request(feedback="looser"))
        self.assertIn("  looser", prompt)
        self.assertNotIn("No feedback provided.", prompt)

    def test_payload_uses_wire_names(self) -> None:
        payload = _request(feedback="tighter").to_payload()
        self.assertEqual(payload["currentParameters"]["positionY"], -0.5)
        self.assertEqual(payload["frameWidth"], 640)
        self.assertEqual(payload["feedback"], "tighter")
        self.assertEqual(len(payload["keypoints"]), POSE_LANDMARK_COUNT)
        self.assertNotIn("feedback", _request().to_payload())


class GeminiFitAdvisorTests(unittest.TestCase):
    def test_successful_call_uses_configured_model_and_schema(self) -> None:
        models = _FakeModels(text=_reply())
        advisor = GeminiFitAdvisor(AdvisorConfig(model="gemini-test"), client=_FakeClient(models))
        advice = advisor.improve_fit(_request())
        self.assertEqual(advice.updated_parameters.scale, 18.5)
        call = models.calls[0]
        self.assertEqual(call["model"], "gemini-test")
        self.assertIn("Pose Landmarks:", call["contents"])
        self.assertEqual(call["config"].response_mime_type, "application/json")

    def test_network_error_is_a_transport_failure(self) -> None:
        models = _FakeModels(error=httpx.ConnectTimeout("timed out"))
        advisor = GeminiFitAdvisor(client=_FakeClient(models))
        with self.assertRaises(AdjustmentTransportFailure):
            advisor.improve_fit(_request())

    def test_malformed_reply_is_a_validation_failure(self) -> None:
        advisor = GeminiFitAdvisor(client=_FakeClient(_FakeModels(text='{"reasoning": "ok"}')))
        with self.assertRaises(AdjustmentValidationFailure):
            advisor.improve_fit(_request())

    def test_missing_api_key_is_a_transport_failure(self) -> None:
        advisor = GeminiFitAdvisor(AdvisorConfig(api_key_env="VDRESSER_TEST_NO_SUCH_KEY"), api_key=None)
        with self.assertRaises(AdjustmentTransportFailure) as ctx:
            advisor.improve_fit(_request())
        self.assertIn("VDRESSER_TEST_NO_SUCH_KEY", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
