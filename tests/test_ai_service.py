import json
from unittest.mock import MagicMock, patch

import pytest
from openai import OpenAIError

from fieldops.models import (
    AIFailureReason, AuditStatus, ChatTurn, MapAnalysisResult, UnitRates
)
from fieldops.services.ai_service import AiService


def completion(content):
    response = MagicMock()
    response.choices = [MagicMock(message=MagicMock(content=content))]
    return response


def stream_chunk(text):
    chunk = MagicMock()
    chunk.choices = [MagicMock(delta=MagicMock(content=text))]
    return chunk


class TestPhotoAudit:

    def test_valid_response(self, ai_service, ai_client):
        ai_client.chat.completions.create.return_value = completion(json.dumps({
            "complianceScore": 82,
            "status": "divergent",
            "detectedItems": ["Snowshoe", "Drop clamp"],
            "issues": ["Loose lashing"],
            "aiSummary": "Minor divergence.",
        }))

        outcome = ai_service.analyze_construction_image("aGVsbG8=", "image/png")

        assert outcome.ok
        result = outcome.payload
        assert result.status == AuditStatus.DIVERGENT
        assert result.compliance_score == 82
        assert result.detected_items == ["Snowshoe", "Drop clamp"]
        assert result.image_url == "data:image/png;base64,aGVsbG8="
        kwargs = ai_client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}

    def test_data_url_input(self, ai_service, ai_client):
        ai_client.chat.completions.create.return_value = completion('{"status": "COMPLIANT"}')
        outcome = ai_service.analyze_construction_image("data:image/webp;base64,aGVsbG8=")
        assert outcome.payload.image_url == "data:image/webp;base64,aGVsbG8="

    def test_unknown_status_becomes_pending(self, ai_service, ai_client):
        ai_client.chat.completions.create.return_value = completion(
            '{"complianceScore": 50, "status": "SOMEWHAT_OK"}'
        )
        outcome = ai_service.analyze_construction_image("aGVsbG8=")
        assert outcome.ok
        assert outcome.payload.status == AuditStatus.PENDING
        assert outcome.payload.ai_summary == "Analysis complete."

    def test_null_fields_take_defaults(self, ai_service, ai_client):
        ai_client.chat.completions.create.return_value = completion(
            '{"status": "CRITICAL", "issues": null, "complianceScore": 10}'
        )
        outcome = ai_service.analyze_construction_image("aGVsbG8=")
        assert outcome.payload.issues == []

    def test_malformed_json(self, ai_service, ai_client):
        ai_client.chat.completions.create.return_value = completion("not json {")
        outcome = ai_service.analyze_construction_image("aGVsbG8=")
        assert not outcome.ok
        assert outcome.reason == AIFailureReason.INVALID_RESPONSE

    def test_schema_violation(self, ai_service, ai_client):
        ai_client.chat.completions.create.return_value = completion('{"complianceScore": "high"}')
        outcome = ai_service.analyze_construction_image("aGVsbG8=")
        assert outcome.reason == AIFailureReason.INVALID_RESPONSE

    def test_non_object_json(self, ai_service, ai_client):
        ai_client.chat.completions.create.return_value = completion("[1, 2, 3]")
        outcome = ai_service.analyze_construction_image("aGVsbG8=")
        assert outcome.reason == AIFailureReason.INVALID_RESPONSE

    def test_service_error(self, ai_service, ai_client):
        ai_client.chat.completions.create.side_effect = OpenAIError("quota exceeded")
        outcome = ai_service.analyze_construction_image("aGVsbG8=")
        assert outcome.reason == AIFailureReason.SERVICE_ERROR
        assert "quota exceeded" in outcome.detail

    @patch("fieldops.services.ai_service.settings")
    def test_not_configured(self, mock_settings):
        mock_settings.ai_enabled = False
        service = AiService()
        assert service.client is None
        outcome = service.analyze_construction_image("aGVsbG8=")
        assert outcome.reason == AIFailureReason.NOT_CONFIGURED


class TestMapAnalysis:

    MAP_RESPONSE = {
        "totalCableLength": 1200,
        "cableType": "96 fibers ADSS",
        "spanCount": 8,
        "equipmentCounts": [
            {"name": "Anchor", "quantity": 3},
            {"name": "Snowshoe / reserva", "quantity": 2},
            {"name": "Coil", "quantity": 1},
        ],
        "financials": {"estimatedLaborCost": 360, "estimatedMaterialCost": 120, "potentialSavings": 0},
        "materialList": [{"item": "Anchor", "quantity": 3, "unit": "un"}],
        "detectedAnomalies": [],
    }

    def test_map_result_and_work_order(self, ai_service, ai_client):
        ai_client.chat.completions.create.return_value = completion(json.dumps(self.MAP_RESPONSE))
        rates = UnitRates()

        outcome = ai_service.analyze_map_boq("aGVsbG8=", "image/png", rates=rates)
        assert outcome.ok
        result = outcome.payload
        assert result.total_cable_length == 1200
        assert result.financials.estimated_labor_cost == 360

        draft = AiService.work_order_from_map(result, rates)
        assert draft.total_footage == 1200
        assert draft.fiber_count == "96ct"
        assert draft.items.anchors == 3
        assert draft.items.snowshoes == 2
        assert draft.items.coils == 1
        # 1200 * 0.30 + 3 * 15 + 2 * 10
        assert draft.estimated_amount == pytest.approx(425.0)

    def test_rates_reach_the_prompt(self, ai_service, ai_client):
        ai_client.chat.completions.create.return_value = completion("{}")
        ai_service.analyze_map_boq("aGVsbG8=", rates=UnitRates(fiber=0.42))
        messages = ai_client.chat.completions.create.call_args.kwargs["messages"]
        assert "0.42" in messages[0]["content"]

    def test_kml_sent_as_text(self, ai_service, ai_client):
        ai_client.chat.completions.create.return_value = completion("{}")
        outcome = ai_service.analyze_map_boq("<kml></kml>", "application/vnd.google-earth.kml+xml",
                                             is_kml=True)
        user_content = ai_client.chat.completions.create.call_args.kwargs["messages"][1]["content"]
        assert user_content[0]["type"] == "text"
        assert "<kml></kml>" in user_content[0]["text"]
        assert outcome.payload.cable_type == "Unknown"

    def test_negative_length_not_billed(self):
        result = MapAnalysisResult(total_cable_length=-50, cable_type="12ct")
        draft = AiService.work_order_from_map(result, UnitRates())
        assert draft.total_footage == 0
        assert draft.estimated_amount == 0
        assert draft.fiber_count == "12ct"


class TestChatAndTranscription:

    def test_stream_yields_chunks(self, ai_service, ai_client):
        ai_client.chat.completions.create.return_value = iter(
            [stream_chunk("Hello"), stream_chunk(None), stream_chunk(" crew")]
        )
        history = [ChatTurn(role="user", parts=["Hi"]), ChatTurn(role="model", parts=["Hello!"])]

        chunks = list(ai_service.generate_response_stream("Rates?", history))

        assert "".join(chunks) == "Hello crew"
        messages = ai_client.chat.completions.create.call_args.kwargs["messages"]
        assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
        assert messages[-1]["content"] == "Rates?"

    def test_stream_error_is_yielded(self, ai_service, ai_client):
        ai_client.chat.completions.create.side_effect = OpenAIError("timeout")
        chunks = list(ai_service.generate_response_stream("Rates?", []))
        assert chunks == ["AI Generation Error: timeout"]

    def test_transcription(self, ai_service, ai_client):
        ai_client.audio.transcriptions.create.return_value = MagicMock(text="two anchors on pole 12")
        outcome = ai_service.transcribe_audio(b"\x00\x01", "note.webm", "audio/webm")
        assert outcome.ok
        assert outcome.payload == "two anchors on pole 12"

    def test_transcription_failure(self, ai_service, ai_client):
        ai_client.audio.transcriptions.create.side_effect = OpenAIError("bad audio")
        outcome = ai_service.transcribe_audio(b"\x00")
        assert outcome.reason == AIFailureReason.SERVICE_ERROR
