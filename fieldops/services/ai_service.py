import json
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

from openai import OpenAI, OpenAIError
from pydantic import ValidationError

from ..config import settings
from ..invoice_calculator import InvoiceCalculator
from ..models import (
    AIFailureReason, AIOutcome, AuditAssessment, AuditResult, AuditStatus, ChatTurn,
    MapAnalysisResult, UnitRates, WorkOrderDraft
)
from ..utils import match_fiber_count, strip_data_url, tally_equipment
from .system_context import (
    AUDIT_USER_PROMPT, CHAT_SYSTEM_INSTRUCTION, MAP_USER_PROMPT, audit_system_instruction,
    map_system_instruction
)

logger = logging.getLogger(__name__)

TRANSCRIPTION_ERROR_TEXT = "Error transcribing audio."


def _drop_nulls(value: Any) -> Any:
    """Remove null members so model defaults apply instead of failing validation."""
    if isinstance(value, dict):
        return {k: _drop_nulls(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [_drop_nulls(v) for v in value if v is not None]
    return value


def placeholder_audit(image_url: Optional[str] = None) -> AuditResult:
    """Zeroed result shown when the automatic audit could not run."""
    return AuditResult(
        id=str(uuid.uuid4()),
        timestamp=datetime.now(),
        status=AuditStatus.PENDING,
        compliance_score=0,
        detected_items=[],
        issues=["Could not reach the AI service. Please try again."],
        ai_summary="Automatic analysis was not possible.",
        image_url=image_url,
    )


def placeholder_map_analysis() -> MapAnalysisResult:
    return MapAnalysisResult(
        total_cable_length=0,
        cable_type="Unknown",
        span_count=0,
        detected_anomalies=["File processing failed or the API key is invalid."],
    )


class AiService:
    """
    Boundary to the generative-AI service. Every call returns an AIOutcome:
    success with a validated payload, or failure with a reason. Nothing the
    service returns is trusted beyond schema validation.
    """

    def __init__(self, client: Optional[OpenAI] = None):
        self.model_name = settings.AI_MODEL_NAME
        self.vision_model = settings.AI_VISION_MODEL
        self.transcribe_model = settings.AI_TRANSCRIBE_MODEL
        self.client = client

        if self.client is None and settings.ai_enabled:
            try:
                self.client = OpenAI(
                    base_url=settings.AI_BASE_URL,
                    api_key=settings.AI_API_KEY,
                    timeout=settings.AI_TIMEOUT
                )
            except OpenAIError as e:
                logger.error(f"Failed to initialize OpenAI client: {e}")
                self.client = None

    # ------------------------------------------------------------------
    # structured calls
    # ------------------------------------------------------------------
    def _json_completion(self, model: str, system_prompt: str, user_content: Any) -> AIOutcome:
        """Run a JSON-mode completion and return the decoded object as the payload."""
        if not self.client:
            return AIOutcome.failure(AIFailureReason.NOT_CONFIGURED, "AI service is not initialized")
        try:
            response = self.client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_content},
                ],
                response_format={"type": "json_object"},
            )
        except OpenAIError as e:
            logger.error(f"AI request failed: {e}")
            return AIOutcome.failure(AIFailureReason.SERVICE_ERROR, str(e))

        text = (response.choices[0].message.content if response.choices else None) or "{}"
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            logger.error(f"AI returned malformed JSON: {e}")
            return AIOutcome.failure(AIFailureReason.INVALID_RESPONSE, f"Malformed JSON: {e}")
        if not isinstance(data, dict):
            return AIOutcome.failure(AIFailureReason.INVALID_RESPONSE, "Expected a JSON object")
        return AIOutcome.success(_drop_nulls(data))

    def analyze_construction_image(self, base64_image: str, mime_type: str = "image/jpeg") -> AIOutcome:
        """Photo audit: compliance status, score, detected items and issues."""
        data_mime, base64_image = strip_data_url(base64_image)
        mime_type = data_mime or mime_type
        image_url = f"data:{mime_type};base64,{base64_image}"
        logger.info(f"[Photo audit] Image received: {len(base64_image)} base64 chars")

        outcome = self._json_completion(
            self.vision_model,
            audit_system_instruction(),
            [
                {"type": "image_url", "image_url": {"url": image_url}},
                {"type": "text", "text": AUDIT_USER_PROMPT},
            ],
        )
        if not outcome.ok:
            return outcome

        try:
            assessment = AuditAssessment.model_validate(outcome.payload)
        except ValidationError as e:
            logger.error(f"Audit response failed schema validation: {e}")
            return AIOutcome.failure(AIFailureReason.INVALID_RESPONSE, str(e))

        status = assessment.status.upper()
        if status not in (AuditStatus.COMPLIANT.value, AuditStatus.DIVERGENT.value,
                          AuditStatus.CRITICAL.value):
            status = AuditStatus.PENDING.value

        result = AuditResult(
            id=str(uuid.uuid4()),
            timestamp=datetime.now(),
            status=AuditStatus(status),
            compliance_score=assessment.compliance_score,
            detected_items=assessment.detected_items,
            issues=assessment.issues,
            ai_summary=assessment.ai_summary,
            image_url=image_url,
        )
        logger.info(f"[Photo audit] Done | status={result.status.value} | score={result.compliance_score}")
        return AIOutcome.success(result)

    def analyze_map_boq(self, input_data: str, mime_type: str = "image/jpeg",
                        rates: Optional[UnitRates] = None, is_kml: bool = False) -> AIOutcome:
        """Bill of quantities from a map image/PDF (base64) or KML/XML text."""
        if is_kml:
            user_content: List[Dict[str, Any]] = [
                {"type": "text", "text": f"GOOGLE EARTH KML/XML PROJECT DATA:\n\n{input_data}"}
            ]
        else:
            data_mime, input_data = strip_data_url(input_data)
            mime_type = data_mime or mime_type
            user_content = [
                {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{input_data}"}}
            ]
        user_content.append({"type": "text", "text": MAP_USER_PROMPT})

        outcome = self._json_completion(self.model_name, map_system_instruction(rates), user_content)
        if not outcome.ok:
            return outcome

        try:
            result = MapAnalysisResult.model_validate(outcome.payload)
        except ValidationError as e:
            logger.error(f"Map analysis failed schema validation: {e}")
            return AIOutcome.failure(AIFailureReason.INVALID_RESPONSE, str(e))

        logger.info(
            f"[Map analysis] Done | footage={result.total_cable_length} | cable={result.cable_type} | "
            f"spans={result.span_count}"
        )
        return AIOutcome.success(result)

    @staticmethod
    def work_order_from_map(result: MapAnalysisResult, rates: UnitRates) -> WorkOrderDraft:
        """Prefill a crew submission from a map analysis, priced locally at the given rates."""
        items = tally_equipment(result.equipment_counts)
        footage = result.total_cable_length if result.total_cable_length > 0 else 0
        return WorkOrderDraft(
            total_footage=footage,
            fiber_count=match_fiber_count(result.cable_type),
            items=items,
            estimated_amount=InvoiceCalculator(rates).calculate(footage, items),
        )

    # ------------------------------------------------------------------
    # chat / transcription
    # ------------------------------------------------------------------
    def generate_response_stream(self, message: str, history: List[ChatTurn],
                                 thinking: bool = False) -> Iterator[str]:
        """Streams the reply chunk by chunk; errors are yielded as text."""
        if not self.client:
            yield "Error: AI service is not initialized."
            return

        messages = [{"role": "system", "content": CHAT_SYSTEM_INSTRUCTION}]
        for turn in history:
            role = "assistant" if turn.role == "model" else turn.role
            parts = turn.parts
            content = parts[0] if isinstance(parts, list) and len(parts) > 0 else str(parts)
            messages.append({"role": role, "content": content})
        messages.append({"role": "user", "content": message})
        logger.info(f"[AI chat] Input: {message[:200]}")

        try:
            stream = self.client.chat.completions.create(
                model=self.vision_model if thinking else self.model_name,
                messages=messages,
                stream=True
            )
            full_response = ""
            for chunk in stream:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content is not None:
                    full_response += content
                    yield content
            logger.info(f"[AI chat] Output: {len(full_response)} chars")
        except OpenAIError as e:
            error_msg = f"AI Generation Error: {str(e)}"
            logger.error(error_msg)
            yield error_msg

    def transcribe_audio(self, content: bytes, filename: str = "audio.webm",
                         mime_type: str = "audio/webm") -> AIOutcome:
        if not self.client:
            return AIOutcome.failure(AIFailureReason.NOT_CONFIGURED, "AI service is not initialized")
        try:
            transcription = self.client.audio.transcriptions.create(
                model=self.transcribe_model,
                file=(filename, content, mime_type),
            )
        except OpenAIError as e:
            logger.error(f"Transcription error: {e}")
            return AIOutcome.failure(AIFailureReason.SERVICE_ERROR, str(e))
        return AIOutcome.success(getattr(transcription, "text", "") or "")
