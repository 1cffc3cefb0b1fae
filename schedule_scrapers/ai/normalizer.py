"""
AI normalization of raw page text and images into schedule candidates.

The model is asked for a single JSON object. Anything else (no object,
several objects, wrong shape) is an AIParseFailure and the call returns no
candidates instead of guessing.
"""
import json
import logging
import re
from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from schedule_scrapers.ai import prompts
from schedule_scrapers.ai.gemini_client import GeminiClient
from schedule_scrapers.config import GeminiSettings, settings as global_settings
from schedule_scrapers.data_quality.scoring import resolve_confidence
from schedule_scrapers.data_quality.time_validation import split_day_tokens, split_time_range, to_24h
from schedule_scrapers.errors import AIParseFailure
from schedule_scrapers.models import FieldOrigin, ScheduleRecordCandidate, TargetKind

logger = logging.getLogger(__name__)

_CODE_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)


class NormalizationContext(BaseModel):
    source_url: str
    source_kind: TargetKind
    field_origin: FieldOrigin = FieldOrigin.FREE_TEXT
    host_hint: Optional[str] = None


class NormalizationResult(BaseModel):
    candidates: List[ScheduleRecordCandidate] = Field(default_factory=list)
    diagnostics: List[str] = Field(default_factory=list)
    failed: bool = False


class AIShow(BaseModel):
    venue: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = Field(None, validation_alias=AliasChoices("zip", "zip_code", "postal_code"))
    lat: Optional[float] = None
    lng: Optional[float] = Field(None, validation_alias=AliasChoices("lng", "lon", "longitude"))
    day: Optional[str] = None
    start_time: Optional[str] = Field(None, validation_alias=AliasChoices("start_time", "startTime"))
    end_time: Optional[str] = Field(None, validation_alias=AliasChoices("end_time", "endTime"))
    time: Optional[str] = None
    host_name: Optional[str] = Field(None, validation_alias=AliasChoices("host_name", "hostName", "dj"))
    confidence: Optional[float] = None

    model_config = {"extra": "ignore"}

    @field_validator("zip", "start_time", "end_time", "day", mode="before")
    @classmethod
    def coerce_to_text(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


class AIScheduleResponse(BaseModel):
    host_name: Optional[str] = Field(None, validation_alias=AliasChoices("host_name", "hostName", "dj", "vendor"))
    shows: List[AIShow]

    model_config = {"extra": "ignore"}

    @field_validator("host_name", mode="before")
    @classmethod
    def host_from_object(cls, v: Any) -> Any:
        # Older prompts returned {"dj": {"name": ...}}.
        if isinstance(v, dict):
            return v.get("name")
        return v


def extract_single_json_object(text: str) -> Dict[str, Any]:
    """Return the one JSON object in `text`. Raises AIParseFailure for zero or several."""
    if not text or not text.strip():
        raise AIParseFailure("empty response")

    fenced = _CODE_FENCE_RE.findall(text)
    body = "\n".join(fenced) if fenced else text

    decoder = json.JSONDecoder()
    objects = []
    pos = 0
    while True:
        start = body.find("{", pos)
        if start == -1:
            break
        try:
            obj, end = decoder.raw_decode(body, start)
        except json.JSONDecodeError:
            pos = start + 1
            continue
        objects.append(obj)
        pos = end

    if not objects:
        raise AIParseFailure("response contains no JSON object")
    if len(objects) > 1:
        raise AIParseFailure(f"response contains {len(objects)} JSON objects, expected exactly one")
    return objects[0]


def parse_schedule_response(text: str) -> AIScheduleResponse:
    data = extract_single_json_object(text)
    try:
        return AIScheduleResponse.model_validate(data)
    except ValidationError as e:
        raise AIParseFailure(f"response JSON does not match the schedule shape: {e.error_count()} error(s)") from e


class AINormalizer:
    def __init__(self, client: Optional[GeminiClient] = None, gemini_settings: Optional[GeminiSettings] = None):
        self.settings = gemini_settings or global_settings.gemini
        self.client = client or GeminiClient(self.settings)

    def normalize(
        self,
        content: Union[str, bytes],
        context: NormalizationContext,
        mime_type: Optional[str] = None,
    ) -> NormalizationResult:
        """Turn text or image bytes into schedule candidates. Never raises for AI or parse errors."""
        diagnostics: List[str] = []

        if isinstance(content, bytes):
            prompt = prompts.build_image_prompt(context.source_url, context.host_hint)
            image_bytes = content
        else:
            text = content.strip()
            if not text:
                return NormalizationResult(diagnostics=["no content to normalize"], failed=True)
            limit = self.settings.max_prompt_chars
            if len(text) > limit:
                diagnostics.append(f"content truncated from {len(text)} to {limit} chars")
                text = text[:limit]
            prompt = prompts.build_text_prompt(text, context.source_url, context.field_origin.value, context.host_hint)
            image_bytes = None

        try:
            raw_response = self.client.generate(prompt, image_bytes=image_bytes, mime_type=mime_type)
        except Exception as e:
            logger.error(f"AI service call failed for {context.source_url}: {e}", exc_info=True)
            diagnostics.append(f"ai service error: {e}")
            return NormalizationResult(diagnostics=diagnostics, failed=True)

        try:
            parsed = parse_schedule_response(raw_response)
        except AIParseFailure as e:
            logger.warning(f"Unparseable AI response for {context.source_url}: {e}")
            diagnostics.append(f"ai parse failure: {e}")
            return NormalizationResult(diagnostics=diagnostics, failed=True)

        candidates = self._to_candidates(parsed, context, diagnostics)
        if not candidates:
            diagnostics.append("no schedule found in content")
        logger.info(f"Normalized {len(candidates)} candidate(s) from {context.source_url}")
        return NormalizationResult(candidates=candidates, diagnostics=diagnostics)

    def _to_candidates(self, parsed: AIScheduleResponse, context: NormalizationContext, diagnostics: List[str]) -> List[ScheduleRecordCandidate]:
        candidates = []
        for position, show in enumerate(parsed.shows):
            venue = (show.venue or "").strip()
            if not venue:
                diagnostics.append(f"show #{position} dropped: no venue")
                continue

            start_time, end_time = to_24h(show.start_time), to_24h(show.end_time)
            range_text = show.time or show.start_time
            if start_time is None and range_text:
                start_time, range_end = split_time_range(range_text)
                end_time = end_time or range_end
            if start_time is None:
                diagnostics.append(f"show #{position} ({venue}) dropped: no start time")
                continue

            days = split_day_tokens(show.day)
            if not days:
                diagnostics.append(f"show #{position} ({venue}) dropped: no day")
                continue

            confidence = resolve_confidence(context.source_kind, context.field_origin, show.confidence)
            host_name = show.host_name or parsed.host_name or context.host_hint
            for day in days:
                candidates.append(ScheduleRecordCandidate(
                    venue=venue,
                    address=show.address,
                    city=show.city,
                    state=show.state,
                    zip=show.zip,
                    lat=show.lat,
                    lng=show.lng,
                    day=day,
                    start_time=start_time,
                    end_time=end_time,
                    host_name=host_name,
                    confidence=confidence,
                    source_url=context.source_url,
                ))
        return candidates
