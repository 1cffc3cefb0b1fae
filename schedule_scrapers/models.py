from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class TargetKind(str, Enum):
    PROFILE = "profile"
    GROUP = "group"
    SINGLE_PHOTO = "single-photo"


class FieldOrigin(str, Enum):
    """Where the text a candidate was read from came from."""
    STRUCTURED = "structured"   # an explicit schedule field (bio, og:description)
    FREE_TEXT = "free-text"     # prose in posts or page text
    IMAGE = "image"             # a flyer or photo read by the vision model


class ExtractionTarget(BaseModel):
    url: str = Field(..., min_length=1, description="Page, group or photo URL to extract from.")
    kind: TargetKind = Field(..., description="Declared kind of the target surface.")

    model_config = ConfigDict(frozen=True)

    @field_validator('url')
    @classmethod
    def url_must_be_http(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Target URL must be http(s): {v!r}")
        return v


class StrategyResult(BaseModel):
    strategy_name: str
    success: bool
    raw_content: Optional[str] = Field(None, description="Page text, DOM text or API text captured by the strategy.")
    screenshot: Optional[bytes] = Field(None, description="PNG bytes when the strategy captured a screenshot.")
    sub_items: List[str] = Field(default_factory=list, description="Discovered sub-item URLs, e.g. photo links.")
    diagnostics: List[str] = Field(default_factory=list)
    field_origin: FieldOrigin = FieldOrigin.FREE_TEXT

    @model_validator(mode='after')
    def success_is_all_or_nothing(self) -> 'StrategyResult':
        has_content = bool((self.raw_content or "").strip()) or bool(self.screenshot) or bool(self.sub_items)
        if self.success and not has_content:
            raise ValueError(f"Strategy '{self.strategy_name}' reported success without content or sub-items.")
        if not self.success and has_content:
            raise ValueError(f"Strategy '{self.strategy_name}' reported failure but carries content.")
        return self


class ScheduleRecordCandidate(BaseModel):
    venue: str = Field(..., min_length=1)
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    day: str = Field(..., description="Lower-cased day token as read from the source.")
    start_time: str = Field(..., description="24-hour HH:MM start.")
    end_time: Optional[str] = Field(None, description="24-hour HH:MM end, absent when the source gives none.")
    host_name: Optional[str] = None
    confidence: float = Field(..., ge=0.0, le=1.0)
    source_url: str
    issues: List[str] = Field(default_factory=list)
    overnight: bool = Field(False, description="Set by the validator for evening spans that end after midnight.")

    model_config = ConfigDict(frozen=True)

    @field_validator('venue', 'day', mode='before')
    @classmethod
    def strip_text(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator('day')
    @classmethod
    def lower_day(cls, v: str) -> str:
        return v.lower()


class WorkItem(BaseModel):
    index: int = Field(..., ge=0)
    url: str

    model_config = ConfigDict(frozen=True)


class WorkResult(BaseModel):
    index: int = Field(..., ge=0)
    input_url: str
    resolved_source_url: Optional[str] = Field(None, description="Content-delivery URL actually downloaded.")
    candidates: List[ScheduleRecordCandidate] = Field(default_factory=list)
    error: Optional[str] = None
    worker_index: Optional[int] = None
    diagnostics: List[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None


class ValidationSummary(BaseModel):
    total: int = 0
    corrected: int = 0
    am_pm_errors: int = 0
    impossible_ranges: int = 0
    duration_issues: int = 0
    overnight_spans: int = 0
    other_issues: int = 0


class AggregateResult(BaseModel):
    target: ExtractionTarget
    success: bool
    strategy_name: Optional[str] = None
    records: List[ScheduleRecordCandidate] = Field(default_factory=list)
    work_results: List[WorkResult] = Field(default_factory=list)
    diagnostics: List[str] = Field(default_factory=list)
    error_kind: Optional[str] = Field(None, description="Set on terminal failure: 'strategies-exhausted', 'credential-timeout', ...")
    validation_summary: Optional[ValidationSummary] = None
    completed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)

    def to_report(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
