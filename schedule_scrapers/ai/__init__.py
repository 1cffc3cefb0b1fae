from schedule_scrapers.ai.gemini_client import GeminiClient
from schedule_scrapers.ai.normalizer import (
    AINormalizer,
    NormalizationContext,
    NormalizationResult,
    extract_single_json_object,
    parse_schedule_response,
)

__all__ = [
    "AINormalizer",
    "GeminiClient",
    "NormalizationContext",
    "NormalizationResult",
    "extract_single_json_object",
    "parse_schedule_response",
]
