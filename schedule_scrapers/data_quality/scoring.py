import logging
import math
from typing import Dict, Optional, Tuple

from schedule_scrapers.models import FieldOrigin, TargetKind

logger = logging.getLogger(__name__)

STRUCTURED_FIELD_CONFIDENCE = 0.9
IMAGE_CONFIDENCE = 0.8
FREE_TEXT_CONFIDENCE = 0.7

BASELINE_BY_ORIGIN: Dict[FieldOrigin, float] = {
    FieldOrigin.STRUCTURED: STRUCTURED_FIELD_CONFIDENCE,
    FieldOrigin.IMAGE: IMAGE_CONFIDENCE,
    FieldOrigin.FREE_TEXT: FREE_TEXT_CONFIDENCE,
}

# Every (kind, origin) pair is listed so a per-surface adjustment is a one-line edit.
BASELINES: Dict[Tuple[TargetKind, FieldOrigin], float] = {
    (kind, origin): BASELINE_BY_ORIGIN[origin]
    for kind in TargetKind
    for origin in FieldOrigin
}


def baseline_confidence(source_kind: TargetKind, field_origin: FieldOrigin) -> float:
    """Starting confidence for a candidate read from `field_origin` on a `source_kind` surface."""
    return BASELINES[(TargetKind(source_kind), FieldOrigin(field_origin))]


def resolve_confidence(source_kind: TargetKind, field_origin: FieldOrigin, reported: Optional[float] = None) -> float:
    """
    Combine the model-reported confidence with the baseline.

    The reported value can only pull the score down: it is clamped to [0, 1]
    and capped at the baseline. Missing or non-numeric values fall back to the
    baseline.
    """
    baseline = baseline_confidence(source_kind, field_origin)
    if reported is None:
        return baseline
    try:
        value = float(reported)
    except (TypeError, ValueError):
        logger.debug(f"Ignoring non-numeric reported confidence {reported!r}")
        return baseline
    if math.isnan(value):
        return baseline
    return round(min(max(value, 0.0), baseline), 3)
