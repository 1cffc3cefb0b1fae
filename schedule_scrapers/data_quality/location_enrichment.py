import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from schedule_scrapers.ai import prompts
from schedule_scrapers.ai.gemini_client import GeminiClient
from schedule_scrapers.ai.normalizer import extract_single_json_object
from schedule_scrapers.config import EnrichmentSettings, settings as global_settings
from schedule_scrapers.errors import AIParseFailure
from schedule_scrapers.models import ScheduleRecordCandidate

logger = logging.getLogger(__name__)

LOCATION_FIELDS = ("city", "state", "zip", "lat", "lng")


def needs_location(candidate: ScheduleRecordCandidate) -> bool:
    return any(getattr(candidate, field) in (None, "") for field in LOCATION_FIELDS)


class LocationEnricher:
    """Fill missing city/state/zip/lat/lng with the AI, a batch at a time. Existing values are never overwritten."""

    def __init__(self, client: Optional[GeminiClient] = None, enrichment_settings: Optional[EnrichmentSettings] = None):
        self.settings = enrichment_settings or global_settings.enrichment
        self.client = client or GeminiClient()

    def enrich(self, candidates: Sequence[ScheduleRecordCandidate]) -> Tuple[List[ScheduleRecordCandidate], List[str]]:
        enriched = list(candidates)
        diagnostics: List[str] = []
        pending = [i for i, c in enumerate(enriched) if needs_location(c)]
        if not pending:
            return enriched, diagnostics

        size = self.settings.batch_size
        for batch_start in range(0, len(pending), size):
            batch = pending[batch_start:batch_start + size]
            try:
                locations = self._lookup([enriched[i] for i in batch])
            except AIParseFailure as e:
                diagnostics.append(f"location enrichment batch {batch_start // size}: {e}")
                logger.warning(f"Location enrichment batch failed to parse: {e}")
                continue
            except Exception as e:
                diagnostics.append(f"location enrichment batch {batch_start // size}: ai service error: {e}")
                logger.error(f"Location enrichment batch errored: {e}", exc_info=True)
                continue

            for position, candidate_index in enumerate(batch):
                update = self._missing_only(enriched[candidate_index], locations.get(position, {}))
                if update:
                    enriched[candidate_index] = enriched[candidate_index].model_copy(update=update)

        logger.info(f"Location enrichment looked up {len(pending)} candidate(s).")
        return enriched, diagnostics

    def _lookup(self, batch: List[ScheduleRecordCandidate]) -> Dict[int, Dict[str, Any]]:
        lines = []
        for i, c in enumerate(batch):
            known = ", ".join(f"{field}={getattr(c, field)}" for field in ("address",) + LOCATION_FIELDS if getattr(c, field))
            lines.append(f"{i}. {c.venue}" + (f" ({known})" if known else ""))
        data = extract_single_json_object(self.client.generate(prompts.build_location_prompt("\n".join(lines))))

        locations = {}
        for entry in data.get("locations", []):
            if isinstance(entry, dict) and isinstance(entry.get("index"), int):
                locations[entry["index"]] = entry
        return locations

    @staticmethod
    def _missing_only(candidate: ScheduleRecordCandidate, location: Dict[str, Any]) -> Dict[str, Any]:
        update = {}
        for field in LOCATION_FIELDS:
            value = location.get(field)
            if value in (None, "") or getattr(candidate, field) not in (None, ""):
                continue
            if field in ("lat", "lng"):
                try:
                    value = float(value)
                except (TypeError, ValueError):
                    continue
            else:
                value = str(value).strip()
            update[field] = value
        return update
