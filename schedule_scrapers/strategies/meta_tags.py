import logging
import re
from typing import Dict, List, Optional

import requests
from bs4 import BeautifulSoup

from schedule_scrapers.config import CoordinatorSettings, settings as global_settings
from schedule_scrapers.data_quality.time_validation import split_day_tokens
from schedule_scrapers.errors import StrategyFailure
from schedule_scrapers.http_client import create_http_session
from schedule_scrapers.models import ExtractionTarget, FieldOrigin, StrategyResult
from schedule_scrapers.session.store import Session
from schedule_scrapers.strategies.base import ExtractionStrategy, time_left

logger = logging.getLogger(__name__)

_DAY = r"(?:MON|TUES?|WED(?:NES)?S?|THU(?:RS?)?|TH|FRI|SAT(?:UR)?|SUN)(?:DAY)?S?"
_TIME = r"\d{1,2}(?::\d{2})?\s*(?:[ap]\.?m\.?)?"
# "WED Kelley's Pub 8-12am TH+SAT Crescent Lounge 8-12am"
SCHEDULE_ENTRY_RE = re.compile(
    rf"\b(?P<days>{_DAY}(?:\s*[+/&,]\s*{_DAY})*)\s+(?P<venue>.+?)\s+(?P<time>{_TIME}\s*-\s*{_TIME})(?=\s|$|[,.;|])",
    re.IGNORECASE,
)


def meta_content(soup: BeautifulSoup, *keys: str) -> Optional[str]:
    for key in keys:
        tag = soup.find("meta", attrs={"property": key}) or soup.find("meta", attrs={"name": key})
        if tag and tag.get("content"):
            return tag["content"].strip()
    return None


def parse_schedule_from_description(description: str) -> List[Dict[str, str]]:
    """Pull compact "DAY Venue time-range" entries out of a profile description."""
    entries = []
    for match in SCHEDULE_ENTRY_RE.finditer(description or ""):
        venue = match.group("venue").strip(" -|,")
        for day in split_day_tokens(match.group("days")):
            entries.append({"day": day, "venue": venue, "time": re.sub(r"\s+", "", match.group("time"))})
    return entries


class PublicMetaTagStrategy(ExtractionStrategy):
    """Unauthenticated fetch of the public page, reading og:title / og:description."""

    name = "public-meta-tags"

    def __init__(self, coordinator_settings: Optional[CoordinatorSettings] = None, http: Optional[requests.Session] = None):
        self.settings = coordinator_settings or global_settings.coordinator
        self.http = http or create_http_session()

    def attempt(self, target: ExtractionTarget, session: Optional[Session], deadline: Optional[float] = None) -> StrategyResult:
        try:
            response = self.http.get(target.url, timeout=time_left(deadline, self.settings.meta_request_timeout_sec))
            response.raise_for_status()
        except requests.RequestException as e:
            raise StrategyFailure(self.name, f"fetch failed: {e}") from e

        soup = BeautifulSoup(response.text, "html.parser")
        title = meta_content(soup, "og:title", "twitter:title")
        description = meta_content(soup, "og:description", "description", "twitter:description")
        if not description:
            raise StrategyFailure(self.name, "page has no og:description")

        sections = []
        if title:
            sections.append(f"Title: {title}")
        sections.append(f"Description: {description}")

        entries = parse_schedule_from_description(description)
        if entries:
            sections.append("Schedule entries:")
            sections.extend(f"- {e['day']} | {e['venue']} | {e['time']}" for e in entries)

        logger.info(f"Meta tags for {target.url}: title={title!r}, {len(entries)} schedule entr(ies) spotted.")
        return StrategyResult(
            strategy_name=self.name,
            success=True,
            raw_content="\n".join(sections),
            diagnostics=[f"{len(entries)} schedule entr(ies) in og:description"],
            field_origin=FieldOrigin.STRUCTURED,
        )
