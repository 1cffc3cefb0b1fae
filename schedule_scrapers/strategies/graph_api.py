import logging
from typing import List, Optional
from urllib.parse import parse_qs, urlparse

import requests

from schedule_scrapers.config import GraphApiSettings, settings as global_settings
from schedule_scrapers.errors import StrategyFailure
from schedule_scrapers.http_client import create_http_session
from schedule_scrapers.models import ExtractionTarget, FieldOrigin, StrategyResult
from schedule_scrapers.session.store import Session
from schedule_scrapers.strategies.base import ExtractionStrategy, time_left

logger = logging.getLogger(__name__)

NON_PROFILE_SEGMENTS = {"pages", "people", "pg", "p"}


def profile_id_from_url(url: str) -> Optional[str]:
    """`facebook.com/profile.php?id=123` -> "123", `facebook.com/StevesKaraoke/` -> "StevesKaraoke"."""
    parsed = urlparse(url)
    if parsed.path.rstrip("/").endswith("profile.php"):
        ids = parse_qs(parsed.query).get("id")
        return ids[0] if ids else None
    segments = [s for s in parsed.path.split("/") if s and s not in NON_PROFILE_SEGMENTS]
    return segments[0] if segments else None


class GraphApiStrategy(ExtractionStrategy):
    """Public profile fields and recent posts through the Graph API with an app token."""

    name = "graph-api"

    def __init__(self, graph_settings: Optional[GraphApiSettings] = None, http: Optional[requests.Session] = None):
        self.settings = graph_settings or global_settings.graph_api
        self.http = http or create_http_session()

    def attempt(self, target: ExtractionTarget, session: Optional[Session], deadline: Optional[float] = None) -> StrategyResult:
        if not self.settings.app_id or self.settings.app_secret is None:
            raise StrategyFailure(self.name, "no Graph API app credentials configured")

        profile_id = profile_id_from_url(target.url)
        if not profile_id:
            raise StrategyFailure(self.name, f"could not derive a profile id from {target.url}")

        params = {
            "fields": f"name,about,description,posts.limit({self.settings.posts_limit}){{message,created_time}}",
            "access_token": f"{self.settings.app_id}|{self.settings.app_secret.get_secret_value()}",
        }
        try:
            response = self.http.get(f"{self.settings.base_url}/{profile_id}", params=params,
                                     timeout=time_left(deadline, self.settings.request_timeout_sec))
            data = response.json()
        except requests.RequestException as e:
            raise StrategyFailure(self.name, f"request failed: {e}") from e
        except ValueError as e:
            raise StrategyFailure(self.name, f"non-JSON response (HTTP {response.status_code})") from e

        if "error" in data:
            error = data["error"]
            raise StrategyFailure(self.name, f"API error {error.get('code')}: {error.get('message')}")

        sections: List[str] = []
        for field in ("name", "about", "description"):
            if data.get(field):
                sections.append(f"{field.title()}: {data[field]}")
        messages = [post["message"] for post in data.get("posts", {}).get("data", []) if post.get("message")]
        sections.extend(f"Post: {message}" for message in messages)

        if not messages and not data.get("about") and not data.get("description"):
            raise StrategyFailure(self.name, f"profile {profile_id} returned no text")

        logger.info(f"Graph API returned {len(messages)} post(s) for {profile_id}.")
        # about/description are structured profile fields; post text makes the whole result free text
        return StrategyResult(
            strategy_name=self.name,
            success=True,
            raw_content="\n\n".join(sections),
            diagnostics=[f"{len(messages)} post(s) fetched"],
            field_origin=FieldOrigin.FREE_TEXT if messages else FieldOrigin.STRUCTURED,
        )
