from typing import Optional

from schedule_scrapers.browser.extractor import BrowserExtractor
from schedule_scrapers.errors import AuthRequired
from schedule_scrapers.models import ExtractionTarget, StrategyResult
from schedule_scrapers.session.store import Session
from schedule_scrapers.strategies.base import ExtractionStrategy


class AuthenticatedBrowserStrategy(ExtractionStrategy):
    """Stealth browser with the stored session: page text plus photo links from the media section."""

    name = "authenticated-browser"
    requires_session = True

    def __init__(self, extractor: Optional[BrowserExtractor] = None):
        self.extractor = extractor or BrowserExtractor()

    def attempt(self, target: ExtractionTarget, session: Optional[Session], deadline: Optional[float] = None) -> StrategyResult:
        if session is None:
            raise AuthRequired("no session available for the browser")
        return self.extractor.run(session, target, deadline=deadline)


class DirectPhotoStrategy(ExtractionStrategy):
    """A single photo is its own only sub-item; the worker pool does the rest."""

    name = "direct-photo"

    def attempt(self, target: ExtractionTarget, session: Optional[Session], deadline: Optional[float] = None) -> StrategyResult:
        return StrategyResult(
            strategy_name=self.name,
            success=True,
            sub_items=[target.url],
            diagnostics=["single photo handed to worker pool"],
        )
