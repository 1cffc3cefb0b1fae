import time
from abc import ABC, abstractmethod
from typing import Optional

from schedule_scrapers.models import ExtractionTarget, StrategyResult
from schedule_scrapers.session.store import Session

MIN_REQUEST_TIMEOUT_SEC = 0.1


def time_left(deadline: Optional[float], cap: float) -> float:
    """Seconds until a time.monotonic() deadline, capped at `cap` and floored at MIN_REQUEST_TIMEOUT_SEC."""
    if deadline is None:
        return cap
    return max(MIN_REQUEST_TIMEOUT_SEC, min(cap, deadline - time.monotonic()))


class ExtractionStrategy(ABC):
    """
    One way of getting content out of a target. Raise StrategyFailure or AuthRequired when it does not work.

    `deadline` is a time.monotonic() value. Work still running past it is
    waited for by the coordinator, so strategies cap their own timeouts to it.
    """

    name: str = ""
    requires_session: bool = False

    @abstractmethod
    def attempt(self, target: ExtractionTarget, session: Optional[Session], deadline: Optional[float] = None) -> StrategyResult:
        ...

    def is_success(self, result: StrategyResult) -> bool:
        if not result.success:
            return False
        return bool((result.raw_content or "").strip()) or bool(result.sub_items) or bool(result.screenshot)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"
