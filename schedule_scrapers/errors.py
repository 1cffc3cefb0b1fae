"""Exception hierarchy shared across the extraction pipeline."""


class ScheduleScraperError(Exception):
    """Base class for every error raised by schedule_scrapers."""


class StrategyFailure(ScheduleScraperError):
    """One extraction strategy did not succeed. The coordinator falls back to the next."""

    def __init__(self, strategy_name: str, reason: str):
        super().__init__(f"{strategy_name}: {reason}")
        self.strategy_name = strategy_name
        self.reason = reason


class AuthRequired(ScheduleScraperError):
    """The session is missing, expired or was rejected by the target surface."""

    def __init__(self, reason: str, diagnostics=None):
        super().__init__(reason)
        self.reason = reason
        self.diagnostics = list(diagnostics or [])


class CredentialTimeout(ScheduleScraperError):
    """No credential response arrived before the broker timeout."""

    def __init__(self, request_id: str, timeout_seconds: float):
        super().__init__(f"credential request {request_id} timed out after {timeout_seconds:g}s")
        self.request_id = request_id
        self.timeout_seconds = timeout_seconds


class CredentialCancelled(ScheduleScraperError):
    def __init__(self, request_id: str):
        super().__init__(f"credential request {request_id} was cancelled")
        self.request_id = request_id


class CredentialRequestPending(ScheduleScraperError):
    """A credential request is already outstanding."""

    def __init__(self, pending_request_id: str):
        super().__init__(f"credential request {pending_request_id} is still pending")
        self.pending_request_id = pending_request_id


class AIParseFailure(ScheduleScraperError):
    """The AI service response was not exactly one JSON object of the expected shape."""


class ItemFailure(ScheduleScraperError):
    """One worker-pool item failed. Recorded on its WorkResult only."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


class SessionLoadError(ScheduleScraperError):
    """The persisted cookie blob could not be read or parsed."""


class AIServiceUnavailable(ScheduleScraperError):
    """The generative AI service is not configured or kept failing after retries."""
