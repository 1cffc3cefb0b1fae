"""
Persisted session cookies.

A Session is loaded once from the environment blob or the cookie file and is
only ever replaced as a whole. Readers take the current value from
SessionStore.current(); the swap happens under a lock so nobody observes a
half-written session.
"""
import json
import logging
import os
import tempfile
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from schedule_scrapers.config import SessionSettings, settings as global_settings
from schedule_scrapers.errors import SessionLoadError

logger = logging.getLogger(__name__)

NEVER_EXPIRES = -1


class SessionCookie(BaseModel):
    name: str = Field(..., min_length=1)
    value: str
    domain: str = ".facebook.com"
    path: str = "/"
    expires: Optional[float] = Field(None, description="Absolute expiry in epoch seconds. -1 or None never expires.")
    http_only: bool = Field(False, alias="httpOnly")
    secure: bool = True
    same_site: Optional[str] = Field(None, alias="sameSite")

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra='ignore')

    def is_expired(self, now: Optional[float] = None) -> bool:
        if not self.expires or self.expires == NEVER_EXPIRES:
            return False
        return self.expires < (time.time() if now is None else now)

    def to_playwright(self) -> Dict[str, Any]:
        cookie: Dict[str, Any] = {
            "name": self.name,
            "value": self.value,
            "domain": self.domain,
            "path": self.path,
            "httpOnly": self.http_only,
            "secure": self.secure,
            "expires": self.expires if self.expires else NEVER_EXPIRES,
        }
        if self.same_site in ("Strict", "Lax", "None"):
            cookie["sameSite"] = self.same_site
        return cookie


class Session(BaseModel):
    cookies: Tuple[SessionCookie, ...] = ()
    source: str = Field("unknown", description="'env', 'file', 'login' ...")
    loaded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)

    def get(self, name: str) -> Optional[SessionCookie]:
        for cookie in self.cookies:
            if cookie.name == name:
                return cookie
        return None

    def names(self) -> List[str]:
        return [c.name for c in self.cookies]

    def cookie_header(self) -> str:
        return "; ".join(f"{c.name}={c.value}" for c in self.cookies)

    def to_playwright_cookies(self) -> List[Dict[str, Any]]:
        return [c.to_playwright() for c in self.cookies]

    @classmethod
    def from_cookie_dicts(cls, raw_cookies: List[Mapping[str, Any]], source: str) -> 'Session':
        return cls(cookies=tuple(SessionCookie.model_validate(dict(c)) for c in raw_cookies), source=source)


class SessionValidation(BaseModel):
    is_valid: bool
    total: int
    expired: List[str] = Field(default_factory=list)
    missing_required: List[str] = Field(default_factory=list)
    next_expiry: Optional[datetime] = None
    checked_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_expired(self) -> bool:
        return bool(self.expired)

    @property
    def is_incomplete(self) -> bool:
        return bool(self.missing_required)

    def diagnostics(self) -> List[str]:
        messages = []
        if self.total == 0:
            messages.append("session empty: no cookies loaded")
        if self.is_incomplete:
            messages.append(f"session incomplete: missing required cookies {', '.join(self.missing_required)}")
        if self.is_expired:
            messages.append(f"session expired: {len(self.expired)} cookie(s) past expiry ({', '.join(self.expired)})")
        return messages


def validate_session(session: Optional[Session], required: List[str], now: Optional[float] = None) -> SessionValidation:
    """Check expiry of present cookies and presence of the required names."""
    now = time.time() if now is None else now
    if session is None:
        return SessionValidation(is_valid=False, total=0, missing_required=list(required))

    expired = [c.name for c in session.cookies if c.is_expired(now)]
    present = set(session.names())
    missing = [name for name in required if name not in present]

    future_expiries = [c.expires for c in session.cookies
                       if c.expires and c.expires != NEVER_EXPIRES and c.expires >= now]
    next_expiry = datetime.fromtimestamp(min(future_expiries), tz=timezone.utc) if future_expiries else None

    return SessionValidation(
        is_valid=bool(session.cookies) and not expired and not missing,
        total=len(session.cookies),
        expired=expired,
        missing_required=missing,
        next_expiry=next_expiry,
    )


def _parse_cookie_blob(blob: str, source: str) -> Session:
    try:
        data = json.loads(blob)
    except json.JSONDecodeError as e:
        raise SessionLoadError(f"Cookie blob from {source} is not valid JSON: {e}") from e
    if isinstance(data, dict):
        data = data.get("cookies", [])
    if not isinstance(data, list):
        raise SessionLoadError(f"Cookie blob from {source} must be a JSON list of cookies.")
    try:
        return Session.from_cookie_dicts(data, source=source)
    except (ValidationError, TypeError) as e:
        raise SessionLoadError(f"Cookie blob from {source} has malformed cookies: {e}") from e


class SessionStore:
    def __init__(self, session_settings: Optional[SessionSettings] = None, environ: Optional[Mapping[str, str]] = None):
        self.settings = session_settings or global_settings.session
        self._environ = os.environ if environ is None else environ
        self._lock = threading.Lock()
        self._current: Optional[Session] = None

    @property
    def cookies_file(self) -> Path:
        return Path(self.settings.cookies_file)

    def load(self) -> Optional[Session]:
        """Load from the env blob, then the cookie file. The first source that parses wins."""
        session = None
        blob = self._environ.get(self.settings.cookies_env_var)
        if blob:
            try:
                session = _parse_cookie_blob(blob, source="env")
                logger.info(f"Loaded {len(session.cookies)} cookies from ${self.settings.cookies_env_var}.")
            except SessionLoadError as e:
                logger.warning(f"Ignoring cookie blob in ${self.settings.cookies_env_var}: {e}")

        if session is None and self.cookies_file.exists():
            try:
                session = _parse_cookie_blob(self.cookies_file.read_text(encoding="utf-8"), source="file")
                logger.info(f"Loaded {len(session.cookies)} cookies from {self.cookies_file}.")
            except (SessionLoadError, OSError) as e:
                logger.warning(f"Ignoring cookie file {self.cookies_file}: {e}")

        if session is None:
            logger.info("No persisted session found.")
            return None

        with self._lock:
            self._current = session
        return session

    def current(self) -> Optional[Session]:
        with self._lock:
            return self._current

    def validate(self, session: Optional[Session] = None, now: Optional[float] = None) -> SessionValidation:
        return validate_session(session if session is not None else self.current(), self.settings.required_cookies, now=now)

    def replace(self, session: Session, persist: bool = True) -> None:
        """Swap in a new session. The file is rewritten via a temp file and os.replace."""
        with self._lock:
            if persist:
                self._write_atomically(session)
            self._current = session
        logger.info(f"Session replaced ({len(session.cookies)} cookies, source={session.source}).")

    def _write_atomically(self, session: Session) -> None:
        target = self.cookies_file
        target.parent.mkdir(parents=True, exist_ok=True)
        payload = [c.model_dump(by_alias=True) for c in session.cookies]
        fd, tmp_path = tempfile.mkstemp(prefix=".cookies-", suffix=".json", dir=str(target.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, target)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
