import logging
from typing import Callable, List, NamedTuple, Optional

import requests

from schedule_scrapers.config import SessionSettings, settings as global_settings
from schedule_scrapers.errors import AuthRequired, CredentialCancelled
from schedule_scrapers.session.broker import CredentialBroker
from schedule_scrapers.session.store import Session, SessionStore

logger = logging.getLogger(__name__)

LoginRunner = Callable[[str, str], Session]


class SessionGrant(NamedTuple):
    session: Session
    logged_in: bool


class SessionManager:
    """
    Hands out a usable Session.

    Order of attempts: the persisted session, then one automated login with
    the configured service account, then one interactive login with
    credentials obtained through the broker. Credentials are never retried.
    """

    def __init__(
        self,
        store: SessionStore,
        broker: CredentialBroker,
        login: LoginRunner,
        session_settings: Optional[SessionSettings] = None,
    ):
        self.store = store
        self.broker = broker
        self._login = login
        self.settings = session_settings or global_settings.session

    def get_valid_session(self, force_login: bool = False) -> Session:
        """
        Return a valid session, logging in if needed.

        force_login skips the stored session, used when the target surface
        rejected it even though it looked valid locally.

        Raises:
            AuthRequired: both login attempts failed or the request was cancelled.
            CredentialTimeout: the interactive request was not answered in time.
        """
        return self.acquire(force_login=force_login).session

    def acquire(self, force_login: bool = False, allow_login: bool = True) -> SessionGrant:
        """
        Same as get_valid_session, but also reports whether a login ran.

        With allow_login=False an unusable stored session raises AuthRequired
        at once instead of starting a login.
        """
        diagnostics: List[str] = []
        session = self.store.current() or self.store.load()

        if force_login:
            diagnostics.append("stored session rejected by target surface")
        else:
            validation = self.store.validate(session)
            if validation.is_valid:
                return SessionGrant(session, False)
            diagnostics.extend(validation.diagnostics())
            for message in validation.diagnostics():
                logger.warning(message)

        if not allow_login:
            diagnostics.append("login already attempted for this extraction")
            raise AuthRequired("no usable session and no login attempts left", diagnostics)

        new_session = self._automated_login(diagnostics)
        if new_session is None:
            new_session = self._interactive_login(diagnostics)

        self.store.replace(new_session)
        return SessionGrant(new_session, True)

    def _automated_login(self, diagnostics: List[str]) -> Optional[Session]:
        email = self.settings.login_email
        password = self.settings.login_password
        if not email or password is None:
            diagnostics.append("automated login skipped: no service credentials configured")
            return None
        return self._attempt_login(email, password.get_secret_value(), "automated", diagnostics)

    def _interactive_login(self, diagnostics: List[str]) -> Session:
        try:
            credentials = self.broker.request_credentials()
        except CredentialCancelled as e:
            diagnostics.append(str(e))
            raise AuthRequired("interactive credential request cancelled", diagnostics) from e

        try:
            new_session = self._attempt_login(credentials.email, credentials.password, "interactive", diagnostics)
        finally:
            credentials.discard()

        if new_session is None:
            raise AuthRequired("interactive login failed", diagnostics)
        return new_session

    def _attempt_login(self, email: str, password: str, mode: str, diagnostics: List[str]) -> Optional[Session]:
        logger.info(f"Attempting {mode} login.")
        try:
            session = self._login(email, password)
        except AuthRequired as e:
            diagnostics.append(f"{mode} login failed: {e.reason}")
            logger.warning(f"{mode.capitalize()} login rejected: {e.reason}")
            return None
        except Exception as e:
            diagnostics.append(f"{mode} login failed: {e}")
            logger.error(f"{mode.capitalize()} login errored: {e}", exc_info=True)
            return None

        validation = self.store.validate(session)
        if validation.is_incomplete:
            logger.warning(f"{mode.capitalize()} login returned an incomplete session: {validation.missing_required}")
        logger.info(f"{mode.capitalize()} login succeeded with {len(session.cookies)} cookies.")
        return session


def check_authentication(session: Session, session_settings: Optional[SessionSettings] = None) -> bool:
    """Probe the live surface with the session cookies. True when the account page loads without a login prompt."""
    cfg = session_settings or global_settings.session
    headers = {
        "Cookie": session.cookie_header(),
        "User-Agent": global_settings.browser.user_agent,
    }
    try:
        response = requests.get(str(cfg.auth_check_url), headers=headers, timeout=cfg.auth_check_timeout_sec)
    except requests.RequestException as e:
        logger.warning(f"Authentication probe failed: {e}")
        return False
    logged_in = response.status_code == 200 and "login" not in response.text.lower()
    logger.info(f"Authentication probe status={response.status_code} logged_in={logged_in}")
    return logged_in
