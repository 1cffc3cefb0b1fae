from schedule_scrapers.session.broker import CredentialBroker, CredentialRequest, Credentials, RequestState
from schedule_scrapers.session.manager import SessionManager, check_authentication
from schedule_scrapers.session.store import Session, SessionCookie, SessionStore, SessionValidation, validate_session

__all__ = [
    "CredentialBroker",
    "CredentialRequest",
    "Credentials",
    "RequestState",
    "Session",
    "SessionCookie",
    "SessionManager",
    "SessionStore",
    "SessionValidation",
    "check_authentication",
    "validate_session",
]
