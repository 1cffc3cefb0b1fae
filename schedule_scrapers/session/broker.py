"""
Interactive credential broker.

The broker talks to an admin-facing collaborator over two queues. Outbound
messages look like

    {"type": "credential-request", "requestId": "...", "message": "..."}

and the collaborator answers on the inbound queue with

    {"type": "credential-response", "requestId": "...", "email": "...", "password": "..."}

Only one request may be outstanding. Messages for any other requestId are
dropped.
"""
import logging
import queue
import threading
import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from schedule_scrapers.config import BrokerSettings, settings as global_settings
from schedule_scrapers.errors import CredentialCancelled, CredentialRequestPending, CredentialTimeout

logger = logging.getLogger(__name__)

REQUEST_MESSAGE_TYPE = "credential-request"
RESPONSE_MESSAGE_TYPE = "credential-response"
CANCEL_MESSAGE_TYPE = "credential-cancel"

DEFAULT_STATE_HISTORY = 50


class RequestState(str, Enum):
    PENDING = "pending"
    FULFILLED = "fulfilled"
    TIMED_OUT = "timed-out"
    CANCELLED = "cancelled"


class CredentialRequest(BaseModel):
    request_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    prompt_message: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_message(self) -> Dict[str, Any]:
        return {"type": REQUEST_MESSAGE_TYPE, "requestId": self.request_id, "message": self.prompt_message}


class Credentials:
    """Plaintext login credentials. Call discard() as soon as the login attempt is over."""
    __slots__ = ("email", "password")

    def __init__(self, email: str, password: str):
        self.email = email
        self.password = password

    def discard(self) -> None:
        self.email = None
        self.password = None

    @property
    def discarded(self) -> bool:
        return self.email is None and self.password is None

    def __repr__(self) -> str:
        return "Credentials(<redacted>)"


class CredentialBroker:
    def __init__(
        self,
        broker_settings: Optional[BrokerSettings] = None,
        outbound: Optional["queue.Queue[Dict[str, Any]]"] = None,
        inbound: Optional["queue.Queue[Dict[str, Any]]"] = None,
        state_history: int = DEFAULT_STATE_HISTORY,
    ):
        self.settings = broker_settings or global_settings.broker
        self.outbound = outbound if outbound is not None else queue.Queue()
        self.inbound = inbound if inbound is not None else queue.Queue()
        self._lock = threading.Lock()
        self._pending: Optional[CredentialRequest] = None
        self._states: Dict[str, RequestState] = {}
        self.state_history = state_history

    @property
    def pending_request(self) -> Optional[CredentialRequest]:
        with self._lock:
            return self._pending

    def state_of(self, request_id: str) -> Optional[RequestState]:
        with self._lock:
            return self._states.get(request_id)

    def submit(self, message: Dict[str, Any]) -> None:
        """Entry point for the admin collaborator. Unmatched messages are ignored by the waiter."""
        self.inbound.put(message)

    def cancel(self, request_id: Optional[str] = None) -> bool:
        with self._lock:
            pending = self._pending
        if pending is None or (request_id is not None and request_id != pending.request_id):
            return False
        self.inbound.put({"type": CANCEL_MESSAGE_TYPE, "requestId": pending.request_id})
        return True

    def request_credentials(self, prompt_message: Optional[str] = None, timeout: Optional[float] = None) -> Credentials:
        """
        Publish a credential request and block until the matching response arrives.

        Raises:
            CredentialRequestPending: another request is still outstanding.
            CredentialTimeout: nothing matched within the timeout.
            CredentialCancelled: cancel() was called for this request.
        """
        timeout = self.settings.timeout_seconds if timeout is None else timeout
        with self._lock:
            if self._pending is not None:
                logger.warning(f"Rejecting credential request: {self._pending.request_id} is still pending.")
                raise CredentialRequestPending(self._pending.request_id)
            request = CredentialRequest(prompt_message=prompt_message or self.settings.prompt_message)
            self._pending = request
            self._states[request.request_id] = RequestState.PENDING

        self.outbound.put(request.to_message())
        logger.info(f"Credential request {request.request_id} published; waiting up to {timeout:g}s.")

        final_state = RequestState.TIMED_OUT
        try:
            deadline = time.monotonic() + timeout
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise CredentialTimeout(request.request_id, timeout)
                try:
                    message = self.inbound.get(timeout=remaining)
                except queue.Empty:
                    continue

                outcome = self._match(message, request)
                if outcome is None:
                    continue
                if outcome == CANCEL_MESSAGE_TYPE:
                    final_state = RequestState.CANCELLED
                    raise CredentialCancelled(request.request_id)
                final_state = RequestState.FULFILLED
                logger.info(f"Credential request {request.request_id} fulfilled.")
                return outcome
        finally:
            with self._lock:
                self._states[request.request_id] = final_state
                self._pending = None
                self._prune_states()
            if final_state is RequestState.TIMED_OUT:
                logger.warning(f"Credential request {request.request_id} timed out.")

    def _prune_states(self) -> None:
        """Forget the oldest finished requests beyond state_history. Caller holds the lock."""
        excess = len(self._states) - self.state_history
        if excess <= 0:
            return
        finished = [rid for rid, state in self._states.items() if state is not RequestState.PENDING]
        for request_id in finished[:excess]:
            del self._states[request_id]

    def _match(self, message: Any, request: CredentialRequest):
        if not isinstance(message, dict):
            logger.warning(f"Ignoring non-dict message on credential channel: {type(message).__name__}")
            return None
        if message.get("requestId") != request.request_id:
            logger.info(f"Ignoring {message.get('type')!r} for unknown or expired request {message.get('requestId')!r}.")
            return None

        message_type = message.get("type")
        if message_type == CANCEL_MESSAGE_TYPE:
            return CANCEL_MESSAGE_TYPE
        if message_type != RESPONSE_MESSAGE_TYPE:
            logger.warning(f"Ignoring message of unexpected type {message_type!r} for request {request.request_id}.")
            return None

        email, password = message.get("email"), message.get("password")
        if not email or not password:
            logger.warning(f"Credential response for {request.request_id} is missing email or password; still waiting.")
            return None
        return Credentials(email=email, password=password)
