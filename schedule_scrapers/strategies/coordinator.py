"""
Strategy coordinator.

Tries the strategies configured for a target kind in a fixed order. Every
attempted strategy leaves exactly one diagnostic line, so a terminal failure
explains itself. At most one login runs per extraction, whether it comes
from a missing session or from an auth wall; once it has failed, later
session strategies fail with the same diagnostic. A credential timeout ends
the extraction.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import yaml
from pydantic import BaseModel, Field

from schedule_scrapers.config import CoordinatorSettings, settings as global_settings
from schedule_scrapers.errors import AuthRequired, CredentialTimeout, StrategyFailure
from schedule_scrapers.models import ExtractionTarget, StrategyResult, TargetKind
from schedule_scrapers.session.manager import SessionManager
from schedule_scrapers.session.store import Session
from schedule_scrapers.strategies.base import ExtractionStrategy

logger = logging.getLogger(__name__)

DEFAULT_ORDER_FILE = Path(__file__).resolve().parent.parent / "strategy_order.yaml"

ERROR_STRATEGIES_EXHAUSTED = "strategies-exhausted"
ERROR_CREDENTIAL_TIMEOUT = "credential-timeout"
ERROR_NO_STRATEGIES = "no-strategies"


def load_strategy_order(path: Optional[Path] = None) -> Dict[TargetKind, List[str]]:
    """Read {kind: [strategy names]} from YAML."""
    order_path = Path(path) if path else DEFAULT_ORDER_FILE
    with open(order_path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    order = {}
    for kind, names in raw.items():
        if not isinstance(names, list) or not all(isinstance(n, str) for n in names):
            raise ValueError(f"Strategy order for '{kind}' in {order_path} must be a list of names.")
        order[TargetKind(kind)] = names
    return order


class CoordinatorOutcome(BaseModel):
    success: bool
    result: Optional[StrategyResult] = None
    diagnostics: List[str] = Field(default_factory=list)
    error_kind: Optional[str] = None


class _AttemptState:
    __slots__ = ("login_used", "auth_failure")

    def __init__(self):
        self.login_used = False
        self.auth_failure: Optional[AuthRequired] = None


class StrategyCoordinator:
    def __init__(
        self,
        strategies: Iterable[ExtractionStrategy],
        session_manager: Optional[SessionManager] = None,
        order: Optional[Dict[TargetKind, List[str]]] = None,
        coordinator_settings: Optional[CoordinatorSettings] = None,
    ):
        self.settings = coordinator_settings or global_settings.coordinator
        self.strategies = {s.name: s for s in strategies}
        self.session_manager = session_manager
        self.order = order if order is not None else load_strategy_order(self.settings.strategy_order_file)

        for kind, names in self.order.items():
            unknown = [n for n in names if n not in self.strategies]
            if unknown:
                raise ValueError(f"Strategy order for '{kind.value}' names unknown strategies: {unknown}")

    def strategies_for(self, kind: TargetKind) -> List[ExtractionStrategy]:
        return [self.strategies[name] for name in self.order.get(kind, [])]

    def extract(self, target: ExtractionTarget) -> CoordinatorOutcome:
        strategies = self.strategies_for(target.kind)
        if not strategies:
            return CoordinatorOutcome(
                success=False,
                diagnostics=[f"no strategies configured for kind '{target.kind.value}'"],
                error_kind=ERROR_NO_STRATEGIES,
            )

        diagnostics: List[str] = []
        state = _AttemptState()
        for strategy in strategies:
            logger.info(f"Trying strategy '{strategy.name}' for {target.url}")
            try:
                result = self._attempt(strategy, target, state)
            except CredentialTimeout as e:
                diagnostics.append(f"{strategy.name}: {e}")
                logger.error(f"Extraction of {target.url} stopped: {e}")
                return CoordinatorOutcome(success=False, diagnostics=diagnostics, error_kind=ERROR_CREDENTIAL_TIMEOUT)
            except StrategyFailure as e:
                diagnostics.append(f"{strategy.name}: {e.reason}")
            except AuthRequired as e:
                detail = "; ".join(e.diagnostics)
                diagnostics.append(f"{strategy.name}: authentication required ({e.reason}{'; ' + detail if detail else ''})")
            except Exception as e:
                logger.error(f"Strategy '{strategy.name}' raised unexpectedly: {e}", exc_info=True)
                diagnostics.append(f"{strategy.name}: unexpected {type(e).__name__}: {e}")
            else:
                if strategy.is_success(result):
                    logger.info(f"Strategy '{strategy.name}' succeeded for {target.url}")
                    diagnostics.append(f"{strategy.name}: succeeded")
                    return CoordinatorOutcome(success=True, result=result, diagnostics=diagnostics)
                diagnostics.append(f"{strategy.name}: success check not met")
            logger.warning(f"Strategy '{strategy.name}' failed for {target.url}: {diagnostics[-1]}")

        return CoordinatorOutcome(success=False, diagnostics=diagnostics, error_kind=ERROR_STRATEGIES_EXHAUSTED)

    def _attempt(self, strategy: ExtractionStrategy, target: ExtractionTarget, state: _AttemptState) -> StrategyResult:
        session = self._session_for(strategy, state)
        try:
            return self._run_bounded(strategy, target, session)
        except AuthRequired as e:
            if not strategy.requires_session or self.session_manager is None or state.login_used:
                raise
            logger.warning(f"Strategy '{strategy.name}' hit an auth wall ({e.reason}); re-authenticating once.")
            session = self._acquire_session(state, force_login=True)
            return self._run_bounded(strategy, target, session)

    def _session_for(self, strategy: ExtractionStrategy, state: _AttemptState) -> Optional[Session]:
        if not strategy.requires_session:
            return None
        if self.session_manager is None:
            raise StrategyFailure(strategy.name, "requires a session but no session manager is configured")
        return self._acquire_session(state)

    def _acquire_session(self, state: _AttemptState, force_login: bool = False) -> Session:
        """Any login, successful or not, uses up the extraction's single login."""
        if state.auth_failure is not None:
            raise AuthRequired(state.auth_failure.reason, state.auth_failure.diagnostics)
        try:
            grant = self.session_manager.acquire(force_login=force_login, allow_login=not state.login_used)
        except AuthRequired as e:
            state.login_used = True
            state.auth_failure = e
            raise
        if grant.logged_in:
            state.login_used = True
        return grant.session

    def _run_bounded(self, strategy: ExtractionStrategy, target: ExtractionTarget, session: Optional[Session]) -> StrategyResult:
        """
        Run one attempt against the strategy timeout.

        The strategy gets the deadline and is expected to wind down by itself.
        A late attempt is still waited for, so two strategies never work on
        the same target at once.
        """
        timeout = self.settings.strategy_timeout_sec
        deadline = time.monotonic() + timeout
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"strategy-{strategy.name}")
        future = executor.submit(strategy.attempt, target, session, deadline=deadline)
        try:
            return future.result(timeout=timeout)
        except FuturesTimeoutError as e:
            logger.warning(f"Strategy '{strategy.name}' passed its {timeout:g}s deadline; waiting for it to stop.")
            raise StrategyFailure(strategy.name, f"timed out after {timeout:g}s") from e
        finally:
            executor.shutdown(wait=True)
