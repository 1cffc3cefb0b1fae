import logging
import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration

from schedule_scrapers.config import settings

logger = logging.getLogger(__name__)


def init_sentry() -> bool:
    """
    Initializes the Sentry SDK if a DSN is configured.
    Returns True when the SDK was initialized.
    """
    sentry_settings = settings.sentry

    if not sentry_settings.dsn:
        logger.info("Sentry DSN not found in settings. Sentry SDK will not be initialized.")
        return False

    effective_environment = sentry_settings.environment or settings.environment
    logger.info(f"Sentry DSN found. Initializing Sentry SDK for environment: '{effective_environment}'.")

    integrations = [
        LoggingIntegration(
            level=logging.INFO,        # breadcrumbs
            event_level=logging.ERROR  # events
        ),
    ]

    sentry_sdk.init(
        dsn=str(sentry_settings.dsn),
        environment=effective_environment,
        traces_sample_rate=sentry_settings.traces_sample_rate if sentry_settings.enable_performance_monitoring else 0.0,
        integrations=integrations,
        send_default_pii=False,
    )
    logger.info("Sentry SDK initialized successfully.")
    return True
