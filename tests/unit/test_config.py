import os
import unittest
from pathlib import Path
from unittest import mock

from schedule_scrapers.config import (
    BrokerSettings,
    GeminiSettings,
    SessionSettings,
    Settings,
    WorkerPoolSettings,
)


class TestConfigLoading(unittest.TestCase):

    @mock.patch.dict(os.environ, {
        "SESSION_COOKIES_FILE": "/tmp/test_cookies.json",
        "FB_EMAIL": "svc@example.com",
        "FB_PASSWORD": "hunter2",
        "BROKER_TIMEOUT_SECONDS": "45",
        "WORKER_POOL_MAX_WORKERS": "3",
        "MIN_DELAY_MS": "0",
        "GOOGLE_API_KEY": "test-key",
        "GEMINI_MODEL": "gemini-2.5-flash",
    })
    def test_load_settings_from_env_variables(self):
        session = SessionSettings()
        self.assertEqual(session.cookies_file, Path("/tmp/test_cookies.json"))
        self.assertEqual(session.login_email, "svc@example.com")
        self.assertEqual(session.login_password.get_secret_value(), "hunter2")
        self.assertNotIn("hunter2", repr(session))

        self.assertEqual(BrokerSettings().timeout_seconds, 45.0)
        pool = WorkerPoolSettings()
        self.assertEqual(pool.max_workers, 3)
        self.assertEqual(pool.min_delay_ms, 0)

        gemini = GeminiSettings()
        self.assertEqual(gemini.api_key.get_secret_value(), "test-key")
        self.assertEqual(gemini.model, "gemini-2.5-flash")

    def test_default_settings_values(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            session = SessionSettings()
            self.assertEqual(session.cookies_env_var, "FB_SESSION_COOKIES")
            self.assertEqual(session.cookies_file, Path("data/facebook-cookies.json"))
            self.assertEqual(session.required_cookies, ["xs", "c_user", "datr", "sb"])
            self.assertIsNone(session.login_email)

            self.assertEqual(BrokerSettings().timeout_seconds, 300.0)
            self.assertIsNone(WorkerPoolSettings().max_workers)
            self.assertEqual(WorkerPoolSettings().max_download_bytes, 50 * 1024 * 1024)
            self.assertIsNone(GeminiSettings().api_key)

            app = Settings(_env_file=None)
            self.assertEqual(app.environment, "development")
            self.assertEqual(app.coordinator.strategy_timeout_sec, 180.0)
            self.assertFalse(app.enrichment.enabled)

    @mock.patch.dict(os.environ, {"APP_ENV": "production", "SENTRY_DSN": "https://key@o0.ingest.sentry.io/1"})
    def test_root_settings_and_sentry(self):
        from schedule_scrapers.config import SentrySettings
        app = Settings(_env_file=None)
        self.assertEqual(app.environment, "production")
        self.assertEqual(str(SentrySettings().dsn), "https://key@o0.ingest.sentry.io/1")

    def test_field_names_are_accepted_directly(self):
        self.assertEqual(BrokerSettings(timeout_seconds=0.5).timeout_seconds, 0.5)
        self.assertEqual(WorkerPoolSettings(min_delay_ms=0, max_delay_ms=0).max_delay_ms, 0)


class TestSentrySetup(unittest.TestCase):
    def test_no_dsn_skips_init(self):
        from schedule_scrapers import sentry_setup
        with mock.patch.object(sentry_setup.settings.sentry, "dsn", None), \
                mock.patch("schedule_scrapers.sentry_setup.sentry_sdk.init") as mock_init:
            self.assertFalse(sentry_setup.init_sentry())
            mock_init.assert_not_called()


if __name__ == "__main__":
    unittest.main()
