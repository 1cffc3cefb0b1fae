import threading
import time
import unittest

from schedule_scrapers.config import BrokerSettings
from schedule_scrapers.errors import CredentialCancelled, CredentialRequestPending, CredentialTimeout
from schedule_scrapers.session.broker import CredentialBroker, RequestState


def _wait_for_request(broker, timeout=2.0):
    message = broker.outbound.get(timeout=timeout)
    assert message["type"] == "credential-request"
    return message


class TestCredentialBroker(unittest.TestCase):
    def setUp(self):
        self.broker = CredentialBroker(BrokerSettings(timeout_seconds=5))
        self.outcome = {}

    def _request_in_background(self, timeout=5.0):
        def run():
            try:
                self.outcome["credentials"] = self.broker.request_credentials(timeout=timeout)
            except Exception as e:  # recorded for assertions
                self.outcome["error"] = e

        thread = threading.Thread(target=run)
        thread.start()
        return thread

    def test_matching_response_fulfils_request(self):
        thread = self._request_in_background()
        request = _wait_for_request(self.broker)

        self.broker.submit({"type": "credential-response", "requestId": request["requestId"],
                            "email": "kj@example.com", "password": "s3cret"})
        thread.join(timeout=5)

        credentials = self.outcome["credentials"]
        self.assertEqual(credentials.email, "kj@example.com")
        self.assertEqual(credentials.password, "s3cret")
        self.assertEqual(self.broker.state_of(request["requestId"]), RequestState.FULFILLED)
        self.assertIsNone(self.broker.pending_request)

    def test_second_request_while_pending_is_rejected(self):
        thread = self._request_in_background()
        request = _wait_for_request(self.broker)

        with self.assertRaises(CredentialRequestPending) as ctx:
            self.broker.request_credentials(timeout=1)
        self.assertEqual(ctx.exception.pending_request_id, request["requestId"])
        self.assertTrue(self.broker.outbound.empty())

        self.broker.submit({"type": "credential-response", "requestId": request["requestId"],
                            "email": "a@b.c", "password": "pw"})
        thread.join(timeout=5)
        self.assertIn("credentials", self.outcome)

    def test_only_matching_request_id_resolves_the_wait(self):
        thread = self._request_in_background()
        request = _wait_for_request(self.broker)

        self.broker.submit({"type": "credential-response", "requestId": "stale-id", "email": "x@y.z", "password": "old"})
        self.broker.submit({"type": "credential-response", "requestId": request["requestId"], "email": "", "password": ""})
        self.broker.submit("garbage")
        time.sleep(0.2)
        self.assertTrue(thread.is_alive())
        self.assertEqual(self.broker.state_of(request["requestId"]), RequestState.PENDING)

        self.broker.submit({"type": "credential-response", "requestId": request["requestId"],
                            "email": "real@example.com", "password": "pw"})
        thread.join(timeout=5)
        self.assertEqual(self.outcome["credentials"].email, "real@example.com")

    def test_request_times_out_and_clears_pending(self):
        with self.assertRaises(CredentialTimeout):
            self.broker.request_credentials(timeout=0.2)
        self.assertIsNone(self.broker.pending_request)

        message = self.broker.outbound.get_nowait()
        self.assertEqual(self.broker.state_of(message["requestId"]), RequestState.TIMED_OUT)

    def test_late_response_after_timeout_is_ignored_by_next_request(self):
        with self.assertRaises(CredentialTimeout):
            self.broker.request_credentials(timeout=0.1)
        expired = self.broker.outbound.get_nowait()
        self.broker.submit({"type": "credential-response", "requestId": expired["requestId"],
                            "email": "late@example.com", "password": "pw"})

        with self.assertRaises(CredentialTimeout):
            self.broker.request_credentials(timeout=0.2)

    def test_only_recent_request_states_are_kept(self):
        broker = CredentialBroker(BrokerSettings(timeout_seconds=5), state_history=2)
        request_ids = []
        for _ in range(3):
            with self.assertRaises(CredentialTimeout):
                broker.request_credentials(timeout=0.05)
            request_ids.append(broker.outbound.get_nowait()["requestId"])

        self.assertIsNone(broker.state_of(request_ids[0]))
        self.assertEqual(broker.state_of(request_ids[1]), RequestState.TIMED_OUT)
        self.assertEqual(broker.state_of(request_ids[2]), RequestState.TIMED_OUT)

    def test_cancel_moves_request_to_cancelled(self):
        thread = self._request_in_background()
        request = _wait_for_request(self.broker)

        self.assertFalse(self.broker.cancel("some-other-id"))
        self.assertTrue(self.broker.cancel(request["requestId"]))
        thread.join(timeout=5)

        self.assertIsInstance(self.outcome["error"], CredentialCancelled)
        self.assertEqual(self.broker.state_of(request["requestId"]), RequestState.CANCELLED)

    def test_credentials_can_be_discarded(self):
        thread = self._request_in_background()
        request = _wait_for_request(self.broker)
        self.broker.submit({"type": "credential-response", "requestId": request["requestId"],
                            "email": "kj@example.com", "password": "pw"})
        thread.join(timeout=5)

        credentials = self.outcome["credentials"]
        self.assertNotIn("pw", repr(credentials))
        credentials.discard()
        self.assertTrue(credentials.discarded)


if __name__ == "__main__":
    unittest.main()
