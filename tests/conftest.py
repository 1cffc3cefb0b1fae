import pytest

from schedule_scrapers.models import ScheduleRecordCandidate
from schedule_scrapers.session.store import Session


REQUIRED = ["xs", "c_user", "datr", "sb"]


def make_cookie(name, value="v", expires=-1):
    return {"name": name, "value": value, "domain": ".facebook.com", "path": "/", "expires": expires}


def make_session(names=REQUIRED, expires=-1, source="test"):
    return Session.from_cookie_dicts([make_cookie(n, expires=expires) for n in names], source=source)


def make_candidate(**overrides):
    data = {
        "venue": "Crescent Lounge",
        "day": "friday",
        "start_time": "21:00",
        "end_time": "02:00",
        "confidence": 0.7,
        "source_url": "https://scontent.example.net/v/t39/photo.jpg",
    }
    data.update(overrides)
    return ScheduleRecordCandidate(**data)


class FakeGeminiClient:
    """Returns canned responses in order and records prompts."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def generate(self, prompt, image_bytes=None, mime_type=None):
        self.calls.append({"prompt": prompt, "image_bytes": image_bytes, "mime_type": mime_type})
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def valid_session():
    return make_session()


@pytest.fixture
def cookie_factory():
    return make_cookie


@pytest.fixture
def session_factory():
    return make_session


@pytest.fixture
def candidate_factory():
    return make_candidate


@pytest.fixture
def fake_gemini():
    return FakeGeminiClient
