import time
from unittest import mock

import pytest
import requests

from schedule_scrapers.config import GraphApiSettings
from schedule_scrapers.errors import StrategyFailure
from schedule_scrapers.models import ExtractionTarget, FieldOrigin, TargetKind
from schedule_scrapers.strategies.graph_api import GraphApiStrategy, profile_id_from_url

TARGET = ExtractionTarget(url="https://www.facebook.com/StevesKaraoke/", kind=TargetKind.PROFILE)


@pytest.fixture
def graph_settings():
    return GraphApiSettings(app_id="123", app_secret="shh", posts_limit=10)


def _http(payload=None, side_effect=None):
    http = mock.Mock()
    if side_effect is not None:
        http.get.side_effect = side_effect
    else:
        http.get.return_value = mock.Mock(status_code=200, json=mock.Mock(return_value=payload))
    return http


@pytest.mark.parametrize("url, expected", [
    ("https://www.facebook.com/StevesKaraoke/", "StevesKaraoke"),
    ("https://www.facebook.com/profile.php?id=100012345", "100012345"),
    ("https://www.facebook.com/pages/KJ-Mike/98765", "KJ-Mike"),
    ("https://www.facebook.com/", None),
    ("https://www.facebook.com/profile.php", None),
])
def test_profile_id_from_url(url, expected):
    assert profile_id_from_url(url) == expected


def test_posts_and_about_become_free_text(graph_settings):
    http = _http({
        "name": "Steve's Karaoke",
        "about": "Karaoke 5 nights a week",
        "posts": {"data": [
            {"message": "Tonight 9pm-2am at Crescent Lounge!", "created_time": "2024-06-14T12:00:00+0000"},
            {"created_time": "2024-06-13T12:00:00+0000"},
        ]},
    })
    result = GraphApiStrategy(graph_settings, http=http).attempt(TARGET, None)

    assert result.success
    assert result.field_origin == FieldOrigin.FREE_TEXT
    assert "Name: Steve's Karaoke" in result.raw_content
    assert "Post: Tonight 9pm-2am at Crescent Lounge!" in result.raw_content
    assert result.diagnostics == ["1 post(s) fetched"]

    url = http.get.call_args.args[0]
    params = http.get.call_args.kwargs["params"]
    assert url == "https://graph.facebook.com/v18.0/StevesKaraoke"
    assert params["access_token"] == "123|shh"
    assert "posts.limit(10){message,created_time}" in params["fields"]


def test_profile_fields_alone_are_structured(graph_settings):
    http = _http({
        "name": "Steve's Karaoke",
        "about": "WED Kelley's Pub 8-12am TH+SAT Crescent Lounge 8-12am",
        "posts": {"data": [{"created_time": "2024-06-13T12:00:00+0000"}]},
    })
    result = GraphApiStrategy(graph_settings, http=http).attempt(TARGET, None)

    assert result.field_origin == FieldOrigin.STRUCTURED
    assert "About: WED Kelley's Pub 8-12am" in result.raw_content
    assert result.diagnostics == ["0 post(s) fetched"]


def test_request_timeout_is_capped_by_the_deadline(graph_settings):
    http = _http({"about": "Karaoke Fridays"})
    GraphApiStrategy(graph_settings, http=http).attempt(TARGET, None, deadline=time.monotonic() + 2)
    assert 0 < http.get.call_args.kwargs["timeout"] <= 2


def test_missing_app_credentials_fail_without_request():
    http = _http({})
    with pytest.raises(StrategyFailure, match="no Graph API app credentials"):
        GraphApiStrategy(GraphApiSettings(app_id=None, app_secret=None), http=http).attempt(TARGET, None)
    http.get.assert_not_called()


def test_api_error_payload(graph_settings):
    http = _http({"error": {"code": 803, "message": "Some of the aliases you requested do not exist"}})
    with pytest.raises(StrategyFailure) as exc_info:
        GraphApiStrategy(graph_settings, http=http).attempt(TARGET, None)
    assert exc_info.value.reason.startswith("API error 803")


def test_profile_without_text(graph_settings):
    with pytest.raises(StrategyFailure, match="returned no text"):
        GraphApiStrategy(graph_settings, http=_http({"name": "Quiet Page"})).attempt(TARGET, None)


def test_network_failure(graph_settings):
    http = _http(side_effect=requests.Timeout("read timed out"))
    with pytest.raises(StrategyFailure, match="request failed"):
        GraphApiStrategy(graph_settings, http=http).attempt(TARGET, None)
