import json
from unittest import mock

import pytest
import requests

from schedule_scrapers.ai.normalizer import AINormalizer
from schedule_scrapers.config import GeminiSettings, WorkerPoolSettings
from schedule_scrapers.errors import ItemFailure
from schedule_scrapers.models import TargetKind, WorkItem
from schedule_scrapers.workers.photo_worker import PhotoWorker
from schedule_scrapers.workers.pool import WorkerPool

PHOTO_PAGE = "https://www.facebook.com/photo/?fbid=123&set=g.456"
CDN_THUMB = "https://scontent.xx.fbcdn.net/v/t39/s720x720/123_n.jpg?stp=dst-jpg_s720x720&oh=abc"
CDN_LARGE = "https://scontent.xx.fbcdn.net/v/t39/123_n.jpg?oh=abc"
SHOW_JSON = json.dumps({"host_name": None, "shows": [
    {"venue": "Crescent Lounge", "day": "friday", "start_time": "21:00", "end_time": "02:00"},
]})


class FakeResponse:
    def __init__(self, url, status=200, content_type="image/jpeg", body=b"\xff\xd8jpeg-bytes"):
        self.url = url
        self.status_code = status
        self.headers = {"Content-Type": content_type, "Content-Length": str(len(body))}
        self._body = body

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error for url: {self.url}")

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self._body), chunk_size):
            yield self._body[i:i + chunk_size]


class FakeHttp:
    """requests.Session stand-in keyed by URL."""

    def __init__(self, get_map=None, head_map=None):
        self.get_map = get_map or {}
        self.head_map = head_map or {}
        self.fetched = []
        self.closed = False

    def close(self):
        self.closed = True

    def head(self, url, **kwargs):
        return FakeResponse(self.head_map.get(url, url), content_type="text/html")

    def get(self, url, **kwargs):
        self.fetched.append(url)
        response = self.get_map.get(url)
        if response is None:
            return FakeResponse(url, status=404)
        return response


@pytest.fixture
def pool_settings():
    return WorkerPoolSettings(min_delay_ms=0, max_delay_ms=0, max_download_bytes=1024)


def _worker(fake_gemini, http, resolver=None, pool_settings=None, replies=(SHOW_JSON,)):
    client = fake_gemini(*replies)
    normalizer = AINormalizer(client, GeminiSettings())
    worker = PhotoWorker(
        normalizer,
        page_resolver=resolver,
        source_kind=TargetKind.GROUP,
        pool_settings=pool_settings,
        http_session_factory=lambda: http,
    )
    return worker, client


def test_photo_page_is_resolved_and_large_image_downloaded(fake_gemini, pool_settings):
    http = FakeHttp(get_map={CDN_LARGE: FakeResponse(CDN_LARGE)})
    resolver = mock.Mock(return_value=CDN_THUMB)
    worker, client = _worker(fake_gemini, http, resolver, pool_settings)

    result = worker.process(WorkItem(index=3, url=PHOTO_PAGE), worker_index=1)

    resolver.assert_called_once_with(PHOTO_PAGE)
    assert result.ok
    assert result.index == 3
    assert result.worker_index == 1
    assert result.input_url == PHOTO_PAGE
    assert result.resolved_source_url == CDN_LARGE
    assert result.resolved_source_url != result.input_url
    assert result.candidates[0].source_url == CDN_LARGE
    assert result.candidates[0].confidence == pytest.approx(0.8)
    assert client.calls[0]["image_bytes"] == b"\xff\xd8jpeg-bytes"
    assert client.calls[0]["mime_type"] == "image/jpeg"


def test_falls_back_to_resolved_url_when_large_variant_fails(fake_gemini, pool_settings):
    http = FakeHttp(get_map={CDN_THUMB: FakeResponse(CDN_THUMB, content_type="image/png")})
    worker, _ = _worker(fake_gemini, http, mock.Mock(return_value=CDN_THUMB), pool_settings)

    result = worker.process(WorkItem(index=0, url=PHOTO_PAGE), worker_index=0)

    assert http.fetched == [CDN_LARGE, CDN_THUMB]
    assert result.resolved_source_url == CDN_THUMB


def test_redirect_to_cdn_skips_page_resolver(fake_gemini, pool_settings):
    share = "https://www.facebook.com/share/p/abc/"
    http = FakeHttp(head_map={share: CDN_LARGE}, get_map={CDN_LARGE: FakeResponse(CDN_LARGE)})
    resolver = mock.Mock()
    worker, _ = _worker(fake_gemini, http, resolver, pool_settings)

    assert worker.resolve(share) == CDN_LARGE
    resolver.assert_not_called()


def test_direct_cdn_input_is_downloaded_as_is(fake_gemini, pool_settings):
    http = FakeHttp(get_map={CDN_LARGE: FakeResponse(CDN_LARGE)})
    worker, _ = _worker(fake_gemini, http, None, pool_settings)

    result = worker.process(WorkItem(index=0, url=CDN_LARGE), worker_index=0)
    assert result.ok
    assert result.resolved_source_url == CDN_LARGE


def test_redirected_download_reports_the_url_actually_fetched(fake_gemini, pool_settings):
    flyer = "https://example.com/uploads/flyer.jpg"
    cdn = "https://scontent.xx.fbcdn.net/v/t39/999_n.jpg?oh=zz"
    http = FakeHttp(get_map={flyer: FakeResponse(cdn)})
    worker, _ = _worker(fake_gemini, http, None, pool_settings)

    result = worker.process(WorkItem(index=0, url=flyer), worker_index=0)

    assert http.fetched == [flyer]
    assert result.ok
    assert result.input_url == flyer
    assert result.resolved_source_url == cdn
    assert all(c.source_url == cdn for c in result.candidates)


def test_pool_closes_worker_http_sessions(fake_gemini, pool_settings):
    sessions = []

    def new_session():
        sessions.append(FakeHttp(get_map={CDN_LARGE: FakeResponse(CDN_LARGE)}))
        return sessions[-1]

    worker = PhotoWorker(AINormalizer(fake_gemini(SHOW_JSON), GeminiSettings()), pool_settings=pool_settings,
                         http_session_factory=new_session)

    WorkerPool(worker, pool_settings, max_workers=2).process_all([CDN_LARGE, CDN_LARGE])

    opened = len(sessions)
    assert 1 <= opened <= 2
    assert all(s.closed for s in sessions)
    assert worker.http is sessions[-1]
    assert len(sessions) == opened + 1
    assert not sessions[-1].closed


def test_resolver_returning_the_input_is_an_item_failure(fake_gemini, pool_settings):
    worker, _ = _worker(fake_gemini, FakeHttp(), mock.Mock(return_value=PHOTO_PAGE), pool_settings)
    with pytest.raises(ItemFailure, match="did not return a content URL"):
        worker.resolve(PHOTO_PAGE)


def test_missing_resolver_is_an_item_failure(fake_gemini, pool_settings):
    worker, _ = _worker(fake_gemini, FakeHttp(), None, pool_settings)
    with pytest.raises(ItemFailure, match="no page resolver"):
        worker.resolve(PHOTO_PAGE)


@pytest.mark.parametrize("response, reason", [
    (FakeResponse(CDN_LARGE, content_type="text/html"), "unexpected content type text/html"),
    (FakeResponse(CDN_LARGE, body=b""), "empty image body"),
    (FakeResponse(CDN_LARGE, body=b"x" * 2048), "image too large"),
])
def test_bad_downloads_are_rejected(fake_gemini, pool_settings, response, reason):
    worker, _ = _worker(fake_gemini, FakeHttp(get_map={CDN_LARGE: response}), None, pool_settings)
    with pytest.raises(ItemFailure) as exc_info:
        worker.download(CDN_LARGE)
    assert reason in exc_info.value.reason


def test_unparseable_ai_reply_marks_the_result(fake_gemini, pool_settings):
    http = FakeHttp(get_map={CDN_LARGE: FakeResponse(CDN_LARGE)})
    worker, _ = _worker(fake_gemini, http, None, pool_settings, replies=("sorry, no json",))

    result = worker.process(WorkItem(index=0, url=CDN_LARGE), worker_index=0)
    assert not result.ok
    assert result.error.startswith("ai parse failure")
    assert result.candidates == []


def test_pool_with_photo_worker_isolates_failures(fake_gemini, pool_settings):
    good_page = "https://www.facebook.com/photo/?fbid=1"
    bad_page = "https://www.facebook.com/photo/?fbid=2"
    http = FakeHttp(get_map={CDN_LARGE: FakeResponse(CDN_LARGE)})
    resolver = mock.Mock(side_effect=lambda url: CDN_LARGE if url == good_page else url)
    worker, _ = _worker(fake_gemini, http, resolver, pool_settings)

    results = WorkerPool(worker, pool_settings, max_workers=2).process_all([good_page, bad_page, good_page])

    assert [r.ok for r in results] == [True, False, True]
    assert results[1].error == "page resolver did not return a content URL"
    assert all(r.resolved_source_url == CDN_LARGE for r in results if r.ok)
    assert {c.day for r in results for c in r.candidates} == {"friday"}
    assert all(c.source_url == CDN_LARGE for r in results for c in r.candidates)
