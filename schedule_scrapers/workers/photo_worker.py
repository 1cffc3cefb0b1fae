import logging
import threading
from typing import Callable, List, Optional, Tuple

import requests

from schedule_scrapers.ai.normalizer import AINormalizer, NormalizationContext
from schedule_scrapers.config import WorkerPoolSettings, settings as global_settings
from schedule_scrapers.errors import ItemFailure
from schedule_scrapers.http_client import create_http_session
from schedule_scrapers.models import FieldOrigin, TargetKind, WorkItem, WorkResult
from schedule_scrapers.workers.media_urls import is_direct_content_url, large_scale_url

logger = logging.getLogger(__name__)

PageResolver = Callable[[str], str]


class PhotoWorker:
    """
    Processes one photo item end to end: resolve, download, normalize.

    Each pool thread gets its own requests.Session, so workers share nothing
    mutable besides the read-only session cookies inside `page_resolver`.
    """

    def __init__(
        self,
        normalizer: AINormalizer,
        page_resolver: Optional[PageResolver] = None,
        source_kind: TargetKind = TargetKind.GROUP,
        pool_settings: Optional[WorkerPoolSettings] = None,
        http_session_factory: Callable[[], requests.Session] = create_http_session,
        host_hint: Optional[str] = None,
    ):
        self.normalizer = normalizer
        self.page_resolver = page_resolver
        self.source_kind = source_kind
        self.settings = pool_settings or global_settings.worker_pool
        self._http_session_factory = http_session_factory
        self._local = threading.local()
        self._sessions: List[requests.Session] = []
        self._sessions_lock = threading.Lock()
        self.host_hint = host_hint

    @property
    def http(self) -> requests.Session:
        if getattr(self._local, "session", None) is None:
            session = self._http_session_factory()
            with self._sessions_lock:
                self._sessions.append(session)
            self._local.session = session
        return self._local.session

    def close(self) -> None:
        """Close every per-thread HTTP session. Later calls open fresh ones."""
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
            self._local = threading.local()
        for session in sessions:
            session.close()
        if sessions:
            logger.debug(f"Closed {len(sessions)} worker HTTP session(s).")

    def __call__(self, item: WorkItem, worker_index: int) -> WorkResult:
        return self.process(item, worker_index)

    def process(self, item: WorkItem, worker_index: int) -> WorkResult:
        content_url = self.resolve(item.url)
        image_bytes, mime_type, fetched_url = self.download(content_url)

        if fetched_url == item.url and not is_direct_content_url(item.url):
            raise ItemFailure(item.url, "fetched URL is still the share page, not a content URL")

        context = NormalizationContext(
            source_url=fetched_url,
            source_kind=self.source_kind,
            field_origin=FieldOrigin.IMAGE,
            host_hint=self.host_hint,
        )
        result = self.normalizer.normalize(image_bytes, context, mime_type=mime_type)
        return WorkResult(
            index=item.index,
            input_url=item.url,
            resolved_source_url=fetched_url,
            candidates=result.candidates,
            error=result.diagnostics[-1] if result.failed and result.diagnostics else None,
            worker_index=worker_index,
            diagnostics=result.diagnostics,
        )

    def resolve(self, url: str) -> str:
        """Find the content-delivery URL behind a photo page or share link."""
        if is_direct_content_url(url):
            return url

        try:
            response = self.http.head(url, allow_redirects=True, timeout=self.settings.download_timeout_sec)
            final_url = response.url
        except requests.RequestException as e:
            logger.debug(f"HEAD redirect probe failed for {url}: {e}")
            final_url = url

        if final_url != url and is_direct_content_url(final_url):
            logger.debug(f"{url} redirected to content URL {final_url}")
            return final_url

        if self.page_resolver is None:
            raise ItemFailure(url, "no content URL found and no page resolver configured")
        resolved = self.page_resolver(url)
        if not resolved or resolved == url:
            raise ItemFailure(url, "page resolver did not return a content URL")
        return resolved

    def download(self, content_url: str) -> Tuple[bytes, str, str]:
        """Fetch the large-scale variant first, then the resolved URL. Returns (bytes, mime, fetched_url)."""
        attempts: List[str] = [large_scale_url(content_url)]
        if attempts[0] != content_url:
            attempts.append(content_url)

        last_error: Optional[ItemFailure] = None
        for candidate in attempts:
            try:
                data, mime_type, fetched_url = self._fetch_image(candidate)
                return data, mime_type, fetched_url
            except ItemFailure as e:
                logger.info(f"Download of {candidate} failed ({e.reason}); {'trying fallback' if candidate != attempts[-1] else 'giving up'}.")
                last_error = e
        raise last_error

    def _fetch_image(self, url: str) -> Tuple[bytes, str, str]:
        """GET one image. Returns (bytes, mime, url the bytes came from after redirects)."""
        limit = self.settings.max_download_bytes
        try:
            with self.http.get(url, timeout=self.settings.download_timeout_sec, stream=True) as response:
                response.raise_for_status()
                mime_type = response.headers.get("Content-Type", "").split(";")[0].strip().lower()
                if not mime_type.startswith("image/"):
                    raise ItemFailure(url, f"unexpected content type {mime_type or 'unknown'}")
                declared = int(response.headers.get("Content-Length") or 0)
                if declared > limit:
                    raise ItemFailure(url, f"image too large ({declared} bytes)")

                chunks = []
                size = 0
                for chunk in response.iter_content(chunk_size=64 * 1024):
                    size += len(chunk)
                    if size > limit:
                        raise ItemFailure(url, f"image exceeds {limit} bytes")
                    chunks.append(chunk)
                fetched_url = response.url or url
        except requests.RequestException as e:
            raise ItemFailure(url, f"download failed: {e}") from e

        if not size:
            raise ItemFailure(url, "empty image body")
        return b"".join(chunks), mime_type, fetched_url
