"""
Browser-driven extraction.

Restores a session into a stealth Chromium, walks to the target, scrolls to
trigger lazy loading and captures page text, an optional screenshot and the
photo links found on the way. Landing on a login or checkpoint surface is
reported as AuthRequired so the coordinator can re-authenticate instead of
just falling through to the next strategy.
"""
import logging
import random
import time
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlparse

from playwright.sync_api import Page
from playwright.sync_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError
from pydantic import BaseModel, Field

from schedule_scrapers.browser.stealth import StealthBrowser, close_popups
from schedule_scrapers.config import BrowserSettings, settings as global_settings
from schedule_scrapers.errors import AuthRequired, StrategyFailure
from schedule_scrapers.models import ExtractionTarget, FieldOrigin, StrategyResult, TargetKind
from schedule_scrapers.session.store import Session, SessionCookie

logger = logging.getLogger(__name__)

AUTH_WALL_PATH_MARKERS = ("/login", "/checkpoint")
LOGIN_FORM_SELECTORS = [
    "#login_form",
    'input[name="email"]',
    'input[name="pass"]',
    'input[type="password"]',
    'button[name="login"]',
]
LOGGED_IN_SELECTOR = '[role="navigation"]'

CDN_HOST_MARKERS = ("scontent", "fbcdn", "cdninstagram")
EXCLUDED_IMAGE_MARKERS = ("profile", "avatar", "icon", "emoji", "reaction")
MAIN_IMAGE_SELECTORS = [
    'img[data-visualcompletion="media-vc-image"]',
    'div[role="dialog"] img[src*="scontent"]',
    'img[src*="scontent"]',
    'img[src*="fbcdn"]',
]

PHOTO_LINK_SCRIPT = """
() => Array.from(document.querySelectorAll('a[href*="/photo"]')).map(a => {
    const img = a.querySelector('img');
    if (!img) return null;
    return {
        href: a.href,
        src: img.currentSrc || img.src || '',
        alt: img.alt || '',
        width: img.naturalWidth || img.width || 0,
        height: img.naturalHeight || img.height || 0,
    };
}).filter(Boolean)
"""

LARGEST_CDN_IMAGE_SCRIPT = """
() => {
    const imgs = Array.from(document.querySelectorAll('img'))
        .filter(img => /scontent|fbcdn/.test(img.src))
        .map(img => ({src: img.src, area: (img.naturalWidth || img.width) * (img.naturalHeight || img.height)}));
    imgs.sort((a, b) => b.area - a.area);
    return imgs.length ? imgs[0].src : null;
}
"""


class PageCapture(BaseModel):
    final_url: str
    page_text: str = ""
    screenshot: Optional[bytes] = None
    sub_items: List[str] = Field(default_factory=list)
    auth_wall_detected: bool = False
    scroll_cycles: int = 0


def is_auth_wall_url(url: str) -> bool:
    path = urlparse(url).path.lower()
    return any(path.startswith(marker) for marker in AUTH_WALL_PATH_MARKERS)


def media_section_url(url: str) -> str:
    """Group and page photos live under /media."""
    base = url.split("?")[0].rstrip("/")
    return base if base.endswith("/media") else f"{base}/media"


def is_cdn_image(src: str) -> bool:
    return any(marker in (src or "") for marker in CDN_HOST_MARKERS)


def filter_photo_links(raw_links: Iterable[Dict[str, Any]], min_size_px: int = 100) -> List[str]:
    """Keep links whose thumbnail is a real CDN photo, dropping avatars and icons. Order kept, duplicates dropped."""
    seen = set()
    photo_urls = []
    for link in raw_links:
        href = link.get("href") or ""
        src = link.get("src") or ""
        if not href or not is_cdn_image(src):
            continue
        lowered = f"{src} {link.get('alt', '')}".lower()
        if any(marker in lowered for marker in EXCLUDED_IMAGE_MARKERS):
            continue
        if link.get("width", 0) <= min_size_px or link.get("height", 0) <= min_size_px:
            continue
        if href in seen:
            continue
        seen.add(href)
        photo_urls.append(href)
    return photo_urls


def _page_shows_login_form(page: Page) -> bool:
    if page.locator(LOGGED_IN_SELECTOR).count() > 0:
        return False
    return any(page.locator(selector).count() > 0 for selector in LOGIN_FORM_SELECTORS)


class BrowserExtractor:
    def __init__(self, browser_settings: Optional[BrowserSettings] = None):
        self.settings = browser_settings or global_settings.browser

    def run(self, session: Session, target: ExtractionTarget, deadline: Optional[float] = None) -> StrategyResult:
        """Capture the target with the session. Raises AuthRequired on an auth wall, StrategyFailure otherwise."""
        url = media_section_url(target.url) if target.kind is TargetKind.GROUP else target.url
        try:
            capture = self.capture(url, session, deadline=deadline)
        except (PlaywrightError, PlaywrightTimeoutError) as e:
            raise StrategyFailure("authenticated-browser", f"navigation failed: {e}") from e

        if capture.auth_wall_detected:
            raise AuthRequired(f"auth wall at {capture.final_url}")

        if not capture.sub_items and not capture.page_text.strip() and not capture.screenshot:
            raise StrategyFailure("authenticated-browser", f"no content captured from {url}")

        return StrategyResult(
            strategy_name="authenticated-browser",
            success=True,
            raw_content=capture.page_text or None,
            screenshot=capture.screenshot,
            sub_items=capture.sub_items,
            diagnostics=[f"{len(capture.sub_items)} photo link(s) after {capture.scroll_cycles} scroll cycle(s)"],
            field_origin=FieldOrigin.FREE_TEXT,
        )

    def capture(
        self,
        url: str,
        session: Optional[Session],
        max_scroll_cycles: Optional[int] = None,
        scroll_wait_ms: Optional[int] = None,
        collect_sub_items: bool = True,
        deadline: Optional[float] = None,
    ) -> PageCapture:
        max_cycles = self.settings.max_scroll_cycles if max_scroll_cycles is None else max_scroll_cycles
        wait_ms = self.settings.scroll_wait_ms if scroll_wait_ms is None else scroll_wait_ms
        cookies = session.to_playwright_cookies() if session else []

        with StealthBrowser(self.settings, cookies=cookies) as browser:
            page = browser.page
            logger.info(f"Navigating to {url}")
            page.goto(url, wait_until="domcontentloaded", timeout=self.navigation_timeout_ms(deadline))
            page.wait_for_timeout(random.randint(1500, 3000))

            if is_auth_wall_url(page.url) or _page_shows_login_form(page):
                logger.warning(f"Auth wall detected at {page.url}")
                return PageCapture(final_url=page.url, auth_wall_detected=True)

            close_popups(page)
            cycles = self._scroll_until_stable(page, max_cycles, wait_ms, deadline) if max_cycles else 0

            sub_items = []
            if collect_sub_items:
                sub_items = filter_photo_links(page.evaluate(PHOTO_LINK_SCRIPT), self.settings.min_image_size_px)

            screenshot = page.screenshot(full_page=True) if self.settings.capture_screenshot else None
            page_text = page.inner_text("body")
            logger.info(f"Captured {len(page_text)} chars and {len(sub_items)} photo link(s) from {page.url}")
            return PageCapture(
                final_url=page.url,
                page_text=page_text,
                screenshot=screenshot,
                sub_items=sub_items,
                scroll_cycles=cycles,
            )

    def navigation_timeout_ms(self, deadline: Optional[float] = None) -> int:
        """Configured navigation timeout, shortened to what is left before the deadline (at least 1s)."""
        timeout_ms = self.settings.navigation_timeout_ms
        if deadline is None:
            return timeout_ms
        return max(1000, min(timeout_ms, int((deadline - time.monotonic()) * 1000)))

    def _scroll_until_stable(self, page: Page, max_cycles: int, wait_ms: int, deadline: Optional[float] = None) -> int:
        """Scroll in 80% viewport steps until the photo count stops changing or the deadline passes."""
        last_count = -1
        stable_rounds = 0
        cycles = 0
        for cycle in range(1, max_cycles + 1):
            if deadline is not None and time.monotonic() >= deadline:
                logger.info(f"Deadline reached; stopping scroll after {cycles} cycle(s).")
                break
            cycles = cycle
            if stable_rounds >= 2:
                page.evaluate("window.scrollTo(0, document.body.scrollHeight)")
            else:
                page.evaluate("window.scrollBy(0, Math.floor(window.innerHeight * 0.8))")
            page.wait_for_timeout(wait_ms)

            count = page.locator('a[href*="/photo"] img').count()
            stable_rounds = stable_rounds + 1 if count == last_count else 0
            last_count = count
            logger.debug(f"Scroll cycle {cycles}: {count} photo thumbnails (stable {stable_rounds})")
            if stable_rounds >= self.settings.stable_rounds_to_stop:
                break
        return cycles

    def login(self, email: str, password: str) -> Session:
        """Log in through the web form and return the resulting cookies as a Session."""
        with StealthBrowser(self.settings) as browser:
            page = browser.page
            page.goto(str(self.settings.login_url), wait_until="domcontentloaded")
            close_popups(page)
            page.fill("#email", email)
            time.sleep(random.uniform(0.3, 0.8))
            page.fill("#pass", password)
            time.sleep(random.uniform(0.3, 0.8))
            try:
                with page.expect_navigation(wait_until="domcontentloaded", timeout=self.settings.navigation_timeout_ms):
                    page.click('[name="login"]')
            except PlaywrightTimeoutError as e:
                raise AuthRequired(f"login did not navigate: {e}") from e

            if is_auth_wall_url(page.url):
                raise AuthRequired(f"login rejected, still at {page.url}")

            cookies = [SessionCookie.model_validate(c) for c in browser.context_cookies()]
            logger.info(f"Login navigated to {page.url}; captured {len(cookies)} cookies.")
            return Session(cookies=tuple(cookies), source="login")

    def resolve_photo(self, url: str, session: Optional[Session]) -> str:
        """Open a photo page and return the CDN URL of its main image."""
        cookies = session.to_playwright_cookies() if session else []
        with StealthBrowser(self.settings, cookies=cookies) as browser:
            page = browser.page
            page.goto(url, wait_until="domcontentloaded")
            page.wait_for_timeout(random.randint(1500, 2500))

            if is_auth_wall_url(page.url) or _page_shows_login_form(page):
                raise AuthRequired(f"session expired while opening {url}")

            close_popups(page)
            for selector in MAIN_IMAGE_SELECTORS:
                locator = page.locator(selector).first
                if locator.count() == 0:
                    continue
                src = locator.get_attribute("src")
                if src and is_cdn_image(src):
                    logger.debug(f"Main image for {url} found via '{selector}'")
                    return src

            src = page.evaluate(LARGEST_CDN_IMAGE_SCRIPT)
            if src:
                return src
        raise StrategyFailure("photo-resolver", f"no CDN image found on {url}")
