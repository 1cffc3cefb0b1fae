import logging
import random
from typing import Any, Dict, List, Optional

from playwright.sync_api import sync_playwright, Browser, BrowserContext, Page, Playwright
from playwright.sync_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError
from playwright_stealth import stealth_sync

from schedule_scrapers.config import BrowserSettings, settings as global_settings

logger = logging.getLogger(__name__)

WEBDRIVER_MASK_SCRIPT = "Object.defineProperty(navigator, 'webdriver', {get: () => undefined})"

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",
]

# Dialogs the social surface throws over content: login nags, cookie consent, "not now" prompts.
POPUP_CLOSE_SELECTORS = [
    'div[role="dialog"] [aria-label="Close"]',
    '[aria-label="Close"]',
    'div[role="dialog"] div[role="button"]:has-text("Not now")',
    'div[role="dialog"] div[role="button"]:has-text("Close")',
    'button:has-text("Allow all cookies")',
    'button:has-text("Decline optional cookies")',
    'button[data-testid="cookie-policy-manage-dialog-accept-button"]',
]


class StealthBrowser:
    """
    Context manager around a stealth-patched Playwright Chromium.

        with StealthBrowser(cookies=session.to_playwright_cookies()) as browser:
            page = browser.page
    """

    def __init__(self, browser_settings: Optional[BrowserSettings] = None, cookies: Optional[List[Dict[str, Any]]] = None):
        self.settings = browser_settings or global_settings.browser
        self.cookies = cookies or []
        self.playwright_instance: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None

    def __enter__(self) -> 'StealthBrowser':
        self.playwright_instance = sync_playwright().start()
        try:
            self.browser = self.playwright_instance.chromium.launch(headless=self.settings.headless, args=LAUNCH_ARGS)
            self.context = self.browser.new_context(
                user_agent=self.settings.user_agent,
                viewport={"width": self.settings.viewport_width, "height": self.settings.viewport_height},
                locale="en-US",
            )
            if self.cookies:
                self.context.add_cookies(self.cookies)
            self.context.add_init_script(WEBDRIVER_MASK_SCRIPT)
            self.page = self.context.new_page()
            stealth_sync(self.page)
            self.page.set_default_navigation_timeout(self.settings.navigation_timeout_ms)
            logger.debug(f"Stealth browser launched (headless: {self.settings.headless}, cookies: {len(self.cookies)}).")
        except Exception:
            self.__exit__(None, None, None)
            raise
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.browser and self.browser.is_connected():
            try:
                self.browser.close()
            except Exception as e:
                logger.error(f"Browser close error: {e}", exc_info=True)
        if self.playwright_instance:
            try:
                self.playwright_instance.stop()
            except Exception as e:
                logger.error(f"Playwright stop error: {e}", exc_info=True)
        self.browser = self.context = self.page = None
        self.playwright_instance = None

    def context_cookies(self) -> List[Dict[str, Any]]:
        return self.context.cookies() if self.context else []


def close_popups(page: Page, selectors: Optional[List[str]] = None) -> int:
    """Click away whatever overlay selectors are visible, then press Escape. Returns the number closed."""
    closed = 0
    for selector in selectors or POPUP_CLOSE_SELECTORS:
        try:
            button = page.locator(selector).first
            if button.is_visible(timeout=1000):
                button.click(timeout=3000)
                closed += 1
                logger.debug(f"Closed overlay with selector '{selector}'.")
                page.wait_for_timeout(random.randint(400, 900))
        except PlaywrightTimeoutError:
            logger.debug(f"Overlay selector '{selector}' not visible or timed out.")
        except PlaywrightError as e:
            logger.debug(f"Overlay selector '{selector}' could not be clicked: {e}")
    page.keyboard.press("Escape")
    return closed
