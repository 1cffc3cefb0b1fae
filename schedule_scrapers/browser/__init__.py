from schedule_scrapers.browser.extractor import BrowserExtractor, PageCapture, filter_photo_links, is_auth_wall_url, media_section_url

__all__ = ["BrowserExtractor", "PageCapture", "filter_photo_links", "is_auth_wall_url", "media_section_url"]
