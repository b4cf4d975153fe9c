"""Web page content extraction.

Two interchangeable strategies turn a URL into :class:`ScrapedContent`:

* ``static``   - plain HTTP GET parsed with BeautifulSoup; fast, no JavaScript.
* ``rendered`` - headless Chrome driven by Selenium, for pages that build
  their content client-side.

Both strip the same boilerplate elements, search the same ordered list of
content selectors and apply the same cleanup and minimum-length gate, so a
loader never needs to know which one ran.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Mapping, Protocol
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup, Tag
from selenium import webdriver
from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.chrome.options import Options

from doc_indexer.core.config import Settings
from doc_indexer.core.errors import (
    ContentTooShortError,
    ExtractionError,
    FetchTimeoutError,
    HttpStatusError,
    NetworkError,
)
from doc_indexer.core.logging import get_logger
from doc_indexer.ingest.types import ScrapedContent
from doc_indexer.utils.text import clean_text, normalize
from doc_indexer.utils.time import iso_timestamp

logger = get_logger(__name__)

STATIC = "static"
RENDERED = "rendered"

MIN_CONTENT_CHARS = 100

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

REQUEST_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate",
    "Connection": "keep-alive",
}

UNWANTED_SELECTORS = (
    "script",
    "style",
    "noscript",
    "iframe",
    "nav",
    "footer",
    "header",
    "aside",
    ".ad",
    ".advertisement",
    ".sidebar",
    ".social-share",
    ".comments",
    ".related-posts",
    "#comments",
    "[role='complementary']",
    "[aria-label='advertisement']",
)

CONTENT_SELECTORS = (
    "article",
    "main",
    "[role='main']",
    ".content",
    ".post-content",
    ".article-content",
    ".entry-content",
    "#content",
    "body",
)

# Sites whose article text only exists after client-side rendering.
RENDER_REQUIRED_DOMAINS = (
    "twitter.com",
    "x.com",
    "instagram.com",
    "linkedin.com",
    "facebook.com",
    "medium.com",
)

_BLOCK_TAGS = (
    "p", "div", "section", "article", "main", "blockquote", "pre", "table",
    "ul", "ol", "dl", "h1", "h2", "h3", "h4", "h5", "h6", "figure", "form",
)
_LINE_TAGS = ("li", "tr", "dt", "dd")
_DROPPED_TAGS = ("img", "picture", "svg", "video", "audio", "canvas")


class ExtractionStrategy(Protocol):
    name: str

    def extract(self, url: str) -> ScrapedContent:
        ...


def select_strategy(url: str) -> str:
    """Pick ``rendered`` for known script-heavy domains, ``static`` otherwise."""
    host = (urlparse(url.strip()).hostname or "").lower()
    for domain in RENDER_REQUIRED_DOMAINS:
        if host == domain or host.endswith("." + domain):
            return RENDERED
    return STATIC


# HTML helpers -----------------------------------------------------------


def extract_title(soup: BeautifulSoup) -> str | None:
    og_title = soup.find("meta", attrs={"property": "og:title"})
    if og_title and og_title.get("content", "").strip():
        return normalize(og_title["content"])
    if soup.title and soup.title.get_text(strip=True):
        return normalize(soup.title.get_text())
    h1 = soup.find("h1")
    if h1 and h1.get_text(strip=True):
        return normalize(h1.get_text())
    return None


def extract_og_image(soup: BeautifulSoup, base_url: str) -> str | None:
    og_image = soup.find("meta", attrs={"property": "og:image"})
    if not og_image:
        return None
    return resolve_url(og_image.get("content", ""), base_url)


def resolve_url(value: str | None, base_url: str) -> str | None:
    """Make *value* absolute against *base_url*, keeping it raw if that fails."""
    if not value or not value.strip():
        return None
    value = value.strip()
    try:
        return urljoin(base_url, value)
    except ValueError:
        return value


def strip_unwanted(root: BeautifulSoup | Tag) -> None:
    for selector in UNWANTED_SELECTORS:
        for tag in root.select(selector):
            if not tag.decomposed:
                tag.decompose()


def find_main_content(soup: BeautifulSoup) -> Tag | BeautifulSoup:
    for selector in CONTENT_SELECTORS:
        element = soup.select_one(selector)
        if element is not None and element.get_text(strip=True):
            return element
    return soup.body or soup


def html_to_text(element: Tag | BeautifulSoup) -> str:
    """Flatten retained HTML to text: links keep their text, media is dropped."""
    for tag in element.find_all(_DROPPED_TAGS):
        if not tag.decomposed:
            tag.decompose()
    for anchor in element.find_all("a"):
        anchor.unwrap()
    for br in element.find_all("br"):
        br.replace_with("\n")
    for tag in element.find_all(_LINE_TAGS):
        tag.insert_before("\n")
        tag.insert_after("\n")
    for tag in element.find_all(_BLOCK_TAGS):
        tag.insert_before("\n\n")
        tag.insert_after("\n\n")
    return clean_text(element.get_text())


def parse_html(html: str | bytes, url: str, strategy: str = STATIC) -> ScrapedContent:
    """Turn a fetched HTML document into :class:`ScrapedContent`."""
    soup = BeautifulSoup(html, "html.parser")
    title = extract_title(soup)
    og_image = extract_og_image(soup, url)
    strip_unwanted(soup)
    content = html_to_text(find_main_content(soup))
    return _build_content(content, title, og_image, url, strategy)


def _build_content(
    content: str,
    title: str | None,
    og_image: str | None,
    url: str,
    strategy: str,
) -> ScrapedContent:
    if len(content) < MIN_CONTENT_CHARS:
        raise ContentTooShortError(
            f"Content too short ({len(content)} characters); the page may be blocked or empty: {url}",
            length=len(content),
            url=url,
            strategy=strategy,
        )
    return ScrapedContent(
        content=content,
        title=title or None,
        og_image=og_image or None,
        source_url=url,
        scraped_at=iso_timestamp(),
        strategy=strategy,
    )


# Strategies --------------------------------------------------------------


class StaticFetchStrategy:
    """Fetch with ``requests`` and parse the response with BeautifulSoup."""

    name = STATIC

    def __init__(
        self,
        timeout: float = 20.0,
        max_bytes: int = 10 * 1024 * 1024,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        self.timeout = timeout
        self.max_bytes = max_bytes
        self.headers = dict(headers or REQUEST_HEADERS)

    def extract(self, url: str) -> ScrapedContent:
        body = self._fetch(url)
        return parse_html(body, url, strategy=self.name)

    def _fetch(self, url: str) -> bytes:
        try:
            response = requests.get(url, headers=self.headers, timeout=self.timeout, stream=True)
        except requests.Timeout as exc:
            raise FetchTimeoutError(f"Timed out after {self.timeout}s fetching {url}", url=url) from exc
        except requests.ConnectionError as exc:
            raise NetworkError(f"Network failure fetching {url}: {exc}", url=url) from exc
        except requests.RequestException as exc:
            raise ExtractionError(f"Request failed for {url}: {exc}", url=url) from exc

        try:
            if response.status_code != 200:
                raise HttpStatusError(
                    f"HTTP {response.status_code} fetching {url}",
                    status_code=response.status_code,
                    url=url,
                )
            declared = response.headers.get("content-length")
            if declared and declared.isdigit() and int(declared) > self.max_bytes:
                raise ExtractionError(
                    f"Response of {declared} bytes exceeds the {self.max_bytes} byte limit: {url}",
                    url=url,
                )
            received = bytearray()
            for block in response.iter_content(chunk_size=64 * 1024):
                received.extend(block)
                if len(received) > self.max_bytes:
                    raise ExtractionError(
                        f"Response exceeds the {self.max_bytes} byte limit: {url}",
                        url=url,
                    )
            return bytes(received)
        except requests.Timeout as exc:
            raise FetchTimeoutError(f"Timed out after {self.timeout}s reading {url}", url=url) from exc
        except requests.RequestException as exc:
            raise NetworkError(f"Network failure reading {url}: {exc}", url=url) from exc
        finally:
            response.close()


_METADATA_SCRIPT = """
const pick = (selector) => {
  const el = document.querySelector(selector);
  return el && el.content ? el.content : null;
};
const h1 = document.querySelector('h1');
return {
  ogTitle: pick('meta[property="og:title"]'),
  title: document.title || null,
  h1: h1 ? h1.innerText : null,
  ogImage: pick('meta[property="og:image"]'),
};
"""

_REMOVE_SCRIPT = """
for (const selector of arguments[0]) {
  document.querySelectorAll(selector).forEach((el) => el.remove());
}
"""

_CONTENT_SCRIPT = """
for (const selector of arguments[0]) {
  const el = document.querySelector(selector);
  if (el && el.innerText && el.innerText.trim().length > 0) {
    return el.innerText;
  }
}
return document.body ? document.body.innerText : '';
"""


class RenderedStrategy:
    """Render the page in headless Chrome before extracting text.

    A fresh browser is started per call and always quit afterwards.
    """

    name = RENDERED

    def __init__(
        self,
        timeout: float = 30.0,
        settle_delay: float = 2.0,
        headless: bool = True,
        driver_factory: Callable[[], Any] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.timeout = timeout
        self.settle_delay = settle_delay
        self.headless = headless
        self._driver_factory = driver_factory or self._chrome_driver
        self._sleep = sleep

    def extract(self, url: str) -> ScrapedContent:
        try:
            driver = self._driver_factory()
        except WebDriverException as exc:
            raise ExtractionError(f"Could not start headless browser: {exc.msg}", url=url) from exc

        try:
            driver.set_page_load_timeout(self.timeout)
            driver.get(url)
            self._sleep(self.settle_delay)
            meta = driver.execute_script(_METADATA_SCRIPT) or {}
            driver.execute_script(_REMOVE_SCRIPT, list(UNWANTED_SELECTORS))
            raw_content = driver.execute_script(_CONTENT_SCRIPT, list(CONTENT_SELECTORS)) or ""
        except TimeoutException as exc:
            raise FetchTimeoutError(f"Timed out after {self.timeout}s rendering {url}", url=url) from exc
        except WebDriverException as exc:
            raise ExtractionError(f"Browser failed rendering {url}: {exc.msg}", url=url) from exc
        finally:
            driver.quit()

        title = _first_text(meta.get("ogTitle"), meta.get("title"), meta.get("h1"))
        og_image = resolve_url(meta.get("ogImage"), url)
        return _build_content(clean_text(raw_content), title, og_image, url, self.name)

    def _chrome_driver(self) -> webdriver.Chrome:
        options = Options()
        if self.headless:
            options.add_argument("--headless=new")
        options.add_argument("--no-sandbox")
        options.add_argument("--disable-dev-shm-usage")
        options.add_argument("--disable-blink-features=AutomationControlled")
        options.add_argument(f"user-agent={USER_AGENT}")
        # "eager" returns from get() once DOMContentLoaded fires.
        options.page_load_strategy = "eager"
        return webdriver.Chrome(options=options)


def _first_text(*values: str | None) -> str | None:
    for value in values:
        if value and value.strip():
            return normalize(value)
    return None


def create_strategy(name: str, settings: Settings | None = None) -> ExtractionStrategy:
    """Map a strategy tag to a configured implementation."""
    settings = settings or Settings()
    if name == STATIC:
        return StaticFetchStrategy(timeout=settings.scraper_timeout, max_bytes=settings.scraper_max_bytes)
    if name == RENDERED:
        return RenderedStrategy(
            timeout=settings.render_timeout,
            settle_delay=settings.render_settle_delay,
            headless=settings.render_headless,
        )
    raise ValueError(f"Unsupported extraction strategy: {name!r}")


class ContentExtractor:
    """Facade choosing a strategy per URL and running it."""

    def __init__(
        self,
        settings: Settings | None = None,
        strategies: Mapping[str, ExtractionStrategy] | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self._strategies: dict[str, ExtractionStrategy] = dict(strategies or {})

    def strategy_for(self, url: str, strategy: str | None = None) -> str:
        name = strategy or self.settings.scraper_engine or select_strategy(url)
        if name not in (STATIC, RENDERED):
            raise ExtractionError(f"Unknown extraction strategy {name!r}", url=url, strategy=name)
        return name

    def extract(self, url: str, strategy: str | None = None) -> ScrapedContent:
        name = self.strategy_for(url, strategy)
        implementation = self._strategies.get(name)
        if implementation is None:
            implementation = create_strategy(name, self.settings)
            self._strategies[name] = implementation
        logger.info("Extracting %s with %s strategy", url, name, extra={"ctx_stage": "extract"})
        scraped = implementation.extract(url)
        logger.info(
            "Extracted %s characters from %s",
            len(scraped.content),
            url,
            extra={"ctx_stage": "extract", "ctx_strategy": name},
        )
        return scraped


__all__ = [
    "STATIC",
    "RENDERED",
    "MIN_CONTENT_CHARS",
    "ExtractionStrategy",
    "StaticFetchStrategy",
    "RenderedStrategy",
    "ContentExtractor",
    "create_strategy",
    "parse_html",
    "select_strategy",
]
