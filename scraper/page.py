"""Static page fetcher handing parsed documents to source extractors."""
import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, TypeVar
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

T = TypeVar('T')

DEFAULT_USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
)


class PageDocument:
    """Parsed page that extraction functions are evaluated against."""

    def __init__(self, url: str, html: str):
        self.url = url
        self.soup = BeautifulSoup(html, 'html.parser')

    def evaluate(self, extract: Callable[['PageDocument'], T]) -> T:
        """Run an extraction function against this document."""
        return extract(self)

    def select_text(self, selector: str) -> List[str]:
        """Return the text content of every element matching a CSS selector."""
        return [element.get_text() for element in self.soup.select(selector)]

    def body_text(self, separator: str = '') -> str:
        root = self.soup.body or self.soup
        return root.get_text(separator)

    def absolute_url(self, href: Optional[str]) -> str:
        if not href:
            return ''
        return urljoin(self.url, href)


class StaticPage:
    """Fetches pages over HTTP and parses them with BeautifulSoup."""

    def __init__(
        self,
        timeout: int = 30,
        max_retries: int = 3,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize the page fetcher.

        Args:
            timeout: HTTP request timeout in seconds (default: 30)
            max_retries: Attempts per URL (default: 3)
            session: Shared requests session (default: a new one)
            sleep: Sleep function used between retries
        """
        self.timeout = timeout
        self.max_retries = max_retries
        self.session = session or requests.Session()
        self.session.headers.setdefault('User-Agent', DEFAULT_USER_AGENT)
        self.sleep = sleep

    def fetch(self, url: str) -> PageDocument:
        """
        Fetch and parse a page with retry logic.

        Args:
            url: Page URL

        Returns:
            PageDocument for the response body

        Raises:
            requests.RequestException: If all retry attempts fail
        """
        base_delay = 1  # seconds

        for attempt in range(self.max_retries):
            try:
                logger.info(f"Fetching {url} (attempt {attempt + 1}/{self.max_retries})")
                response = self.session.get(url, timeout=self.timeout)
                response.raise_for_status()
                return PageDocument(response.url or url, response.text)

            except requests.RequestException as e:
                if attempt < self.max_retries - 1:
                    delay = base_delay * (2 ** attempt)
                    logger.warning(
                        f"Request failed (attempt {attempt + 1}/{self.max_retries}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    self.sleep(delay)
                else:
                    logger.error(
                        f"All {self.max_retries} retry attempts failed. Last error: {e}"
                    )
                    raise

    def close(self) -> None:
        self.session.close()


@contextmanager
def open_page(timeout: int = 30) -> Iterator[StaticPage]:
    """Open a page fetcher for the whole run and close it afterwards."""
    page = StaticPage(timeout=timeout)
    try:
        yield page
    finally:
        page.close()
        logger.info("Page session closed")
