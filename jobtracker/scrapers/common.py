"""Shared utilities for all scrapers."""

import asyncio
from typing import Optional

import requests
from bs4 import BeautifulSoup, Tag

from ..logger import get_logger
from ..retry import (
    AbortRetry,
    RetryDecision,
    RetryPolicy,
    exponential_backoff,
    is_transient_error,
    should_retry_http_status,
    with_retry,
)

logger = get_logger()

REQUEST_TIMEOUT = 15
USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)


class PageNotFound(AbortRetry):
    """The page is gone (404). Not retried; callers treat it as a terminal outcome."""

    def __init__(self, url: str):
        super().__init__(f"Page not found (404): {url}")
        self.url = url


class FetchError(Exception):
    """Non-success HTTP response. Whether it is retried depends on the status."""

    def __init__(self, url: str, status: Optional[int], reason: str = "", location: Optional[str] = None):
        super().__init__(f"Failed to fetch {url}: {status} {reason}".rstrip())
        self.url = url
        self.status = status
        self.location = location

    @property
    def is_redirect(self) -> bool:
        return self.status is not None and 300 <= self.status < 400


class ExtractionError(ValueError):
    """A DOM query did not match exactly the expected element or value."""
    pass


def _log_retry(exception: BaseException, attempt: int, delay: float) -> None:
    logger.record_retry()
    logger.warning(
        "Fetch failed, retrying",
        attempt=attempt,
        delay=round(delay, 2),
        error=str(exception),
    )


def _log_failure(exception: BaseException, attempt: int) -> None:
    logger.error("Fetch failed, giving up", attempts=attempt, error=str(exception))


def is_auth_wall(location: Optional[str]) -> bool:
    return bool(location) and "/authwall" in location


def should_retry_fetch(exception: BaseException) -> RetryDecision:
    """
    Retry condition for page fetches.

    - Redirects: retried only when LinkedIn throttles us to the auth wall
    - HTTP errors: retried for timeouts, rate limits and 5xx
    - Transport errors: always retried
    """
    if isinstance(exception, FetchError) and exception.status is not None:
        if exception.is_redirect:
            return RetryDecision(retry=is_auth_wall(exception.location))
        return RetryDecision(retry=should_retry_http_status(exception.status))
    if isinstance(exception, requests.RequestException):
        return RetryDecision(retry=True)
    return RetryDecision(retry=is_transient_error(exception))


FETCH_POLICY = RetryPolicy(
    max_attempts=6,
    initial_delay=2.0,
    backoff=exponential_backoff,
    retry_condition=should_retry_fetch,
    on_retry=_log_retry,
    on_failure=_log_failure,
)


def _fetch(url: str) -> str:
    logger.record_http_request()
    resp = requests.get(
        url,
        timeout=REQUEST_TIMEOUT,
        allow_redirects=False,
        headers={"User-Agent": USER_AGENT},
    )
    if resp.status_code == 404:
        raise PageNotFound(url)
    if resp.is_redirect:
        # LinkedIn answers throttled guest requests with a redirect to the auth wall
        location = resp.headers.get("location")
        raise FetchError(url, resp.status_code, f"redirect to {location}", location=location)
    if not resp.ok:
        raise FetchError(url, resp.status_code, resp.reason or "")
    return resp.text


async def get_html(url: str, policy: RetryPolicy = FETCH_POLICY, **overrides) -> BeautifulSoup:
    """
    Fetch a page and parse it, retrying transient failures.

    The blocking request runs in a worker thread so retry delays and other
    tasks are not held up.

    Raises:
        PageNotFound: On 404, without retrying
        FetchError / requests.RequestException: Once retries are exhausted,
            or at once when should_retry_fetch declines (e.g. 403, school redirect)
    """
    body = await with_retry(lambda: asyncio.to_thread(_fetch, url), policy, **overrides)
    return BeautifulSoup(body, "html.parser")


# DOM helpers


def get_element(soup: BeautifulSoup, selector: str) -> Tag:
    """Get exactly one element by CSS selector."""
    elements = soup.select(selector)
    if not elements:
        raise ExtractionError(f"No elements found for selector: {selector}")
    if len(elements) > 1:
        raise ExtractionError(f"Multiple elements found for selector: {selector}")
    return elements[0]


def find_element(soup: BeautifulSoup, selector: str) -> Optional[Tag]:
    """Find at most one element by CSS selector; None when absent."""
    elements = soup.select(selector)
    if len(elements) > 1:
        raise ExtractionError(f"Multiple elements found for selector: {selector}")
    return elements[0] if elements else None


def get_attribute_or_throw(element: Tag, name: str) -> str:
    value = element.get(name)
    if value is None:
        raise ExtractionError(f"Attribute {name} not found on element")
    if isinstance(value, list):
        value = " ".join(value)
    if not value.strip():
        raise ExtractionError(f"Attribute {name} is empty on element")
    return value


def get_text_or_throw(element: Tag) -> str:
    text = element.get_text().strip()
    if not text:
        raise ExtractionError("Element text is empty")
    return text
