"""Abstract base class for all source adapters."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Iterable, Iterator
from urllib.parse import urljoin, urlparse

import requests

from opportunity_scout.config import SourceConfig, PipelineConfig
from opportunity_scout.models import RawPosting

logger = logging.getLogger(__name__)

MIN_TITLE_LENGTH = 6  # titles of 5 characters or fewer are navigation noise

# Responses that mean "stop asking", never worth a retry.
NO_RETRY_STATUSES = {403, 404, 429}


class BaseScraper(ABC):
    """Base class that all site-specific adapters extend.

    Subclasses implement `scrape()` as a generator of postings. Callers
    use `discover()`, which never raises: if the generator fails midway
    the postings yielded so far are kept and the error is logged.
    """

    base_url: str = ""

    def __init__(
        self,
        source_config: SourceConfig,
        pipeline_config: PipelineConfig,
        session: requests.Session | None = None,
    ):
        self.source_config = source_config
        self.pipeline_config = pipeline_config
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": pipeline_config.user_agent})
        self._last_request_time: float = 0
        if source_config.url:
            self.base_url = source_config.url

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self.source_config.name

    @abstractmethod
    def scrape(self) -> Iterator[RawPosting]:
        """Yield postings extracted from this source.

        Must be implemented by every subclass. May raise; `discover()`
        contains the failure.
        """
        ...

    def discover(self) -> list[RawPosting]:
        """Run the adapter, returning whatever postings it could extract."""
        collected: list[RawPosting] = []
        try:
            for posting in self.scrape():
                collected.append(posting)
        except Exception as exc:
            logger.error(
                "[%s] Discovery aborted after %d postings: %s",
                self.name, len(collected), exc,
            )
        logger.info("[%s] Discovered %d opportunities", self.name, len(collected))
        return collected

    # ------------------------------------------------------------------
    # Posting helpers
    # ------------------------------------------------------------------

    def absolute_url(self, href: str | None) -> str | None:
        """Resolve an href against the site base; None if not http(s)."""
        if not href:
            return None
        href = href.strip()
        url = href if href.startswith("http") else urljoin(self.base_url, href)
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return None
        return url

    def make_posting(
        self,
        title: str,
        href: str | None,
        description: str = "",
        tags: Iterable[str] = (),
        posted_at: str | None = None,
    ) -> RawPosting | None:
        """Build a RawPosting, or None if title or URL fail the guards."""
        title = (title or "").strip()
        if len(title) < MIN_TITLE_LENGTH:
            return None

        url = self.absolute_url(href)
        if not url:
            return None

        description = (description or "").strip() or title
        return RawPosting(
            title=title,
            url=url,
            source=self.name,
            description=description[: self.pipeline_config.description_limit],
            posted_at=posted_at,
            tags=tuple(tags),
        )

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _get(self, url: str, **kwargs) -> requests.Response:
        """Rate-limited GET request with bounded timeout and retries."""
        kwargs.setdefault("timeout", self.pipeline_config.request_timeout_seconds)
        attempts = max(1, self.pipeline_config.max_attempts)

        for attempt in range(1, attempts + 1):
            self._rate_limit()
            try:
                resp = self.session.get(url, **kwargs)
                resp.raise_for_status()
                return resp
            except requests.RequestException as exc:
                logger.warning(
                    "[%s] GET %s attempt %d failed: %s", self.name, url, attempt, exc
                )
                status = exc.response.status_code if exc.response is not None else None
                if attempt == attempts or status in NO_RETRY_STATUSES:
                    raise
                time.sleep(self.pipeline_config.retry_backoff_seconds * 2 ** (attempt - 1))

        # Unreachable, but keeps type checkers happy
        raise RuntimeError("Retry loop exited unexpectedly")

    def _rate_limit(self) -> None:
        """Enforce minimum delay between requests from this adapter."""
        delay = self.pipeline_config.query_delay_seconds
        elapsed = time.monotonic() - self._last_request_time
        if self._last_request_time and elapsed < delay:
            time.sleep(delay - elapsed)
        self._last_request_time = time.monotonic()
