"""Shared extraction for server-rendered HTML job boards.

The boards we read do not publish a stable structure, so each adapter
declares two selector sets:

  1. Primary: job "cards" (containers) with a title element, a link and
     a description element inside.
  2. Fallback: bare links whose href looks like a job page. Used only
     when the primary set produced nothing on the page.

Both are CSS selectors evaluated with BeautifulSoup's `select()`.
"""

from __future__ import annotations

import logging
from typing import Iterator

from bs4 import BeautifulSoup, Tag

from opportunity_scout.models import RawPosting
from opportunity_scout.scrapers.base import BaseScraper

logger = logging.getLogger(__name__)


class HtmlBoardScraper(BaseScraper):
    """Scrapes one listing page using primary and fallback selector sets."""

    container_selector: str = "article"
    title_selector: str = "h2, h3, .title, a"
    description_selector: str = ".description, p"
    primary_tags: tuple[str, ...] = ()

    fallback_selector: str | None = None
    fallback_tags: tuple[str, ...] = ()
    fallback_min_title_length: int = 11
    fallback_reject_url_titles: bool = False

    def scrape(self) -> Iterator[RawPosting]:
        logger.info("[%s] Fetching listings from %s", self.name, self.base_url)
        resp = self._get(self.base_url)
        soup = BeautifulSoup(resp.text, "html.parser")

        found = 0
        # Keyed on fingerprint, the identity the store dedups on.
        seen: set[str] = set()
        for posting in self._parse_cards(soup):
            if posting.fingerprint in seen:
                continue
            seen.add(posting.fingerprint)
            found += 1
            yield posting

        if found or not self.fallback_selector:
            return

        logger.debug("[%s] Primary selectors found nothing, trying fallback", self.name)
        for posting in self._parse_links(soup):
            if posting.fingerprint in seen:
                continue
            seen.add(posting.fingerprint)
            yield posting

    def _parse_cards(self, soup: BeautifulSoup) -> Iterator[RawPosting]:
        for card in soup.select(self.container_selector):
            title_el = card.select_one(self.title_selector)
            title = title_el.get_text(" ", strip=True) if title_el else ""

            link = card if card.name == "a" and card.get("href") else card.find("a", href=True)
            href = link.get("href") if isinstance(link, Tag) else None

            description = " ".join(
                el.get_text(" ", strip=True) for el in card.select(self.description_selector)
            )

            posting = self.make_posting(title, href, description, self.primary_tags)
            if posting:
                yield posting

    def _parse_links(self, soup: BeautifulSoup) -> Iterator[RawPosting]:
        for link in soup.select(self.fallback_selector or ""):
            title = link.get_text(" ", strip=True)
            if len(title) < self.fallback_min_title_length:
                continue
            if self.fallback_reject_url_titles and "http" in title:
                continue

            posting = self.make_posting(title, link.get("href"), title, self.fallback_tags)
            if posting:
                yield posting
