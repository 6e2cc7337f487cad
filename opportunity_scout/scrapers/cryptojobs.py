"""CryptoJobs.com adapter.

The container selector is deliberately broad ([class*="job"]) since the
site has no stable card class; nested matches resolve to the same URL
and are emitted once. No fallback selector set.
"""

from __future__ import annotations

from opportunity_scout.scrapers.html_board import HtmlBoardScraper


class CryptoJobsScraper(HtmlBoardScraper):
    """Scrapes the cryptojobs.com front page."""

    base_url = "https://cryptojobs.com"

    container_selector = 'article, .job-item, .job-post, [class*="job"]'
    title_selector = "h2, h3, h4, .title, .job-title, a"
    description_selector = ".description, .job-description, p"
    primary_tags = ("crypto", "blockchain")
