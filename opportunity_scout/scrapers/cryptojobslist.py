"""CryptoJobsList adapter.

cryptojobslist.com renders job cards server-side. The fallback link
scan also matches /position pages and skips anchors whose text is a
raw URL.
"""

from __future__ import annotations

from opportunity_scout.scrapers.html_board import HtmlBoardScraper


class CryptoJobsListScraper(HtmlBoardScraper):
    """Scrapes the cryptojobslist.com front page."""

    base_url = "https://cryptojobslist.com"

    container_selector = "article, .job-card, .job-listing, [data-job-id]"
    title_selector = "h2, h3, .title, a"
    description_selector = ".description, p, .summary, .job-description"
    primary_tags = ("crypto", "blockchain", "web3")

    fallback_selector = 'a[href*="/jobs"], a[href*="/job"], a[href*="/position"]'
    fallback_tags = ("crypto",)
    fallback_reject_url_titles = True
