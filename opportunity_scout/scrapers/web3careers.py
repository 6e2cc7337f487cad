"""web3.careers job board adapter.

web3.careers is a server-rendered listing of Web3/blockchain roles.
Cards are <article> or .job-listing elements (some carry data-job-id);
when the markup changes and no card matches we fall back to any link
pointing at /job or /jobs.
"""

from __future__ import annotations

from opportunity_scout.scrapers.html_board import HtmlBoardScraper


class Web3CareersScraper(HtmlBoardScraper):
    """Scrapes the web3.careers front page."""

    base_url = "https://web3.careers"

    container_selector = "article, .job-listing, [data-job-id]"
    title_selector = "h2, h3, .title, a"
    description_selector = ".description, p, .summary"
    primary_tags = ("web3", "blockchain")

    fallback_selector = 'a[href*="/jobs"], a[href*="/job"]'
    fallback_tags = ("web3",)
