"""GitHub issue-search adapter.

Searches public issues that look like hiring posts via the REST search
API:
  https://api.github.com/search/issues?q=...&sort=updated&per_page=10

Each query is run in turn with a short pause between them. Results are
filtered client-side: the issue title or body must mention at least one
of RELEVANT_KEYWORDS. Unauthenticated search is limited to a handful
of requests per minute; a 403/429 answer ends the cycle for this
adapter, keeping whatever the earlier queries returned. Setting
GITHUB_TOKEN raises the limit.
"""

from __future__ import annotations

import logging
from typing import Iterator

import requests

from opportunity_scout.errors import RateLimitedError
from opportunity_scout.models import RawPosting
from opportunity_scout.scrapers.base import BaseScraper

logger = logging.getLogger(__name__)

SEARCH_URL = "https://api.github.com/search/issues"

QUERIES: tuple[str, ...] = (
    "label:hiring language:javascript",
    "label:hiring language:rust",
    "label:job language:typescript",
    'is:issue is:open "looking for" OR "hiring" node.js',
    'is:issue is:open "looking for" OR "hiring" solana',
)

RELEVANT_KEYWORDS: tuple[str, ...] = (
    "node.js", "next.js", "web3", "rust", "solana", "blockchain", "full-stack", "backend",
)

RATE_LIMIT_STATUSES = {403, 429}


class GitHubIssuesScraper(BaseScraper):
    """Keyword-filtered search over GitHub issues."""

    base_url = "https://github.com"

    def __init__(self, source_config, pipeline_config, session=None):
        super().__init__(source_config, pipeline_config, session)
        self.search_url = source_config.params.get("search_url", SEARCH_URL)
        self.queries = tuple(source_config.params.get("queries", QUERIES))
        self.per_page = source_config.params.get("per_page", 10)
        self.session.headers.update({"Accept": "application/vnd.github.v3+json"})
        if pipeline_config.github_token:
            self.session.headers.update(
                {"Authorization": f"Bearer {pipeline_config.github_token}"}
            )

    def scrape(self) -> Iterator[RawPosting]:
        for query in self.queries:
            try:
                items = self._search(query)
            except RateLimitedError:
                logger.warning("[%s] Rate limited, skipping remaining queries", self.name)
                return
            except (requests.RequestException, ValueError) as exc:
                logger.error("[%s] Error querying %r: %s", self.name, query, exc)
                continue

            for item in items:
                posting = self._parse_issue(item)
                if posting:
                    yield posting

    def _search(self, query: str) -> list[dict]:
        params = {"q": query, "sort": "updated", "per_page": self.per_page}
        try:
            resp = self._get(self.search_url, params=params)
        except requests.HTTPError as exc:
            if exc.response is not None and exc.response.status_code in RATE_LIMIT_STATUSES:
                raise RateLimitedError(str(exc)) from exc
            raise
        items = resp.json().get("items") or []
        logger.debug("[%s] %r returned %d issues", self.name, query, len(items))
        return items

    def _parse_issue(self, item: dict) -> RawPosting | None:
        title = (item.get("title") or "").strip()
        body = item.get("body") or ""
        url = item.get("html_url") or ""
        if not title or not url:
            return None

        searchable = f"{title} {body}".lower()
        if not any(kw in searchable for kw in RELEVANT_KEYWORDS):
            return None

        repo = "/".join((item.get("repository_url") or "").split("/")[-2:])
        display_title = f"{title} ({repo})" if repo else title

        return self.make_posting(
            display_title,
            url,
            description=body,
            tags=("github", "open-source"),
            posted_at=item.get("created_at"),
        )
