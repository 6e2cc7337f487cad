"""Discovery orchestrator — runs all adapters, dedups, scores and persists.

This is the core pipeline, one cycle per `run()`:
  1. Run each adapter in registration order (with error isolation and a
     politeness pause between adapters)
  2. Log ALL discovered postings to the discovery log (before any dedup)
  3. Drop postings whose fingerprint is already stored
  4. Score the rest and keep those at or above APPLY_THRESHOLD
  5. Persist each survivor (a failed row is logged and skipped)
  6. Notify for persisted postings at or above the notify threshold

Cycles sharing a data directory are serialized with a process-wide lock.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Protocol

from opportunity_scout.config import PipelineConfig
from opportunity_scout.errors import DuplicateFingerprintError
from opportunity_scout.llm_scorer import build_scorer
from opportunity_scout.models import RawPosting, ScoredOpportunity, SourceType
from opportunity_scout.notify import Notifier, TelegramNotifier, format_opportunity_message
from opportunity_scout.scoring import Scorer, should_apply, to_scored
from opportunity_scout.scrapers.base import BaseScraper
from opportunity_scout.scrapers.cryptojobs import CryptoJobsScraper
from opportunity_scout.scrapers.cryptojobslist import CryptoJobsListScraper
from opportunity_scout.scrapers.github import GitHubIssuesScraper
from opportunity_scout.scrapers.web3careers import Web3CareersScraper
from opportunity_scout.storage import OpportunityStore

logger = logging.getLogger(__name__)

# Map source_type strings to classes
SCRAPER_REGISTRY: dict[str, type[BaseScraper]] = {
    "web3careers": Web3CareersScraper,
    "github": GitHubIssuesScraper,
    "cryptojobslist": CryptoJobsListScraper,
    "cryptojobs": CryptoJobsScraper,
}

_RUN_LOCKS: dict[Path, threading.Lock] = {}
_RUN_LOCKS_GUARD = threading.Lock()


def _run_lock(data_dir: Path) -> threading.Lock:
    key = data_dir.resolve()
    with _RUN_LOCKS_GUARD:
        return _RUN_LOCKS.setdefault(key, threading.Lock())


class Source(Protocol):
    """What the orchestrator needs from an adapter."""

    name: str

    def discover(self) -> list[RawPosting]:
        ...


@dataclass
class CycleStats:
    """Counters for one discovery cycle."""

    per_source: dict[str, int] = field(default_factory=dict)
    failed_sources: list[str] = field(default_factory=list)
    discovered: int = 0
    duplicates: int = 0
    below_threshold: int = 0
    persisted: int = 0
    failed_writes: int = 0
    notified: int = 0
    cancelled: bool = False


class DiscoveryPipeline:
    """Orchestrates one discovery cycle across all configured sources."""

    def __init__(
        self,
        config: PipelineConfig,
        store: OpportunityStore | None = None,
        scrapers: Iterable[Source] | None = None,
        scorer: Scorer | None = None,
        notifier: Notifier | None = None,
    ):
        self.config = config
        self.store = store or OpportunityStore(config.data_dir)
        self.scorer = scorer or build_scorer(config)
        self.notifier = notifier or TelegramNotifier(config.notifier)
        self.last_stats = CycleStats()

        if scrapers is None:
            self.scrapers: list[Source] = []
            self._build_scrapers()
        else:
            self.scrapers = list(scrapers)

    def _build_scrapers(self) -> None:
        """Instantiate adapters for each enabled source in config."""
        for source in self.config.enabled_sources:
            scraper_cls = SCRAPER_REGISTRY.get(source.source_type)
            if not scraper_cls:
                logger.warning(
                    "Unknown source type '%s' for source '%s' — skipping",
                    source.source_type,
                    source.name,
                )
                continue

            try:
                scraper = scraper_cls(source, self.config)
                self.scrapers.append(scraper)
                logger.info("Initialized adapter: %s (%s)", source.name, source.source_type)
            except Exception as exc:
                logger.error("Failed to initialize adapter '%s': %s", source.name, exc)

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    def run(self, cancel_event: threading.Event | None = None) -> list[ScoredOpportunity]:
        """Execute one cycle and return the opportunities persisted by it.

        Individual adapters, rows and notifications may fail without
        affecting the rest. A store that cannot be read at all
        (StoreUnavailableError) aborts the cycle. Setting `cancel_event`
        stops the cycle at the next adapter or row boundary; whatever was
        persisted before that is returned.
        """
        cancel = cancel_event or threading.Event()
        stats = CycleStats()
        self.last_stats = stats
        run_id = datetime.now(timezone.utc).isoformat()

        with _run_lock(self.store.data_dir):
            logger.info(
                "Starting discovery cycle with %d adapters (run_id=%s)",
                len(self.scrapers), run_id,
            )

            batch = self._discover_all(cancel, stats)
            self._log_batch(batch, run_id)

            candidates = self._dedup_and_score(batch, cancel, stats)
            persisted = self._persist(candidates, cancel, stats)

        self._log_stats(stats)
        return persisted

    def _discover_all(self, cancel: threading.Event, stats: CycleStats) -> list[RawPosting]:
        batch: list[RawPosting] = []

        for index, scraper in enumerate(self.scrapers):
            if cancel.is_set():
                stats.cancelled = True
                logger.warning("Cycle cancelled before adapter %s", scraper.name)
                break

            logger.info("Running adapter: %s", scraper.name)
            try:
                postings = scraper.discover()
                logger.info("  → %s: %d postings", scraper.name, len(postings))
                batch.extend(postings)
                stats.per_source[scraper.name] = len(postings)
            except Exception as exc:
                logger.error("  → %s: FAILED — %s", scraper.name, exc)
                stats.per_source[scraper.name] = 0
                stats.failed_sources.append(scraper.name)

            # Politeness pause between adapters, interrupted by cancellation
            if index < len(self.scrapers) - 1 and self.config.source_delay_seconds > 0:
                cancel.wait(self.config.source_delay_seconds)

        stats.discovered = len(batch)
        return batch

    def _log_batch(self, batch: list[RawPosting], run_id: str) -> None:
        if not batch:
            return
        try:
            self.store.log_discovered(batch, run_id)
        except OSError as exc:
            logger.warning("Could not append to discovery log: %s", exc)

    def _dedup_and_score(
        self,
        batch: list[RawPosting],
        cancel: threading.Event,
        stats: CycleStats,
    ) -> list[ScoredOpportunity]:
        candidates: list[ScoredOpportunity] = []

        for posting in batch:
            if cancel.is_set():
                stats.cancelled = True
                break

            # StoreUnavailableError propagates: the cycle cannot dedup safely.
            if self.store.find_by_fingerprint(posting.fingerprint) is not None:
                stats.duplicates += 1
                continue

            result = self.scorer.evaluate(posting)
            if not should_apply(result.score):
                stats.below_threshold += 1
                continue

            candidates.append(to_scored(posting, result))

        return candidates

    def _persist(
        self,
        candidates: list[ScoredOpportunity],
        cancel: threading.Event,
        stats: CycleStats,
    ) -> list[ScoredOpportunity]:
        persisted: list[ScoredOpportunity] = []

        for opportunity in candidates:
            if cancel.is_set():
                stats.cancelled = True
                logger.warning(
                    "Cycle cancelled with %d candidates not yet written",
                    len(candidates) - len(persisted),
                )
                break

            try:
                self.store.insert(opportunity, SourceType.AUTOMATED)
            except DuplicateFingerprintError:
                stats.duplicates += 1
                continue
            except Exception as exc:
                logger.error("Error saving opportunity %r: %s", opportunity.title, exc)
                stats.failed_writes += 1
                continue

            persisted.append(opportunity)
            stats.persisted += 1

            if opportunity.score >= self.config.notify_threshold:
                self._notify(opportunity, stats)

        return persisted

    def _notify(self, opportunity: ScoredOpportunity, stats: CycleStats) -> None:
        message = format_opportunity_message(opportunity)
        try:
            sent = self.notifier.send(message)
        except Exception as exc:
            logger.error("Notification failed for %r: %s", opportunity.title, exc)
            return

        # Only deliveries the sink confirmed are counted and recorded.
        if not sent:
            logger.debug("Notification for %r was not delivered", opportunity.title)
            return

        stats.notified += 1
        try:
            self.store.record_notification(opportunity.fingerprint, message)
        except Exception as exc:
            logger.warning("Could not record notification for %r: %s", opportunity.title, exc)

    def _log_stats(self, stats: CycleStats) -> None:
        """Print a summary of results per adapter."""
        logger.info("=== Discovery Summary ===")
        for name, count in stats.per_source.items():
            marker = " (failed)" if name in stats.failed_sources else ""
            logger.info("  %s: %d postings%s", name, count, marker)
        logger.info(
            "  discovered=%d duplicates=%d below_threshold=%d persisted=%d "
            "failed_writes=%d notified=%d%s",
            stats.discovered, stats.duplicates, stats.below_threshold,
            stats.persisted, stats.failed_writes, stats.notified,
            " (cancelled)" if stats.cancelled else "",
        )
