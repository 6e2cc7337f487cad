"""Storage module for the discovery pipeline.

Manages three data files under the data directory:

1. **Opportunities** (`opportunities.json`)
   - JSON object keyed by fingerprint, one row per persisted opportunity
   - The fingerprint key is the uniqueness constraint: `insert()` refuses
     a fingerprint that is already present

2. **Notifications** (`notifications.jsonl`)
   - Append-only record of every outbound notification

3. **Discovery log** (`discovery_log.jsonl`)
   - Append-only log of every raw posting seen, every cycle, before dedup

Writes to opportunities.json use the atomic write pattern:
  1. Write to .tmp file
  2. fsync
  3. Rename to target (atomic on POSIX)

Before each write, a .bak backup is created. If the primary file is
corrupted, it's restored from .bak automatically. If neither can be read
the store is reported unavailable rather than silently treated as empty.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from opportunity_scout.errors import (
    DuplicateFingerprintError,
    StoreError,
    StoreUnavailableError,
)
from opportunity_scout.models import RawPosting, ScoredOpportunity, SourceType

logger = logging.getLogger(__name__)

OPPORTUNITIES_FILE = "opportunities.json"
NOTIFICATIONS_FILE = "notifications.jsonl"
DISCOVERY_LOG_FILE = "discovery_log.jsonl"


class OpportunityStore:
    """File-backed store for persisted opportunities.

    `find_by_fingerprint()` followed by `insert()` is atomic per process
    (guarded by a lock); across processes the fingerprint key check
    inside `insert()` is the final authority.
    """

    def __init__(self, data_dir: str | Path = "data"):
        self.data_dir = Path(data_dir)
        self._lock = threading.RLock()
        # (mtime_ns, size) of opportunities.json and the rows parsed from it
        self._cache: tuple[tuple[int, int], dict[str, dict]] | None = None
        self.init()

    @property
    def opportunities_path(self) -> Path:
        return self.data_dir / OPPORTUNITIES_FILE

    @property
    def notifications_path(self) -> Path:
        return self.data_dir / NOTIFICATIONS_FILE

    @property
    def discovery_log_path(self) -> Path:
        return self.data_dir / DISCOVERY_LOG_FILE

    # ── Initialization ──────────────────────────────────────────────────

    def init(self) -> None:
        """Ensure data directory and files exist. Safe to call repeatedly."""
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            if not self.opportunities_path.exists():
                _atomic_write_json(self.opportunities_path, {})
                logger.info("Created %s", self.opportunities_path)
            for path in (self.notifications_path, self.discovery_log_path):
                if not path.exists():
                    path.touch()
        except OSError as exc:
            raise StoreUnavailableError(f"Cannot initialize store at {self.data_dir}: {exc}") from exc

    # ── Opportunities ───────────────────────────────────────────────────

    def find_by_fingerprint(self, fp: str) -> dict | None:
        """Return the stored row for a fingerprint, or None if absent.

        Raises StoreUnavailableError if the store cannot be read.
        """
        with self._lock:
            row = self._load().get(fp)
        return dict(row) if row is not None else None

    def insert(
        self,
        opportunity: ScoredOpportunity,
        source_type: SourceType | str = SourceType.AUTOMATED,
        fp: str | None = None,
    ) -> dict:
        """Persist a scored opportunity as a new row.

        `fp` overrides the key for rows whose URL is synthetic (emails
        without a link); by default the posting's own fingerprint is used.
        Raises DuplicateFingerprintError if the fingerprint already exists
        and StoreError if the write fails.
        """
        source_type = SourceType(source_type)
        fp = fp or opportunity.fingerprint

        with self._lock:
            # Re-read from disk: another process may have written since the last load.
            rows = dict(self._load(fresh=True))
            if fp in rows:
                raise DuplicateFingerprintError(fp)

            posting = opportunity.posting
            row = {
                "id": max((r.get("id", 0) for r in rows.values()), default=0) + 1,
                "title": posting.title,
                "description": posting.description,
                "source": posting.source,
                "url": posting.url,
                "score": opportunity.score,
                "tags": list(posting.tags) or None,
                "posted_at": posting.posted_at,
                "discovered_at": _now(),
                "fingerprint": fp,
                "source_type": source_type.value,
                "matched_skills": list(opportunity.matched_skills),
                "category": opportunity.category.value,
                "match_reason": opportunity.match_reason,
            }
            rows[fp] = row

            try:
                _backup_and_write(self.opportunities_path, rows)
            except OSError as exc:
                raise StoreError(f"Failed to write {fp}: {exc}") from exc
            finally:
                self._cache = None

        logger.debug("Inserted opportunity %d (%s)", row["id"], fp[:12])
        return row

    def list_opportunities(
        self,
        min_score: int | None = None,
        category: str | None = None,
        source_type: str | None = None,
    ) -> list[dict]:
        """Return stored rows, newest first, optionally filtered."""
        with self._lock:
            rows = [dict(r) for r in self._load().values()]

        if min_score is not None:
            rows = [r for r in rows if r.get("score", 0) >= min_score]
        if category:
            rows = [r for r in rows if r.get("category") == category]
        if source_type:
            rows = [r for r in rows if r.get("source_type") == source_type]

        return sorted(rows, key=lambda r: (r.get("discovered_at", ""), r.get("id", 0)), reverse=True)

    # ── Notifications ───────────────────────────────────────────────────

    def record_notification(self, fp: str, message: str) -> None:
        """Append an outbound notification to notifications.jsonl."""
        entry = {"fingerprint": fp, "message": message, "sent_at": _now()}
        try:
            _append_jsonl(self.notifications_path, [entry])
        except OSError as exc:
            raise StoreError(f"Failed to record notification for {fp}: {exc}") from exc

    def notifications(self) -> list[dict]:
        return _read_jsonl(self.notifications_path)

    # ── Discovery log ───────────────────────────────────────────────────

    def log_discovered(self, postings: Iterable[RawPosting], run_id: str) -> int:
        """Append every discovered posting to discovery_log.jsonl.

        Called before dedup, so it includes repeats. Returns the number
        of lines written.
        """
        scraped_at = _now()
        entries = [
            {
                "run_id": run_id,
                "scraped_at": scraped_at,
                "title": p.title,
                "url": p.url,
                "source": p.source,
                "posted_at": p.posted_at,
                "fingerprint": p.fingerprint,
                "description_snippet": (p.description or "")[:200],
            }
            for p in postings
        ]
        _append_jsonl(self.discovery_log_path, entries)
        logger.debug("Appended %d entries to discovery log (run_id=%s)", len(entries), run_id)
        return len(entries)

    # ── Internal ────────────────────────────────────────────────────────

    def _load(self, fresh: bool = False) -> dict[str, dict]:
        """Parsed opportunities.json, reused while the file is unchanged on disk.

        Callers must not mutate the returned mapping.
        """
        key = _stat_key(self.opportunities_path)
        if not fresh and key is not None and self._cache is not None and self._cache[0] == key:
            return self._cache[1]

        data = _safe_read_json(self.opportunities_path, default={})
        if not isinstance(data, dict):
            raise StoreUnavailableError(f"{self.opportunities_path} is not a JSON object")
        self._cache = (key, data) if key is not None else None
        return data


# ── Internal Helpers ───────────────────────────────────────────────────────

def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _stat_key(path: Path) -> tuple[int, int] | None:
    try:
        st = path.stat()
    except OSError:
        return None
    return st.st_mtime_ns, st.st_size


def _append_jsonl(path: Path, entries: list[dict]) -> None:
    with open(path, "a") as f:
        for entry in entries:
            f.write(json.dumps(entry, ensure_ascii=False) + "\n")


def _read_jsonl(path: Path) -> list[dict]:
    if not path.exists():
        return []
    with open(path, "r") as f:
        return [json.loads(line) for line in f if line.strip()]


def _safe_read_json(path: Path, default: Any = None) -> Any:
    """Read a JSON file, restoring from .bak if corrupted.

    A missing file yields `default`. If the primary file can't be parsed,
    tries .bak. If both fail, raises StoreUnavailableError.
    """
    if not path.exists():
        return default

    try:
        with open(path, "r") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read %s: %s — trying backup", path, exc)

    bak_path = path.with_suffix(path.suffix + ".bak")
    if bak_path.exists():
        try:
            with open(bak_path, "r") as f:
                data = json.load(f)
            logger.info("Restored %s from backup", path)
            _atomic_write_json(path, data)
            return data
        except (json.JSONDecodeError, OSError) as exc:
            logger.error("Backup %s also corrupted: %s", bak_path, exc)

    raise StoreUnavailableError(f"Could not read {path} or its backup")


def _backup_and_write(path: Path, data: Any) -> None:
    """Create a .bak backup of the current file, then atomically write new data."""
    if path.exists():
        bak_path = path.with_suffix(path.suffix + ".bak")
        try:
            shutil.copy2(path, bak_path)
        except OSError as exc:
            logger.warning("Failed to create backup of %s: %s", path, exc)

    _atomic_write_json(path, data)


def _atomic_write_json(path: Path, data: Any) -> None:
    """Write JSON data atomically using temp file + rename.

    1. Write to .tmp file in the same directory
    2. fsync the temp file
    3. Rename temp to target (atomic on POSIX)
    """
    tmp_path = path.with_suffix(path.suffix + ".tmp")

    try:
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())

        tmp_path.replace(path)
    except OSError as exc:
        logger.error("Failed to write %s: %s", path, exc)
        if tmp_path.exists():
            tmp_path.unlink()
        raise
