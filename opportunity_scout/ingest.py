"""Manual and email ingestion.

Postings that arrive out-of-band (pasted from a freelance platform,
forwarded job-alert emails) go through the same scoring engine as the
automated cycle but are persisted regardless of score, tagged with
source_type "manual" or "email".
"""

from __future__ import annotations

import logging
from typing import Iterable

from opportunity_scout.errors import DuplicateFingerprintError
from opportunity_scout.models import RawPosting, SourceType, fingerprint
from opportunity_scout.scoring import Scorer, to_scored
from opportunity_scout.storage import OpportunityStore

logger = logging.getLogger(__name__)

EMAIL_DESCRIPTION_LIMIT = 5000

# Substring of the sender address → source label
EMAIL_SENDERS: tuple[tuple[str, str], ...] = (
    ("upwork", "Upwork (email)"),
    ("freelancer", "Freelancer (email)"),
    ("indeed", "Indeed (email)"),
    ("naukri", "Naukri (email)"),
)


def import_posting(
    store: OpportunityStore,
    scorer: Scorer,
    title: str,
    description: str,
    url: str,
    source: str | None = None,
    source_type: SourceType | str = SourceType.MANUAL,
    tags: Iterable[str] | None = None,
) -> dict:
    """Score and persist a manually supplied posting.

    Raises ValueError when title, description or url is missing and
    DuplicateFingerprintError when the posting is already stored.
    """
    if not title or not description or not url:
        raise ValueError("Title, description, and URL are required")

    posting = RawPosting(
        title=title,
        url=url,
        source=source or "manual",
        description=description,
        tags=tuple(tags or ()),
    )
    return _score_and_insert(store, scorer, posting, SourceType(source_type))


def email_source(sender: str | None) -> str:
    """Derive a source label from an email sender address."""
    if not sender:
        return "email"
    lowered = sender.lower()
    for needle, label in EMAIL_SENDERS:
        if needle in lowered:
            return label
    return f"Email: {sender}"


def import_email(
    store: OpportunityStore,
    scorer: Scorer,
    subject: str,
    body: str,
    sender: str | None = None,
    url: str | None = None,
) -> dict:
    """Score and persist a job alert email (subject → title, body → description).

    Without a link the fingerprint is taken over the subject alone and the
    stored URL is a synthetic ``email://<fingerprint>``.
    """
    if not subject or not body:
        raise ValueError("Subject and body are required")

    fp = fingerprint(url or subject, subject)
    posting = RawPosting(
        title=subject,
        url=url or f"email://{fp}",
        source=email_source(sender),
        description=body[:EMAIL_DESCRIPTION_LIMIT],
    )
    return _score_and_insert(store, scorer, posting, SourceType.EMAIL, fp)


def _score_and_insert(
    store: OpportunityStore,
    scorer: Scorer,
    posting: RawPosting,
    source_type: SourceType,
    fp: str | None = None,
) -> dict:
    fp = fp or posting.fingerprint
    if store.find_by_fingerprint(fp) is not None:
        raise DuplicateFingerprintError(fp)

    scored = to_scored(posting, scorer.evaluate(posting))
    row = store.insert(scored, source_type, fp=fp)
    logger.info(
        "Imported %s opportunity %r (score=%d, category=%s)",
        source_type.value, posting.title, scored.score, scored.category.value,
    )
    return row

