"""Data models for the discovery pipeline."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional


class Category(str, Enum):
    """Primary classification assigned by the scoring engine."""

    MERN = "mern"
    BACKEND = "backend"
    CRYPTO = "crypto"
    RUST = "rust"
    MIXED = "mixed"
    OTHER = "other"


class SourceType(str, Enum):
    """How an opportunity entered the store."""

    AUTOMATED = "automated"
    MANUAL = "manual"
    EMAIL = "email"


def fingerprint(url: str, title: str) -> str:
    """Content hash used as the dedup and uniqueness key.

    SHA-256 over ``url + "|" + title``. No normalization is applied: a
    trailing slash, a tracking parameter or extra whitespace yields a
    different fingerprint.
    """
    return hashlib.sha256(f"{url}|{title}".encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class RawPosting:
    """A single posting as extracted by a source adapter."""

    title: str
    url: str  # absolute
    source: str  # adapter name, e.g. "web3.careers", "github"
    description: str = ""
    posted_at: Optional[str] = None
    tags: tuple[str, ...] = ()

    @property
    def fingerprint(self) -> str:
        return fingerprint(self.url, self.title)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["tags"] = list(self.tags)
        d["fingerprint"] = self.fingerprint
        return d


@dataclass(frozen=True)
class ScoredOpportunity:
    """A posting plus its relevance evaluation.

    Created once per discovery cycle and never mutated afterwards.
    """

    posting: RawPosting
    score: int
    category: Category
    matched_skills: tuple[str, ...] = field(default_factory=tuple)
    match_reason: str = ""

    @property
    def fingerprint(self) -> str:
        return self.posting.fingerprint

    @property
    def title(self) -> str:
        return self.posting.title

    @property
    def url(self) -> str:
        return self.posting.url

    @property
    def source(self) -> str:
        return self.posting.source

    def to_dict(self) -> dict:
        d = self.posting.to_dict()
        d.update(
            score=self.score,
            category=self.category.value,
            matched_skills=list(self.matched_skills),
            match_reason=self.match_reason,
        )
        return d

    def __repr__(self) -> str:
        return (
            f"ScoredOpportunity(title={self.title!r}, source={self.source!r}, "
            f"score={self.score}, category={self.category.value!r})"
        )
