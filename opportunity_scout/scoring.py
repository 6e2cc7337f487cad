"""Rule-based relevance scoring.

Maps posting text to a 0–100 score, a category, the list of matched
skill keywords and a one-line justification. Pure and deterministic:
no I/O, no randomness, no error path (missing fields are treated as
empty strings).

Algorithm, in order:
1. Lower-case ``title + " " + description``.
2. Any negative keyword present → flat -10.
3. Each skill group with at least one keyword present adds
   ``weight + min(2 * matches, 10)`` to the total and to its category.
4. MongoDB + Express + React + Node all present → +15 (mern).
5. Rust and crypto both positive and "solana" present → +10 (total only).
6. Clamp to [0, 100].
7. Pick the category (see `classify()`).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import NamedTuple, Protocol, runtime_checkable

from opportunity_scout.models import Category, RawPosting, ScoredOpportunity

logger = logging.getLogger(__name__)

# Shared by `ScoringResult.should_apply` and the orchestrator's storage gate.
APPLY_THRESHOLD = 40

STRONG_CATEGORY_THRESHOLD = 15
NEGATIVE_PENALTY = 10
PER_MATCH_BONUS = 2
MAX_MATCH_BONUS = 10
MERN_STACK_BONUS = 15
RUST_SOLANA_BONUS = 10
MAX_REASON_SKILLS = 5


# ── Keyword tables ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class SkillGroup:
    """One row of the skill table: keywords sharing a weight and category."""

    name: str
    keywords: tuple[str, ...]
    weight: int
    category: Category


SKILL_GROUPS: tuple[SkillGroup, ...] = (
    SkillGroup(
        "mern",
        ("mern", "mongo", "mongodb", "express", "react", "node.js", "nodejs",
         "node", "full stack", "fullstack"),
        15,
        Category.MERN,
    ),
    SkillGroup(
        "backend",
        ("backend", "server", "api", "rest", "graphql", "microservices",
         "express.js", "fastify", "koa"),
        12,
        Category.BACKEND,
    ),
    # Node.js counts towards the MERN profile; see DESIGN.md.
    SkillGroup(
        "nodejs",
        ("node.js", "nodejs", "node", "typescript", "ts", "javascript", "js",
         "npm", "yarn"),
        14,
        Category.MERN,
    ),
    SkillGroup(
        "nextjs",
        ("next.js", "nextjs", "next", "app router", "pages router"),
        13,
        Category.MERN,
    ),
    SkillGroup(
        "crypto",
        ("crypto", "cryptocurrency", "blockchain", "web3", "web 3", "defi",
         "decentralized", "dapp", "dapps", "smart contract", "smart contracts",
         "solidity", "ethereum", "bitcoin", "nft", "nfts", "dao", "daos"),
        18,
        Category.CRYPTO,
    ),
    SkillGroup(
        "rust",
        ("rust", "rustlang", "cargo", "rustacean"),
        16,
        Category.RUST,
    ),
    SkillGroup(
        "solana",
        ("solana", "sol", "anchor", "solana program", "solana blockchain",
         "spl token"),
        20,
        Category.CRYPTO,
    ),
    SkillGroup(
        "typescript",
        ("typescript", "ts", "tsx"),
        10,
        Category.BACKEND,
    ),
    SkillGroup(
        "react",
        ("react", "reactjs", "react.js", "jsx", "hooks", "redux", "context"),
        12,
        Category.MERN,
    ),
    SkillGroup(
        "database",
        ("database", "sql", "nosql", "postgresql", "postgres", "mysql", "redis",
         "prisma", "orm"),
        8,
        Category.BACKEND,
    ),
)

NEGATIVE_KEYWORDS: tuple[str, ...] = (
    "java", "python", "c#", "csharp", ".net", "php", "ruby", "go lang", "golang",
    "angular", "vue", "svelte", "flutter", "dart", "swift", "kotlin", "ios", "android",
    "devops", "sre", "kubernetes", "docker only", "only docker",
)

# Categories that accumulate a subtotal; "mixed" and "other" are derived.
SCORED_CATEGORIES: tuple[Category, ...] = (
    Category.MERN,
    Category.BACKEND,
    Category.CRYPTO,
    Category.RUST,
)

CATEGORY_NAMES: dict[Category, str] = {
    Category.MERN: "MERN stack",
    Category.BACKEND: "Backend development",
    Category.CRYPTO: "Crypto/Web3",
    Category.RUST: "Rust/Solana",
    Category.MIXED: "Multiple relevant categories",
    Category.OTHER: "General development",
}

LOW_RELEVANCE_REASON = "Low relevance - few matching skills found"


class ScoringResult(NamedTuple):
    """Outcome of evaluating one posting."""

    score: int
    category: Category
    matched_skills: tuple[str, ...]
    match_reason: str
    should_apply: bool


def should_apply(score: int) -> bool:
    """True when a clamped score clears the storage threshold."""
    return score >= APPLY_THRESHOLD


# ── Scoring ─────────────────────────────────────────────────────────────────


def has_negative_keyword(text: str) -> bool:
    return any(kw in text for kw in NEGATIVE_KEYWORDS)


def has_mern_stack(text: str) -> bool:
    """All four MERN components present (substring match)."""
    has_mongo = "mongo" in text or "mongodb" in text
    return has_mongo and "express" in text and "react" in text and "node" in text


def classify(subtotals: dict[Category, int]) -> Category:
    """Pick the primary category from per-category subtotals.

    Ties resolve mern → crypto/rust → backend → rust. More than one
    subtotal above STRONG_CATEGORY_THRESHOLD overrides the choice with
    "mixed".
    """
    best = max(subtotals.get(c, 0) for c in SCORED_CATEGORIES)
    if best <= 0:
        return Category.OTHER

    strong = [c for c in SCORED_CATEGORIES if subtotals.get(c, 0) > STRONG_CATEGORY_THRESHOLD]
    if len(strong) > 1:
        return Category.MIXED

    if subtotals.get(Category.MERN, 0) >= best:
        return Category.MERN
    if subtotals.get(Category.CRYPTO, 0) >= best:
        return Category.RUST if subtotals.get(Category.RUST, 0) > 0 else Category.CRYPTO
    if subtotals.get(Category.BACKEND, 0) >= best:
        return Category.BACKEND
    return Category.RUST


def match_reason(score: int, matched_skills: tuple[str, ...] | list[str], category: Category) -> str:
    """Human-readable justification, banded by score."""
    if score < 20:
        return LOW_RELEVANCE_REASON

    top_skills = ", ".join(matched_skills[:MAX_REASON_SKILLS])
    name = CATEGORY_NAMES[category]

    if score >= 70:
        return f"Excellent match: Strong {name} fit with {top_skills}"
    if score >= 50:
        return f"Good match: {name} role with {top_skills}"
    return f"Moderate match: Some relevant skills ({top_skills})"


def evaluate_text(title: str | None, description: str | None) -> ScoringResult:
    """Score raw title/description text. Never raises."""
    text = f"{title or ''} {description or ''}".lower()

    total = 0
    subtotals: dict[Category, int] = {c: 0 for c in SCORED_CATEGORIES}
    matched: list[str] = []

    if has_negative_keyword(text):
        total -= NEGATIVE_PENALTY

    for group in SKILL_GROUPS:
        hits = [kw for kw in group.keywords if kw.lower() in text]
        if not hits:
            continue
        points = group.weight + min(len(hits) * PER_MATCH_BONUS, MAX_MATCH_BONUS)
        total += points
        subtotals[group.category] += points
        matched.extend(hits)

    if has_mern_stack(text):
        total += MERN_STACK_BONUS
        subtotals[Category.MERN] += MERN_STACK_BONUS
        if "mern" not in matched:
            matched.append("mern")

    if subtotals[Category.RUST] > 0 and subtotals[Category.CRYPTO] > 0 and "solana" in text:
        total += RUST_SOLANA_BONUS

    score = max(0, min(100, total))
    category = classify(subtotals)
    skills = tuple(dict.fromkeys(matched))

    return ScoringResult(
        score=score,
        category=category,
        matched_skills=skills,
        match_reason=match_reason(score, skills, category),
        should_apply=should_apply(score),
    )


def evaluate(posting: RawPosting) -> ScoringResult:
    """Score a posting with the rule-based engine."""
    return evaluate_text(getattr(posting, "title", ""), getattr(posting, "description", ""))


def to_scored(posting: RawPosting, result: ScoringResult) -> ScoredOpportunity:
    return ScoredOpportunity(
        posting=posting,
        score=result.score,
        category=result.category,
        matched_skills=result.matched_skills,
        match_reason=result.match_reason,
    )


# ── Scorer implementations ──────────────────────────────────────────────────


@runtime_checkable
class Scorer(Protocol):
    """Anything that can evaluate a posting.

    The rule engine and the language-model scorer both satisfy this, so
    the orchestrator and the manual import path can take either.
    """

    def evaluate(self, posting: RawPosting) -> ScoringResult:
        ...


class RuleBasedScorer:
    """Deterministic keyword scorer (the default)."""

    name = "rules"

    def evaluate(self, posting: RawPosting) -> ScoringResult:
        return evaluate(posting)
