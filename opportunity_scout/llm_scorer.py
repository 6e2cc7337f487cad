"""Optional language-model scorer.

An alternate implementation of the `Scorer` protocol that asks a model
for the relevance score and justification. Category and matched skills
still come from the rule engine; the model only replaces the number
and the reason. Results are non-deterministic, so nothing in the test
suite asserts the scoring properties against this class.

Backends, in order of preference:
  - Ollama (`OLLAMA_BASE_URL` + `OLLAMA_MODEL`): POST /api/generate
  - OpenAI (`OPENAI_API_KEY`): chat completions through the openai SDK,
    installed with the "llm" extra
"""

from __future__ import annotations

import json
import logging
import re

import requests

from opportunity_scout.config import LLMConfig, PipelineConfig
from opportunity_scout.models import RawPosting
from opportunity_scout.scoring import (
    RuleBasedScorer,
    Scorer,
    ScoringResult,
    evaluate,
    should_apply,
)

logger = logging.getLogger(__name__)

PROMPT_DESCRIPTION_LIMIT = 2000
ERROR_REASON = "Error evaluating opportunity"

PROMPT_TEMPLATE = """Evaluate this job opportunity for relevance:

Title: {title}
Description: {description}
Source: {source}

Target Profile:
{profile}

Respond with a JSON object containing:
- score: integer 0-100 (relevance score)
- matchReason: one sentence explaining why it matches or doesn't match
- shouldApply: boolean

Only respond with valid JSON, no other text."""


class LLMScorer:
    """Scores postings by prompting a language model."""

    name = "llm"

    def __init__(self, config: LLMConfig, session: requests.Session | None = None, client=None):
        self.config = config
        self.session = session or requests.Session()
        self.use_ollama = bool(config.ollama_base_url and config.ollama_model)
        self.client = None
        self._errors: tuple[type[Exception], ...] = (requests.RequestException,)

        if not self.use_ollama:
            if not config.openai_api_key and client is None:
                raise ValueError("No LLM configured")
            # Installed with the "llm" extra
            from openai import OpenAI, OpenAIError

            self.client = client or OpenAI(
                api_key=config.openai_api_key,
                timeout=config.timeout_seconds,
                max_retries=0,
            )
            self._errors = (requests.RequestException, OpenAIError)

    def evaluate(self, posting: RawPosting) -> ScoringResult:
        rules = evaluate(posting)
        try:
            reply = self._complete(self._build_prompt(posting))
            data = _parse_reply(reply)
            score = max(0, min(100, int(data.get("score") or 0)))
            reason = str(data.get("matchReason") or "No reason provided")
        except self._errors + (ValueError, TypeError, KeyError, IndexError, AttributeError) as exc:
            logger.error("LLM evaluation failed for %r: %s", posting.title, exc)
            score, reason = 0, ERROR_REASON

        return rules._replace(
            score=score,
            match_reason=reason,
            should_apply=should_apply(score),
        )

    def _build_prompt(self, posting: RawPosting) -> str:
        return PROMPT_TEMPLATE.format(
            title=posting.title,
            description=(posting.description or "")[:PROMPT_DESCRIPTION_LIMIT],
            source=posting.source,
            profile=self.config.profile,
        )

    def _complete(self, prompt: str) -> str:
        if self.use_ollama:
            resp = self.session.post(
                f"{self.config.ollama_base_url.rstrip('/')}/api/generate",
                json={"model": self.config.ollama_model, "prompt": prompt, "stream": False},
                timeout=self.config.timeout_seconds,
            )
            resp.raise_for_status()
            return resp.json().get("response", "")

        response = self.client.chat.completions.create(
            model=self.config.openai_model,
            messages=[{"role": "user", "content": prompt}],
            temperature=0.7,
        )
        return response.choices[0].message.content or ""


def _parse_reply(reply: str) -> dict:
    """Extract the JSON object from a model reply.

    Models sometimes wrap the object in prose or code fences; take the
    outermost {...} span.
    """
    match = re.search(r"\{.*\}", reply or "", re.DOTALL)
    if not match:
        raise ValueError(f"No JSON object in reply: {(reply or '')[:80]!r}")
    data = json.loads(match.group(0))
    if not isinstance(data, dict):
        raise ValueError("Reply JSON is not an object")
    return data


def build_scorer(config: PipelineConfig) -> Scorer:
    """Select the scorer named in config, falling back to the rule engine."""
    if config.scorer == "llm":
        if config.llm.configured:
            logger.info("Using language-model scorer")
            return LLMScorer(config.llm)
        logger.warning(
            "scorer=llm but no model configured (set OLLAMA_BASE_URL/OLLAMA_MODEL "
            "or OPENAI_API_KEY) — using rule-based scorer"
        )
    elif config.scorer != "rules":
        logger.warning("Unknown scorer %r — using rule-based scorer", config.scorer)
    return RuleBasedScorer()
