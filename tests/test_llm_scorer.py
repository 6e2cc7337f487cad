"""Tests for the language-model scorer, with the model endpoints mocked."""

import json
from types import SimpleNamespace

import openai
import pytest
import responses

from opportunity_scout.config import LLMConfig, PipelineConfig
from opportunity_scout.llm_scorer import (
    ERROR_REASON,
    LLMScorer,
    _parse_reply,
    build_scorer,
)
from opportunity_scout.models import Category, RawPosting
from opportunity_scout.scoring import RuleBasedScorer, Scorer

OLLAMA_URL = "http://localhost:11434/api/generate"

POSTING = RawPosting(
    title="Solana smart contract developer, Rust",
    url="https://x.test/jobs/1",
    source="github",
    description="Anchor programs",
)


def _ollama():
    return LLMConfig(ollama_base_url="http://localhost:11434/", ollama_model="llama3")


@responses.activate
def test_ollama_reply_sets_score_and_reason():
    reply = 'Sure! {"score": 82, "matchReason": "Strong Rust fit", "shouldApply": true}'
    responses.add(responses.POST, OLLAMA_URL, json={"response": reply}, status=200)

    result = LLMScorer(_ollama()).evaluate(POSTING)

    assert result.score == 82
    assert result.match_reason == "Strong Rust fit"
    assert result.should_apply is True
    # category and skills still come from the rule engine
    assert result.category == Category.MIXED
    assert "rust" in result.matched_skills

    body = json.loads(responses.calls[0].request.body)
    assert body["model"] == "llama3"
    assert body["stream"] is False
    assert "Solana smart contract developer" in body["prompt"]


class FakeCompletions:
    """Stands in for `client.chat.completions` of the openai SDK."""

    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _openai_client(completions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def test_openai_reply_is_clamped():
    completions = FakeCompletions('```json\n{"score": 150, "matchReason": "Perfect"}\n```')
    config = LLMConfig(openai_api_key="sk-test")

    result = LLMScorer(config, client=_openai_client(completions)).evaluate(POSTING)

    assert result.score == 100
    assert result.match_reason == "Perfect"
    call = completions.calls[0]
    assert call["model"] == config.openai_model
    assert call["messages"][0]["role"] == "user"
    assert "Solana smart contract developer" in call["messages"][0]["content"]


def test_openai_error_scores_zero():
    completions = FakeCompletions(error=openai.OpenAIError("boom"))

    result = LLMScorer(LLMConfig(openai_api_key="sk-test"), client=_openai_client(completions)).evaluate(POSTING)

    assert result.score == 0
    assert result.match_reason == ERROR_REASON


def test_openai_empty_reply_scores_zero():
    completions = FakeCompletions(content=None)

    result = LLMScorer(LLMConfig(openai_api_key="sk-test"), client=_openai_client(completions)).evaluate(POSTING)

    assert result.score == 0
    assert result.match_reason == ERROR_REASON


def test_openai_key_builds_sdk_client():
    scorer = LLMScorer(LLMConfig(openai_api_key="sk-test"))

    assert not scorer.use_ollama
    assert isinstance(scorer.client, openai.OpenAI)
    assert scorer.client.api_key == "sk-test"


def test_no_backend_rejected():
    with pytest.raises(ValueError):
        LLMScorer(LLMConfig())


@responses.activate
def test_http_error_scores_zero():
    responses.add(responses.POST, OLLAMA_URL, status=500)

    result = LLMScorer(_ollama()).evaluate(POSTING)

    assert result.score == 0
    assert result.match_reason == ERROR_REASON
    assert result.should_apply is False


@responses.activate
def test_unparseable_reply_scores_zero():
    responses.add(responses.POST, OLLAMA_URL, json={"response": "I cannot help"}, status=200)

    result = LLMScorer(_ollama()).evaluate(POSTING)

    assert result.score == 0
    assert result.match_reason == ERROR_REASON


def test_parse_reply():
    assert _parse_reply('text {"score": 5} more') == {"score": 5}
    with pytest.raises(ValueError):
        _parse_reply("")
    with pytest.raises(ValueError):
        _parse_reply("{not json}")


def test_llm_scorer_satisfies_protocol():
    assert isinstance(LLMScorer(_ollama()), Scorer)


# ── Scorer selection ────────────────────────────────────────────────────────


def test_build_scorer_defaults_to_rules():
    assert isinstance(build_scorer(PipelineConfig()), RuleBasedScorer)


def test_build_scorer_llm_without_backend_falls_back():
    assert isinstance(build_scorer(PipelineConfig(scorer="llm")), RuleBasedScorer)


def test_build_scorer_llm_configured():
    scorer = build_scorer(PipelineConfig(scorer="llm", llm=_ollama()))
    assert isinstance(scorer, LLMScorer)
    assert scorer.use_ollama


def test_build_scorer_unknown_name_falls_back():
    assert isinstance(build_scorer(PipelineConfig(scorer="magic")), RuleBasedScorer)


def test_build_scorer_openai_configured():
    scorer = build_scorer(PipelineConfig(scorer="llm", llm=LLMConfig(openai_api_key="sk-test")))
    assert isinstance(scorer, LLMScorer)
    assert isinstance(scorer.client, openai.OpenAI)
