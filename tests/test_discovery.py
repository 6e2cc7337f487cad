"""Tests for the discovery orchestrator."""

import random
import threading

import pytest
import responses

from opportunity_scout.config import NotifierConfig, PipelineConfig, SourceConfig
from opportunity_scout.discovery import DiscoveryPipeline, _run_lock
from opportunity_scout.errors import StoreError, StoreUnavailableError
from opportunity_scout.models import Category, RawPosting
from opportunity_scout.notify import TelegramNotifier
from opportunity_scout.scoring import (
    SKILL_GROUPS,
    RuleBasedScorer,
    ScoringResult,
    evaluate,
    should_apply,
)
from opportunity_scout.scrapers.github import GitHubIssuesScraper
from opportunity_scout.scrapers.web3careers import Web3CareersScraper
from opportunity_scout.storage import OpportunityStore

TELEGRAM_SEND_URL = "https://api.telegram.org/bot123:abc/sendMessage"

MERN_POSTING = RawPosting(
    title="Senior MERN Developer",
    url="https://web3.careers/jobs/1",
    source="web3.careers",
    description="Need MongoDB, Express, React, Node.js expert",
)


def _posting(title, n=1, source="fake", description=""):
    return RawPosting(
        title=title, url=f"https://x.test/jobs/{n}", source=source, description=description,
    )


class FakeSource:
    def __init__(self, name, postings=(), error=None, on_discover=None):
        self.name = name
        self.postings = list(postings)
        self.error = error
        self.on_discover = on_discover
        self.calls = 0

    def discover(self):
        self.calls += 1
        if self.on_discover:
            self.on_discover()
        if self.error:
            raise self.error
        return list(self.postings)


class FixedScorer:
    """Scores postings from a title → score table (0 if absent)."""

    def __init__(self, scores):
        self.scores = scores

    def evaluate(self, posting):
        score = self.scores.get(posting.title, 0)
        return ScoringResult(score, Category.BACKEND, ("api",), f"scored {score}", should_apply(score))


class RecordingNotifier:
    def __init__(self, fail=False):
        self.messages = []
        self.fail = fail

    def send(self, message):
        if self.fail:
            raise RuntimeError("chat down")
        self.messages.append(message)
        return True


class RecordingEvent(threading.Event):
    def __init__(self):
        super().__init__()
        self.waits = []

    def wait(self, timeout=None):
        self.waits.append(timeout)
        return self.is_set()


@pytest.fixture
def config(tmp_path):
    return PipelineConfig(data_dir=str(tmp_path / "data"), source_delay_seconds=0)


@pytest.fixture
def store(config):
    return OpportunityStore(config.data_dir)


def _pipeline(config, store, sources, scorer=None, notifier=None):
    return DiscoveryPipeline(
        config,
        store=store,
        scrapers=sources,
        scorer=scorer or RuleBasedScorer(),
        notifier=notifier or RecordingNotifier(),
    )


# ── Dedup ───────────────────────────────────────────────────────────────────


def test_second_cycle_persists_nothing(config, store):
    sources = [FakeSource("web3.careers", [MERN_POSTING])]

    first = _pipeline(config, store, sources).run()
    second_pipeline = _pipeline(config, store, sources)
    second = second_pipeline.run()

    assert [o.url for o in first] == [MERN_POSTING.url]
    assert second == []
    assert second_pipeline.last_stats.duplicates == 1
    assert len(store.list_opportunities()) == 1


def test_same_posting_from_two_sources_persisted_once(config, store):
    copy = RawPosting(
        title=MERN_POSTING.title, url=MERN_POSTING.url, source="cryptojobslist",
        description=MERN_POSTING.description,
    )
    pipeline = _pipeline(
        config, store, [FakeSource("web3.careers", [MERN_POSTING]), FakeSource("cryptojobslist", [copy])]
    )
    persisted = pipeline.run()

    assert len(persisted) == 1
    assert persisted[0].source == "web3.careers"
    assert pipeline.last_stats.duplicates == 1


def test_all_postings_logged_before_dedup(config, store):
    sources = [FakeSource("web3.careers", [MERN_POSTING, MERN_POSTING])]
    _pipeline(config, store, sources).run()
    _pipeline(config, store, sources).run()

    lines = store.discovery_log_path.read_text().splitlines()
    assert len(lines) == 4


# ── Threshold gate ──────────────────────────────────────────────────────────


def test_persisted_iff_should_apply(config, store):
    rng = random.Random(7)
    vocabulary = [kw for g in SKILL_GROUPS for kw in g.keywords] + ["java", "php", "remote"]
    postings = [
        _posting(f"Role {i} " + " ".join(rng.sample(vocabulary, rng.randint(0, 6))), n=i)
        for i in range(60)
    ]

    persisted = _pipeline(config, store, [FakeSource("fake", postings)]).run()

    expected = {p.url for p in postings if evaluate(p).should_apply}
    assert {o.url for o in persisted} == expected
    assert {r["url"] for r in store.list_opportunities()} == expected
    assert all(o.score >= 40 for o in persisted)


def test_below_threshold_not_stored(config, store):
    scorer = FixedScorer({"Low scoring role": 39, "Borderline role": 40})
    sources = [FakeSource("fake", [_posting("Low scoring role", 1), _posting("Borderline role", 2)])]

    pipeline = _pipeline(config, store, sources, scorer=scorer)
    persisted = pipeline.run()

    assert [o.title for o in persisted] == ["Borderline role"]
    assert pipeline.last_stats.below_threshold == 1


# ── Notifications ───────────────────────────────────────────────────────────


def test_notifies_only_high_scores(config, store):
    scorer = FixedScorer({"Great Rust role": 85, "Decent Node role": 55})
    notifier = RecordingNotifier()
    sources = [FakeSource("fake", [_posting("Great Rust role", 1), _posting("Decent Node role", 2)])]

    persisted = _pipeline(config, store, sources, scorer=scorer, notifier=notifier).run()

    assert len(persisted) == 2
    assert len(notifier.messages) == 1
    assert "Great Rust role" in notifier.messages[0]
    assert "https://x.test/jobs/1" in notifier.messages[0]
    assert "85/100" in notifier.messages[0]

    recorded = store.notifications()
    assert len(recorded) == 1
    assert recorded[0]["fingerprint"] == persisted[0].fingerprint


def test_notification_not_repeated_next_cycle(config, store):
    scorer = FixedScorer({"Great Rust role": 85})
    notifier = RecordingNotifier()
    sources = [FakeSource("fake", [_posting("Great Rust role")])]

    _pipeline(config, store, sources, scorer=scorer, notifier=notifier).run()
    _pipeline(config, store, sources, scorer=scorer, notifier=notifier).run()

    assert len(notifier.messages) == 1


def test_notifier_failure_does_not_affect_persistence(config, store):
    scorer = FixedScorer({"Great Rust role": 90})
    pipeline = _pipeline(
        config, store, [FakeSource("fake", [_posting("Great Rust role")])],
        scorer=scorer, notifier=RecordingNotifier(fail=True),
    )
    persisted = pipeline.run()

    assert len(persisted) == 1
    assert pipeline.last_stats.notified == 0
    assert store.notifications() == []


def test_unconfigured_telegram_records_nothing(config, store):
    pipeline = _pipeline(
        config, store, [FakeSource("web3.careers", [MERN_POSTING])],
        notifier=TelegramNotifier(NotifierConfig()),
    )
    persisted = pipeline.run()

    assert len(persisted) == 1
    assert pipeline.last_stats.notified == 0
    assert store.notifications() == []


@responses.activate
def test_telegram_server_error_records_nothing(config, store):
    responses.add(responses.POST, TELEGRAM_SEND_URL, json={"ok": False}, status=500)
    notifier = TelegramNotifier(NotifierConfig(telegram_bot_token="123:abc", telegram_chat_id="42"))

    pipeline = _pipeline(config, store, [FakeSource("web3.careers", [MERN_POSTING])], notifier=notifier)
    persisted = pipeline.run()

    assert len(persisted) == 1
    assert len(responses.calls) == 1
    assert pipeline.last_stats.notified == 0
    assert store.notifications() == []


@responses.activate
def test_telegram_delivery_is_recorded(config, store):
    responses.add(responses.POST, TELEGRAM_SEND_URL, json={"ok": True}, status=200)
    notifier = TelegramNotifier(NotifierConfig(telegram_bot_token="123:abc", telegram_chat_id="42"))

    pipeline = _pipeline(config, store, [FakeSource("web3.careers", [MERN_POSTING])], notifier=notifier)
    pipeline.run()

    assert pipeline.last_stats.notified == 1
    assert [n["fingerprint"] for n in store.notifications()] == [MERN_POSTING.fingerprint]


def test_notify_threshold_is_configurable(config, store):
    config.notify_threshold = 50
    scorer = FixedScorer({"Decent Node role": 55})
    notifier = RecordingNotifier()
    _pipeline(
        config, store, [FakeSource("fake", [_posting("Decent Node role")])],
        scorer=scorer, notifier=notifier,
    ).run()
    assert len(notifier.messages) == 1


# ── Failure isolation ───────────────────────────────────────────────────────


def test_failing_adapter_does_not_stop_others(config, store):
    broken = FakeSource("broken", error=RuntimeError("boom"))
    healthy = FakeSource("web3.careers", [MERN_POSTING])

    pipeline = _pipeline(config, store, [broken, healthy])
    persisted = pipeline.run()

    assert len(persisted) == 1
    assert healthy.calls == 1
    assert pipeline.last_stats.failed_sources == ["broken"]
    assert pipeline.last_stats.per_source == {"broken": 0, "web3.careers": 1}


def test_all_adapters_failing_is_an_empty_cycle(config, store):
    pipeline = _pipeline(
        config, store,
        [FakeSource("a", error=RuntimeError("x")), FakeSource("b", error=ValueError("y"))],
    )
    assert pipeline.run() == []
    assert pipeline.last_stats.failed_sources == ["a", "b"]


def test_failed_write_is_skipped(config, tmp_path):
    class FlakyStore(OpportunityStore):
        def insert(self, opportunity, source_type="automated", fp=None):
            if opportunity.title == "Unlucky role":
                raise StoreError("disk full")
            return super().insert(opportunity, source_type, fp)

    store = FlakyStore(config.data_dir)
    scorer = FixedScorer({"Unlucky role": 60, "Lucky role": 60})
    pipeline = _pipeline(
        config, store,
        [FakeSource("fake", [_posting("Unlucky role", 1), _posting("Lucky role", 2)])],
        scorer=scorer,
    )
    persisted = pipeline.run()

    assert [o.title for o in persisted] == ["Lucky role"]
    assert pipeline.last_stats.failed_writes == 1


def test_unreadable_store_aborts_cycle(config, store):
    store.opportunities_path.write_text("{broken")
    pipeline = _pipeline(config, store, [FakeSource("web3.careers", [MERN_POSTING])])

    with pytest.raises(StoreUnavailableError):
        pipeline.run()


def test_empty_cycle(config, store):
    pipeline = _pipeline(config, store, [FakeSource("quiet")])
    assert pipeline.run() == []
    assert pipeline.last_stats.discovered == 0


# ── Cancellation and pacing ─────────────────────────────────────────────────


def test_cancel_before_run_does_nothing(config, store):
    source = FakeSource("web3.careers", [MERN_POSTING])
    cancel = threading.Event()
    cancel.set()

    pipeline = _pipeline(config, store, [source])
    assert pipeline.run(cancel) == []
    assert source.calls == 0
    assert pipeline.last_stats.cancelled is True


def test_cancel_between_adapters(config, store):
    cancel = threading.Event()
    first = FakeSource("first", [MERN_POSTING], on_discover=cancel.set)
    second = FakeSource("second", [_posting("Rust engineer")])

    pipeline = _pipeline(config, store, [first, second])
    persisted = pipeline.run(cancel)

    assert second.calls == 0
    assert persisted == []
    assert store.list_opportunities() == []
    assert pipeline.last_stats.cancelled is True


def test_pause_only_between_adapters(config, store):
    config.source_delay_seconds = 2
    cancel = RecordingEvent()
    sources = [FakeSource("a"), FakeSource("b"), FakeSource("c")]

    _pipeline(config, store, sources).run(cancel)

    assert cancel.waits == [2, 2]


def test_run_lock_shared_per_data_dir(tmp_path):
    data = tmp_path / "data"
    data.mkdir()
    assert _run_lock(data) is _run_lock(tmp_path / "data" / ".." / "data")
    assert _run_lock(data) is not _run_lock(tmp_path)


def test_concurrent_cycles_persist_once(config, store):
    results = []

    def run_cycle():
        store = OpportunityStore(config.data_dir)
        results.append(_pipeline(config, store, [FakeSource("web3.careers", [MERN_POSTING])]).run())

    threads = [threading.Thread(target=run_cycle) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sum(len(r) for r in results) == 1
    assert len(OpportunityStore(config.data_dir).list_opportunities()) == 1


# ── Adapter construction ────────────────────────────────────────────────────


def test_builds_adapters_from_config(config, store):
    config.sources = [
        SourceConfig(name="web3.careers", source_type="web3careers"),
        SourceConfig(name="github", source_type="github"),
        SourceConfig(name="disabled", source_type="cryptojobs", enabled=False),
        SourceConfig(name="mystery", source_type="nope"),
    ]
    pipeline = DiscoveryPipeline(
        config, store=store, scorer=RuleBasedScorer(), notifier=RecordingNotifier()
    )

    assert [type(s) for s in pipeline.scrapers] == [Web3CareersScraper, GitHubIssuesScraper]
    assert [s.name for s in pipeline.scrapers] == ["web3.careers", "github"]
