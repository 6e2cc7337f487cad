"""Configuration loader for the discovery pipeline.

Reads config.yaml and returns typed configuration objects that the
orchestrator, the scoring engine and individual source adapters consume.
Secrets (bot tokens, API keys) are read from the environment only.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.yaml"


@dataclass
class SourceConfig:
    """Configuration for a single source adapter."""

    name: str
    source_type: str  # "web3careers", "github", "cryptojobslist", "cryptojobs"
    enabled: bool = True
    url: str = ""
    keywords: list[str] = field(default_factory=list)
    params: dict[str, Any] = field(default_factory=dict)


# Registration order matters: adapters run sequentially in this order.
DEFAULT_SOURCES: tuple[tuple[str, str], ...] = (
    ("web3.careers", "web3careers"),
    ("github", "github"),
    ("cryptojobslist", "cryptojobslist"),
    ("cryptojobs", "cryptojobs"),
)


@dataclass
class NotifierConfig:
    """Chat notification settings (values come from the environment)."""

    telegram_bot_token: str = ""
    telegram_chat_id: str = ""
    timeout_seconds: float = 5.0

    @property
    def configured(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_chat_id)


@dataclass
class LLMConfig:
    """Settings for the optional language-model scorer."""

    ollama_base_url: str = ""
    ollama_model: str = ""
    openai_api_key: str = ""
    openai_model: str = "gpt-3.5-turbo"
    timeout_seconds: float = 60.0
    profile: str = (
        "Backend-focused full-stack developer with expertise in:\n"
        "- Node.js and TypeScript\n"
        "- Next.js (App Router)\n"
        "- Web3 and blockchain development\n"
        "- Rust programming\n"
        "- Solana blockchain ecosystem"
    )

    @property
    def configured(self) -> bool:
        return bool((self.ollama_base_url and self.ollama_model) or self.openai_api_key)


@dataclass
class PipelineConfig:
    """Top-level pipeline configuration."""

    sources: list[SourceConfig] = field(default_factory=list)
    data_dir: str = "data"
    log_level: str = "INFO"
    request_timeout_seconds: float = 10.0
    source_delay_seconds: float = 2.0  # pause between adapters
    query_delay_seconds: float = 1.0  # pause between requests inside one adapter
    max_attempts: int = 1
    retry_backoff_seconds: float = 2.0
    description_limit: int = 2000
    notify_threshold: int = 70
    discovery_interval_minutes: int = 60
    scorer: str = "rules"  # "rules" or "llm"
    github_token: str = ""
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) OpportunityScout/1.0"
    )
    notifier: NotifierConfig = field(default_factory=NotifierConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)

    @property
    def enabled_sources(self) -> list[SourceConfig]:
        return [s for s in self.sources if s.enabled]


def default_sources() -> list[SourceConfig]:
    return [SourceConfig(name=name, source_type=stype) for name, stype in DEFAULT_SOURCES]


def load_config(path: Path | str | None = None) -> PipelineConfig:
    """Load the pipeline configuration from a YAML file plus environment."""
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH

    raw: dict[str, Any] = {}
    if not config_path.exists():
        logger.warning("Config file not found at %s, using defaults", config_path)
    else:
        with open(config_path, "r") as f:
            raw = yaml.safe_load(f) or {}

    if "sources" in raw:
        sources = [
            SourceConfig(
                name=src["name"],
                source_type=src["source_type"],
                enabled=src.get("enabled", True),
                url=src.get("url", ""),
                keywords=src.get("keywords", []),
                params=src.get("params", {}),
            )
            for src in raw.get("sources") or []
        ]
    else:
        sources = default_sources()

    notify_raw = raw.get("notifier", {}) or {}
    llm_raw = raw.get("llm", {}) or {}

    config = PipelineConfig(
        sources=sources,
        data_dir=raw.get("data_dir", "data"),
        log_level=raw.get("log_level", "INFO"),
        request_timeout_seconds=raw.get("request_timeout_seconds", 10.0),
        source_delay_seconds=raw.get("source_delay_seconds", 2.0),
        query_delay_seconds=raw.get("query_delay_seconds", 1.0),
        max_attempts=raw.get("max_attempts", 1),
        retry_backoff_seconds=raw.get("retry_backoff_seconds", 2.0),
        description_limit=raw.get("description_limit", 2000),
        notify_threshold=raw.get("notify_threshold", 70),
        discovery_interval_minutes=raw.get("discovery_interval_minutes", 60),
        scorer=raw.get("scorer", "rules"),
        user_agent=raw.get("user_agent", PipelineConfig.user_agent),
        notifier=NotifierConfig(
            timeout_seconds=notify_raw.get("timeout_seconds", 5.0),
        ),
        llm=LLMConfig(
            openai_model=llm_raw.get("openai_model", LLMConfig.openai_model),
            timeout_seconds=llm_raw.get("timeout_seconds", 60.0),
            profile=llm_raw.get("profile", LLMConfig.profile),
        ),
    )
    apply_env_overrides(config)
    return config


def apply_env_overrides(config: PipelineConfig, env: dict[str, str] | None = None) -> None:
    """Fill secrets and deployment overrides from environment variables."""
    env = os.environ if env is None else env

    config.notifier.telegram_bot_token = env.get("TELEGRAM_BOT_TOKEN", "")
    config.notifier.telegram_chat_id = env.get("TELEGRAM_CHAT_ID", "")
    config.github_token = env.get("GITHUB_TOKEN", "")
    config.llm.openai_api_key = env.get("OPENAI_API_KEY", "")
    config.llm.ollama_base_url = env.get("OLLAMA_BASE_URL", "")
    config.llm.ollama_model = env.get("OLLAMA_MODEL", "")

    if env.get("DATA_DIR"):
        config.data_dir = env["DATA_DIR"]

    interval = env.get("DISCOVERY_INTERVAL_MINUTES")
    if interval:
        try:
            config.discovery_interval_minutes = int(interval)
        except ValueError:
            logger.warning("Ignoring invalid DISCOVERY_INTERVAL_MINUTES=%r", interval)
