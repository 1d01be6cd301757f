"""
Scout configuration.

All tunables live in ``config/scout.yaml`` and are loaded into an explicit
``ScoutConfig`` that is passed to each component at construction time.
Missing keys fall back to the defaults below; numeric run parameters are
clamped to the ranges the research providers accept.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))),
    "config", "scout.yaml",
)

MODES = ("strict", "speculative")

# Range limits for run parameters: (min, max, default)
WITHIN_DAYS_RANGE = (0, 60, 7)
SEARCH_LIMIT_RANGE = (1, 25, 20)
TARGET_COUNT_RANGE = (1, 10, 10)

DEFAULT_MAX_FINALIZE_ATTEMPTS = 2
DEFAULT_FINALIZE_BACKOFF_SECONDS = 12.0

DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_BACKOFF_SECONDS = 2.0
DEFAULT_BACKOFF_MULTIPLIER = 2.0


def clamp_int(value: Any, bounds: Tuple[int, int, int]) -> int:
    """Coerce value to an int within (min, max), falling back to the default."""
    lo, hi, default = bounds
    try:
        n = int(float(value))
    except (TypeError, ValueError):
        return default
    return max(lo, min(hi, n))


def normalize_mode(value: Optional[str]) -> str:
    """Map a mode string to 'strict' or 'speculative'.

    The legacy spelling 'speculation' is accepted.
    """
    text = str(value or "").strip().lower()
    if text == "strict":
        return "strict"
    return "speculative"


@dataclass
class RetryPolicy:
    """Bounded exponential backoff for provider calls."""
    max_retries: int = DEFAULT_MAX_RETRIES
    initial_backoff_seconds: float = DEFAULT_INITIAL_BACKOFF_SECONDS
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER


@dataclass
class ProviderSettings:
    perplexity_async_model: str = "sonar-deep-research"
    perplexity_sync_model: str = "sonar-pro"
    grok_model: str = "grok-4-1-fast-reasoning"
    anthropic_model: str = "claude-haiku-4-5"
    connect_timeout_seconds: float = 10.0
    read_timeout_seconds: float = 60.0
    youtube_max_results_per_query: int = 5
    youtube_within_days: int = 30

    @property
    def timeout(self) -> Tuple[float, float]:
        return (self.connect_timeout_seconds, self.read_timeout_seconds)


@dataclass
class ScoutConfig:
    """Every scout option with its default."""
    enabled: bool = True
    mode: str = "speculative"
    within_days: int = WITHIN_DAYS_RANGE[2]
    search_limit: int = SEARCH_LIMIT_RANGE[2]
    target_count: int = TARGET_COUNT_RANGE[2]
    max_finalize_attempts: int = DEFAULT_MAX_FINALIZE_ATTEMPTS
    finalize_backoff_seconds: float = DEFAULT_FINALIZE_BACKOFF_SECONDS
    store_root: str = "data/blob"
    seed_dataset_path: Optional[str] = None
    stage_ids: List[str] = field(default_factory=list)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    providers: ProviderSettings = field(default_factory=ProviderSettings)
    extractor_max_tokens: int = 4000
    extractor_temperature: float = 0.2
    fallback_search: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScoutConfig":
        """Build a config from parsed YAML, applying defaults and clamps."""
        data = data or {}
        finalize = data.get("finalize") or {}
        store = data.get("store") or {}
        retry = data.get("retry") or {}
        http = data.get("http") or {}
        providers = data.get("providers") or {}
        extractor = data.get("extractor") or {}
        youtube = data.get("youtube") or {}

        provider_defaults = ProviderSettings()

        return cls(
            enabled=bool(data.get("enabled", True)),
            mode=normalize_mode(data.get("mode")),
            within_days=clamp_int(data.get("within_days"), WITHIN_DAYS_RANGE),
            search_limit=clamp_int(data.get("search_limit"), SEARCH_LIMIT_RANGE),
            target_count=clamp_int(data.get("target_count"), TARGET_COUNT_RANGE),
            max_finalize_attempts=max(1, int(finalize.get("max_attempts", DEFAULT_MAX_FINALIZE_ATTEMPTS))),
            finalize_backoff_seconds=max(0.0, float(finalize.get("backoff_seconds", DEFAULT_FINALIZE_BACKOFF_SECONDS))),
            store_root=str(store.get("root", "data/blob")),
            seed_dataset_path=store.get("seed_dataset_path"),
            stage_ids=[str(s) for s in (data.get("stages") or [])],
            retry=RetryPolicy(
                max_retries=max(1, int(retry.get("max_retries", DEFAULT_MAX_RETRIES))),
                initial_backoff_seconds=float(retry.get("initial_backoff_seconds", DEFAULT_INITIAL_BACKOFF_SECONDS)),
                backoff_multiplier=float(retry.get("backoff_multiplier", DEFAULT_BACKOFF_MULTIPLIER)),
            ),
            providers=ProviderSettings(
                perplexity_async_model=providers.get("perplexity_async_model", provider_defaults.perplexity_async_model),
                perplexity_sync_model=providers.get("perplexity_sync_model", provider_defaults.perplexity_sync_model),
                grok_model=providers.get("grok_model", provider_defaults.grok_model),
                anthropic_model=providers.get("anthropic_model", provider_defaults.anthropic_model),
                connect_timeout_seconds=float(http.get("connect_timeout_seconds", provider_defaults.connect_timeout_seconds)),
                read_timeout_seconds=float(http.get("read_timeout_seconds", provider_defaults.read_timeout_seconds)),
                youtube_max_results_per_query=int(youtube.get("max_results_per_query", provider_defaults.youtube_max_results_per_query)),
                youtube_within_days=int(youtube.get("within_days", provider_defaults.youtube_within_days)),
            ),
            extractor_max_tokens=int(extractor.get("max_tokens", 4000)),
            extractor_temperature=float(extractor.get("temperature", 0.2)),
            fallback_search=bool(data.get("fallback_search", True)),
        )


def load_config(path: Optional[str] = None) -> ScoutConfig:
    """
    Load scout configuration from YAML.

    Args:
        path: Config file path (defaults to config/scout.yaml at the repo root)

    Returns:
        ScoutConfig; defaults if the file does not exist
    """
    config_path = path or DEFAULT_CONFIG_PATH
    if not os.path.exists(config_path):
        logger.info(f"No scout config at {config_path}, using defaults")
        return ScoutConfig()

    with open(config_path, "r") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Scout config must be a mapping: {config_path}")

    return ScoutConfig.from_dict(data)
