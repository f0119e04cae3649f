"""
Loads and validates config from resources/config.yml
Connection settings (OLLAMA_BASE_URL, OLLAMA_MODEL, PULSE_DATABASE_PATH) may be overridden from .env
"""
import os
from typing import Any, Dict, Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, model_validator

SUPPORTED_PERIODS = ("30d", "90d")


class ConfigurationError(ValueError):
    """Raised at startup when the configuration cannot be used."""


class SurgeConfig(BaseModel):
    """Surge override: lets a burst of mentions break through a cooldown."""
    lookback_days: float = Field(2.0, gt=0)
    baseline_days: float = Field(14.0, gt=0)
    multiplier: float = Field(3.0, ge=1.0)
    min_mentions: int = Field(3, ge=1)

    @model_validator(mode="after")
    def check_windows(self):
        if self.baseline_days <= self.lookback_days:
            raise ValueError("surge.baseline_days must be longer than surge.lookback_days")
        return self


class DedupConfig(BaseModel):
    cooldown_days: Dict[str, float] = {
        "Pain": 2.0,            # 1 pulse per 2 days per topic
        "FeatureRequest": 3.0,  # 1 per 3 days
        "Praise": 7.0,          # 1 per 7 days
    }
    default_cooldown_days: float = Field(3.0, ge=0)
    surge: SurgeConfig = SurgeConfig()
    clock: Literal["run", "observed"] = "run"

    @model_validator(mode="after")
    def check_cooldowns(self):
        for obs_type, days in self.cooldown_days.items():
            if days < 0:
                raise ValueError(f"cooldown for '{obs_type}' must not be negative")
        return self

    def cooldown_for(self, obs_type: str) -> float:
        return self.cooldown_days.get(obs_type, self.default_cooldown_days)


class LowRatingConfig(BaseModel):
    enabled: bool = True
    threshold: float = Field(2.0, gt=0)


class ReviewObservationConfig(BaseModel):
    enabled: bool = True
    preempt_low_rating: bool = True
    max_observations: int = Field(3, ge=1)
    low_rating_max: float = Field(3.0, ge=0)
    high_rating_min: float = Field(4.5, ge=0)
    high_confidence: float = Field(0.75, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def check_buckets(self):
        if self.high_rating_min <= self.low_rating_max:
            raise ValueError("high_rating_min must be above low_rating_max")
        return self


class CompanyObservationConfig(BaseModel):
    enabled: bool = True
    max_observations: int = Field(3, ge=1)


class EngagementWeights(BaseModel):
    likes: float = Field(1.0, ge=0)
    comments: float = Field(3.0, ge=0)
    shares: float = Field(2.0, ge=0)


class EngagementSpikeConfig(BaseModel):
    enabled: bool = True
    period: str = "30d"
    weights: EngagementWeights = EngagementWeights()
    min_ratio: float = Field(2.0, gt=0)   # below this no alert, at or above is tier 3
    tier2_ratio: float = Field(2.5, gt=0)
    tier1_ratio: float = Field(4.0, gt=0)

    @model_validator(mode="after")
    def check_breakpoints(self):
        if not (self.min_ratio <= self.tier2_ratio <= self.tier1_ratio):
            raise ValueError("engagement ratios must satisfy min_ratio <= tier2_ratio <= tier1_ratio")
        if self.period not in SUPPORTED_PERIODS:
            raise ValueError(f"unsupported engagement period: {self.period}")
        return self


class PostingFrequencyConfig(BaseModel):
    enabled: bool = True
    period: str = "30d"
    tier1_ratio: float = Field(3.5, gt=0)
    tier1_min_posts: int = Field(12, ge=1)
    tier2_ratio: float = Field(2.5, gt=0)
    tier2_min_posts: int = Field(8, ge=1)
    tier3_ratio: float = Field(1.75, gt=0)
    tier3_min_posts: int = Field(6, ge=1)
    new_activity_min_posts: int = Field(8, ge=1)

    @model_validator(mode="after")
    def check_breakpoints(self):
        if not (self.tier3_ratio <= self.tier2_ratio <= self.tier1_ratio):
            raise ValueError("posting ratios must satisfy tier3 <= tier2 <= tier1")
        if self.period not in SUPPORTED_PERIODS:
            raise ValueError(f"unsupported posting period: {self.period}")
        return self


class RulesConfig(BaseModel):
    low_rating: LowRatingConfig = LowRatingConfig()
    review_observations: ReviewObservationConfig = ReviewObservationConfig()
    company_observations: CompanyObservationConfig = CompanyObservationConfig()
    engagement_spike: EngagementSpikeConfig = EngagementSpikeConfig()
    posting_frequency: PostingFrequencyConfig = PostingFrequencyConfig()


class Config(BaseModel):
    # Core
    DATABASE_PATH: str = "data/pulse.db"
    OUTPUT_DIR: str = "output"
    MAX_CONCURRENCY: int = Field(8, ge=1)

    # Ollama
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    OLLAMA_MODEL: str = "llama3.1:8b"
    LLM_TIMEOUT_SECONDS: float = Field(120.0, gt=0)
    LLM_MAX_RETRIES: int = Field(3, ge=1)

    dedup: DedupConfig = DedupConfig()
    rules: RulesConfig = RulesConfig()


def _get_config_path() -> str:
    """Get the path to config.yml, handling different working directories."""
    # Try relative path first
    if os.path.exists('resources/config.yml'):
        return 'resources/config.yml'

    # Try from project root
    project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))
    config_path = os.path.join(project_root, 'resources', 'config.yml')
    if os.path.exists(config_path):
        return config_path

    raise FileNotFoundError("Cannot find resources/config.yml")


def parse_config(data: Dict[str, Any]) -> Config:
    """Validate raw config data. Any problem is a ConfigurationError."""
    try:
        return Config.model_validate(data or {})
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def load_config(path: Optional[str] = None) -> Config:
    """Load configuration from config.yml with overrides from .env."""
    load_dotenv()

    config_path = path or _get_config_path()

    with open(config_path, 'r') as file:
        data = yaml.safe_load(file) or {}

    for key in ("OLLAMA_BASE_URL", "OLLAMA_MODEL"):
        if os.getenv(key):
            data[key] = os.getenv(key)
    if os.getenv("PULSE_DATABASE_PATH"):
        data["DATABASE_PATH"] = os.getenv("PULSE_DATABASE_PATH")

    return parse_config(data)
