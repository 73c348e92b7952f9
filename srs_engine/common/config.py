"""
Centralized Configuration for the Scheduling Engine

This module provides a unified configuration system for the engine. It handles
configuration from environment variables, config files, and defaults, with
proper type checking and validation.

Every empirical constant of the memory model (quality thresholds, stability
multipliers, phase thresholds, priority weights) lives here so that it can be
tuned without touching the algorithms.
"""

import os
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Type

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

# Configure logging
logger = logging.getLogger(__name__)


class ForgettingConfig(BaseModel):
    """Memory model update rule"""
    success_threshold: float = Field(default=0.7, ge=0, le=1)
    failure_threshold: float = Field(default=0.3, ge=0, le=1)
    success_multiplier: float = Field(default=1.3, gt=0)
    failure_multiplier: float = Field(default=0.7, gt=0)
    min_stability: float = Field(default=0.1, gt=0)
    base_stability: float = Field(default=1.0, gt=0)
    default_quality: float = Field(default=0.5, ge=0, le=1)
    default_asymptote: float = Field(default=0.1, ge=0, le=1)
    base_decay_rate: float = Field(default=0.1, ge=0)
    difficulty_decay_rate: float = Field(default=0.3, ge=0)
    default_item_affinity: float = Field(default=0.7, ge=0, le=1)
    default_interference: float = Field(default=0.3, ge=0, le=1)
    default_learner_ability: float = Field(default=0.5, ge=0, le=1)
    excellent_threshold: float = Field(default=0.9, ge=0, le=1)
    slow_response_seconds: float = Field(default=120.0, gt=0)

    @model_validator(mode='after')
    def validate_thresholds(self):
        """Failure band must sit below the success band"""
        if self.failure_threshold >= self.success_threshold:
            raise ValueError(
                f"failure_threshold ({self.failure_threshold}) must be below "
                f"success_threshold ({self.success_threshold})"
            )
        return self


class PhaseConfig(BaseModel):
    """Learning-phase state machine thresholds"""
    acquisition_reviews: int = Field(default=3, ge=0)
    maintenance_stability_days: float = Field(default=7.0, gt=0)
    maintenance_success_streak: int = Field(default=3, ge=1)
    relearning_failure_streak: int = Field(default=1, ge=0)


class IntervalConfig(BaseModel):
    """Interval calculator bounds"""
    min_interval_hours: float = Field(default=4.0, gt=0)
    max_interval_days: float = Field(default=365.0, gt=0)

    @model_validator(mode='after')
    def validate_bounds(self):
        """Floor must not exceed the ceiling"""
        if self.min_interval_hours > self.max_interval_days * 24:
            raise ValueError("min_interval_hours exceeds max_interval_days")
        return self


class ScheduleConfig(BaseModel):
    """Schedule generation"""
    default_horizon_days: int = Field(default=30, ge=0)
    max_daily_reviews: int = Field(default=50, ge=0)
    overdue_weight: float = 10.0
    retrievability_weight: float = 5.0
    priority_threshold: float = 5.0
    base_duration_minutes: float = Field(default=5.0, ge=0)
    difficulty_duration_minutes: float = Field(default=10.0, ge=0)
    default_window_start: int = Field(default=9, ge=0, le=23)
    default_window_end: int = Field(default=11, ge=0, le=24)
    max_session_minutes: float = Field(default=60.0, gt=0)
    session_minutes_per_item: float = Field(default=8.0, gt=0)
    look_ahead: bool = False
    base_interval_multiplier: float = 2.5
    difficulty_adjustment_rate: float = 0.15
    due_priority_floor: float = 0.5


class CurveConfig(BaseModel):
    """Forgetting curve analysis"""
    min_sessions: int = Field(default=2, ge=2)
    default_half_life_hours: float = Field(default=24.0, gt=0)
    min_half_life_hours: float = Field(default=1.0, gt=0)
    max_half_life_hours: float = Field(default=8760.0, gt=0)
    half_life_grid_size: int = Field(default=200, ge=2)
    prediction_horizon_hours: float = Field(default=720.0, gt=0)
    confidence_spread: float = Field(default=0.2, ge=0)
    prediction_spread: float = Field(default=0.1, ge=0)
    interference_prior_weight: float = Field(default=0.5, ge=0, le=1)


class LeitnerConfig(BaseModel):
    """Leitner box policy"""
    max_boxes: int = Field(default=5, ge=1)
    initial_interval_days: float = Field(default=1.0, gt=0)
    interval_multiplier: float = Field(default=2.0, gt=0)
    graduation_bonus_days: float = Field(default=7.0, ge=0)
    base_successes_required: int = Field(default=2, ge=1)
    success_threshold: float = Field(default=0.7, ge=0, le=1)
    confidence_threshold: float = Field(default=0.8, ge=0, le=1)
    failure_threshold: float = Field(default=0.3, ge=0, le=1)
    confidence_drop_threshold: float = Field(default=0.4, ge=0, le=1)


class SuperMemoConfig(BaseModel):
    """SuperMemo SM-2 policy"""
    initial_easiness: float = 2.5
    min_easiness: float = 1.3
    max_easiness: float = 5.0
    first_interval: int = Field(default=1, ge=1)
    second_interval: int = Field(default=6, ge=1)
    passing_grade: int = Field(default=3, ge=0, le=5)
    max_interval: int = Field(default=36500, ge=1)


class AdvisoryConfig(BaseModel):
    """Optional advisory service"""
    enabled: bool = False
    timeout_seconds: float = Field(default=2.0, gt=0)
    max_workers: int = Field(default=2, ge=1)
    fallback_confidence: float = Field(default=0.7, ge=0, le=1)
    fallback_improvement: float = 0.15


class CacheConfig(BaseModel):
    """Schedule cache"""
    enabled: bool = True
    schedule_ttl_seconds: int = Field(default=3600, ge=0)
    max_size: int = Field(default=1000, ge=1)


class LoggingConfig(BaseModel):
    """Logging configuration"""
    level: str = "INFO"
    use_json: bool = False
    file_path: Optional[str] = None

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        """Validate log level"""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()


class EngineConfig(BaseSettings):
    """
    Main engine configuration.

    Environment variables use the ``SRS_`` prefix and ``__`` for nesting,
    e.g. ``SRS_SCHEDULE__MAX_DAILY_REVIEWS=20``.
    """
    model_config = SettingsConfigDict(
        env_prefix="SRS_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore"
    )

    app_name: str = "srs-engine"
    version: str = "0.1.0"
    forgetting: ForgettingConfig = Field(default_factory=ForgettingConfig)
    phases: PhaseConfig = Field(default_factory=PhaseConfig)
    intervals: IntervalConfig = Field(default_factory=IntervalConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    curve: CurveConfig = Field(default_factory=CurveConfig)
    leitner: LeitnerConfig = Field(default_factory=LeitnerConfig)
    supermemo: SuperMemoConfig = Field(default_factory=SuperMemoConfig)
    advisory: AdvisoryConfig = Field(default_factory=AdvisoryConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        # Environment wins over values passed in from a config file
        return env_settings, dotenv_settings, init_settings, file_secret_settings


class ConfigLoader:
    """
    Configuration loader for the engine.

    Loads configuration from:
    1. Default values
    2. Config file (YAML or JSON)
    3. Environment variables (highest priority)
    """

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize the config loader.

        Args:
            config_path: Path to config file (YAML or JSON)
        """
        self.config_path = config_path or os.environ.get("SRS_CONFIG_PATH")
        self._config: Optional[EngineConfig] = None

    def load(self) -> EngineConfig:
        """
        Load configuration from all sources.

        Returns:
            Loaded configuration
        """
        if self._config is not None:
            return self._config

        file_config: Dict[str, Any] = {}
        if self.config_path:
            file_config = self._load_from_file(self.config_path)

        self._config = EngineConfig(**file_config)
        return self._config

    def _load_from_file(self, path: str) -> Dict[str, Any]:
        """
        Load configuration from a file.

        Args:
            path: Path to config file

        Returns:
            Loaded configuration dictionary
        """
        path = Path(path)
        if not path.exists():
            logger.warning(f"Config file not found: {path}")
            return {}

        if path.suffix.lower() in ['.yaml', '.yml']:
            with open(path, 'r') as f:
                return yaml.safe_load(f) or {}
        elif path.suffix.lower() == '.json':
            with open(path, 'r') as f:
                return json.load(f)

        logger.warning(f"Unsupported config file format: {path.suffix}")
        return {}


# Global configuration instance
config_loader = ConfigLoader()
_config: Optional[EngineConfig] = None


def get_config() -> EngineConfig:
    """
    Get the loaded configuration.

    Returns:
        Loaded configuration
    """
    global _config
    if _config is None:
        _config = config_loader.load()
    return _config


def reload_config(config_path: Optional[str] = None) -> EngineConfig:
    """
    Reload the configuration.

    Args:
        config_path: Path to config file

    Returns:
        Reloaded configuration
    """
    global config_loader, _config
    config_loader = ConfigLoader(config_path)
    _config = config_loader.load()
    return _config
