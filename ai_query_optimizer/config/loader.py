"""
Configuration management and loading.

Every section and key is optional; missing values fall back to the
defaults of the dataclasses below. Values are validated strictly, while
unknown keys are ignored with a warning.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import structlog
import yaml

from ai_query_optimizer.core.model_selector import ScoringWeights
from ai_query_optimizer.core.pricing import MODEL_TIERS, ModelTierSpec, ModelTierTable, SpeedClass
from ai_query_optimizer.core.response_cache import (
    DEFAULT_CACHE_DURATION_MS,
    DEFAULT_CLEANUP_INTERVAL_MS,
    DEFAULT_MAX_SIZE,
    DEFAULT_SIMILARITY_THRESHOLD,
)
from ai_query_optimizer.storage.db import DEFAULT_DB_PATH

logger = structlog.stdlib.get_logger()

LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
LOG_FORMATS = {"console", "json"}


@dataclass(frozen=True)
class CacheConfig:
    """Response cache settings."""
    duration_ms: float = DEFAULT_CACHE_DURATION_MS
    max_size: int = DEFAULT_MAX_SIZE
    cleanup_interval_ms: float = DEFAULT_CLEANUP_INTERVAL_MS
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD

    def __post_init__(self):
        """Validate cache values."""
        if self.duration_ms <= 0:
            raise ValueError("cache duration_ms must be > 0")
        if self.max_size <= 0:
            raise ValueError("cache max_size must be > 0")
        if self.cleanup_interval_ms <= 0:
            raise ValueError("cache cleanup_interval_ms must be > 0")
        if not 0 < self.similarity_threshold <= 1:
            raise ValueError("cache similarity_threshold must be in (0, 1]")


@dataclass(frozen=True)
class SelectorConfig:
    """Model selection settings."""
    max_budget: Optional[float] = None
    weights: ScoringWeights = field(default_factory=ScoringWeights)

    def __post_init__(self):
        if self.max_budget is not None and self.max_budget <= 0:
            raise ValueError("selector max_budget must be > 0")


@dataclass(frozen=True)
class StorageConfig:
    """Where usage stats are persisted."""
    db_path: str = DEFAULT_DB_PATH


@dataclass(frozen=True)
class LoggingConfig:
    """structlog output settings."""
    level: str = "INFO"
    format: str = "console"

    def __post_init__(self):
        if self.level not in LOG_LEVELS:
            raise ValueError(f"logging level must be one of: {sorted(LOG_LEVELS)}")
        if self.format not in LOG_FORMATS:
            raise ValueError(f"logging format must be one of: {sorted(LOG_FORMATS)}")


@dataclass(frozen=True)
class OptimizerConfig:
    """Complete optimizer configuration."""
    cache: CacheConfig = field(default_factory=CacheConfig)
    selector: SelectorConfig = field(default_factory=SelectorConfig)
    models: ModelTierTable = MODEL_TIERS
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def load_optimizer_config(path: str) -> OptimizerConfig:
    """Load and validate optimizer configuration from a YAML file.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated OptimizerConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Optimizer config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        return OptimizerConfig()
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration file must contain a mapping")

    return parse_optimizer_config(raw_config)


def parse_optimizer_config(raw_config: Mapping[str, Any]) -> OptimizerConfig:
    """Build an OptimizerConfig from an already-loaded mapping.

    Raises:
        ValueError: If configuration is invalid
    """
    _warn_unknown(raw_config, {'cache', 'selector', 'models', 'storage', 'logging'}, "config")

    models = MODEL_TIERS
    if raw_config.get('models') is not None:
        models = _parse_models(_section(raw_config, 'models'))

    return OptimizerConfig(
        cache=parse_cache_config(_section(raw_config, 'cache')),
        selector=_parse_selector(_section(raw_config, 'selector')),
        models=models,
        storage=_parse_storage(_section(raw_config, 'storage')),
        logging=_parse_logging(_section(raw_config, 'logging')),
    )


def parse_cache_config(data: Mapping[str, Any]) -> CacheConfig:
    """Parse the ``cache`` section.

    Args:
        data: Cache section mapping

    Returns:
        Validated CacheConfig

    Raises:
        ValueError: If a value has the wrong type or range
    """
    _warn_unknown(data, {'duration_ms', 'max_size', 'cleanup_interval_ms', 'similarity_threshold'}, "cache")
    defaults = CacheConfig()
    return CacheConfig(
        duration_ms=_number(data, 'duration_ms', defaults.duration_ms, "cache"),
        max_size=int(_number(data, 'max_size', defaults.max_size, "cache")),
        cleanup_interval_ms=_number(data, 'cleanup_interval_ms', defaults.cleanup_interval_ms, "cache"),
        similarity_threshold=_number(data, 'similarity_threshold', defaults.similarity_threshold, "cache"),
    )


def _parse_selector(data: Mapping[str, Any]) -> SelectorConfig:
    _warn_unknown(data, {'max_budget', 'weights'}, "selector")

    max_budget = data.get('max_budget')
    if max_budget is not None:
        max_budget = _number(data, 'max_budget', None, "selector")

    weights_data = _section(data, 'weights', "selector.weights")
    weight_names = {'use_case_match', 'speed', 'cost', 'budget_penalty', 'context_penalty'}
    _warn_unknown(weights_data, weight_names, "selector.weights")
    defaults = ScoringWeights()
    weights = ScoringWeights(**{
        name: _number(weights_data, name, getattr(defaults, name), "selector.weights")
        for name in weight_names
    })
    return SelectorConfig(max_budget=max_budget, weights=weights)


def _parse_models(data: Mapping[str, Any]) -> ModelTierTable:
    """Parse the ``models`` section into a tier table, keeping file order."""
    if not data:
        raise ValueError("'models' must define at least one model")

    tiers = {}
    for name, spec_data in data.items():
        path = f"models.{name}"
        if not isinstance(spec_data, dict):
            raise ValueError(f"Model '{name}' must be a dictionary")
        _warn_unknown(
            spec_data,
            {'cost_per_1k_input', 'cost_per_1k_output', 'max_context_tokens', 'speed', 'recommended_for', 'capabilities'},
            path,
        )
        for required in ('cost_per_1k_input', 'cost_per_1k_output', 'max_context_tokens'):
            if required not in spec_data:
                raise ValueError(f"Missing required '{required}' in {path}")

        speed = spec_data.get('speed', SpeedClass.MEDIUM.value)
        try:
            speed = SpeedClass(str(speed).lower())
        except ValueError:
            valid = [s.value for s in SpeedClass]
            raise ValueError(f"'speed' in {path} must be one of: {valid}")

        tiers[str(name)] = ModelTierSpec(
            name=str(name),
            cost_per_1k_input=_decimal(spec_data['cost_per_1k_input'], f"{path}.cost_per_1k_input"),
            cost_per_1k_output=_decimal(spec_data['cost_per_1k_output'], f"{path}.cost_per_1k_output"),
            max_context_tokens=int(_number(spec_data, 'max_context_tokens', None, path)),
            speed=speed,
            capabilities=frozenset(_string_list(spec_data, 'capabilities', path)),
            recommended_for=frozenset(_string_list(spec_data, 'recommended_for', path)),
        )
    return ModelTierTable(tiers)


def _parse_storage(data: Mapping[str, Any]) -> StorageConfig:
    _warn_unknown(data, {'db_path'}, "storage")
    db_path = data.get('db_path', DEFAULT_DB_PATH)
    if not isinstance(db_path, str) or not db_path.strip():
        raise ValueError("'db_path' in storage must be a non-empty string")
    return StorageConfig(db_path=db_path)


def _parse_logging(data: Mapping[str, Any]) -> LoggingConfig:
    _warn_unknown(data, {'level', 'format'}, "logging")
    level = data.get('level', "INFO")
    fmt = data.get('format', "console")
    if not isinstance(level, str) or not isinstance(fmt, str):
        raise ValueError("logging level and format must be strings")
    return LoggingConfig(level=level.upper(), format=fmt.lower())


def _section(data: Mapping[str, Any], key: str, path: Optional[str] = None) -> Dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"'{path or key}' must be a dictionary")
    return value


def _warn_unknown(data: Mapping[str, Any], allowed_keys: set, path: str) -> None:
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        logger.warning("config.unknown_keys", section=path, keys=sorted(str(k) for k in unknown_keys))


def _number(data: Mapping[str, Any], key: str, default: Any, path: str) -> Any:
    if key not in data or data[key] is None:
        if default is None:
            raise ValueError(f"Missing required '{key}' in {path}")
        return default
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{key}' in {path} must be a number")
    return value


def _decimal(value: Any, path: str) -> Decimal:
    if isinstance(value, bool):
        raise ValueError(f"'{path}' must be a number")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"'{path}' must be a number")


def _string_list(data: Mapping[str, Any], key: str, path: str) -> list:
    value = data.get(key) or []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValueError(f"'{key}' in {path} must be a list of strings")
    return value
