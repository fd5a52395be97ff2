"""
Configuration management and loading.

Handles the config file, built-in defaults and API key resolution.
"""

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ai_client.core.conversation import HistoryPolicy
from ai_client.core.errors import ConfigurationError
from ai_client.core.pricing import DEFAULT_PRICING, ModelPricing, PricingTable
from ai_client.core.retry import RetryPolicy

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".ai-client"
DEFAULT_CONFIG_PATH = CONFIG_DIR / "config.yaml"
LEGACY_CONFIG_PATH = CONFIG_DIR / "config.json"

API_KEY_ENV_VAR = "ANTHROPIC_API_KEY"
ENV_PREFIX = "env:"

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"
DEFAULT_MAX_TOKENS = 8192
DEFAULT_TEMPERATURE = 0.7

# camelCase keys are what existing config files use; snake_case is accepted too
_TOP_LEVEL_KEYS = {
    "apiKey": "api_key",
    "defaultModel": "default_model",
    "maxTokens": "max_tokens",
    "temperature": "temperature",
    "pricing": "pricing",
    "retry": "retry",
    "history": "history",
}
_RETRY_KEYS = {
    "maxRetries": "max_retries",
    "baseDelayMs": "base_delay_ms",
    "maxDelayMs": "max_delay_ms",
}
_HISTORY_KEYS = {
    "enabled": "enabled",
    "maxMessages": "max_messages",
}
_PRICING_KEYS = {
    "inputPer1k": "input_per_1k",
    "outputPer1k": "output_per_1k",
}


@dataclass(frozen=True)
class ClientConfig:
    """Complete client configuration."""
    api_key: Optional[str] = None
    default_model: str = DEFAULT_MODEL
    max_tokens: int = DEFAULT_MAX_TOKENS
    temperature: float = DEFAULT_TEMPERATURE
    pricing: PricingTable = DEFAULT_PRICING
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    history: HistoryPolicy = field(default_factory=HistoryPolicy)

    def __post_init__(self):
        """Validate scalar settings."""
        if not self.default_model:
            raise ConfigurationError("defaultModel cannot be empty")
        if self.max_tokens <= 0:
            raise ConfigurationError("maxTokens must be > 0")
        if not 0 <= self.temperature <= 1:
            raise ConfigurationError("temperature must be between 0 and 1")

    def with_model(self, model: Optional[str]) -> "ClientConfig":
        """Return a copy using ``model`` as the active model, if given."""
        if not model:
            return self
        return replace(self, default_model=model)

    @property
    def active_pricing(self) -> ModelPricing:
        """Pricing for the active model.

        Raises:
            ConfigurationError: If the active model has no pricing entry
        """
        return self.pricing.get_pricing(self.default_model)


def get_default_config_path() -> Path:
    """Config file used when no explicit path is given."""
    if not DEFAULT_CONFIG_PATH.exists() and LEGACY_CONFIG_PATH.exists():
        return LEGACY_CONFIG_PATH
    return DEFAULT_CONFIG_PATH


def ensure_config_directory(path: Path = CONFIG_DIR) -> None:
    """Create the config directory if it doesn't exist."""
    path.mkdir(mode=0o700, parents=True, exist_ok=True)


def load_config(path: Optional[str] = None) -> ClientConfig:
    """Load configuration from file, falling back to defaults.

    The file is parsed as YAML, so plain JSON config files load too. A
    missing file is not an error; nested sections are merged over the
    defaults key by key.

    Args:
        path: Path to config file (defaults to ~/.ai-client/config.yaml)

    Returns:
        Validated ClientConfig

    Raises:
        ConfigurationError: If the file is invalid or no API key is found
    """
    config_path = Path(path) if path else get_default_config_path()
    raw_config: Dict[str, Any] = {}

    if config_path.exists():
        logger.debug("Loading config from %s", config_path)
        with open(config_path, 'r', encoding='utf-8') as f:
            try:
                raw_config = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Failed to parse config file at {config_path}: {e}")
        if not isinstance(raw_config, dict):
            raise ConfigurationError(f"Config file at {config_path} must contain a mapping")
    else:
        logger.debug("No config file at %s, using defaults", config_path)

    values = _normalize_keys(raw_config, _TOP_LEVEL_KEYS, "config")

    retry = _parse_retry(values.get("retry", {}))
    history = _parse_history(values.get("history", {}))
    pricing = _parse_pricing(values.get("pricing", {}))

    api_key = _resolve_api_key(values.get("api_key"), config_path)
    if not api_key:
        raise ConfigurationError(
            f"API key not found.\n"
            f"Set {API_KEY_ENV_VAR} environment variable or add \"apiKey\" in {config_path}\n"
            f"Example config: {{ \"apiKey\": \"env:{API_KEY_ENV_VAR}\", ... }}"
        )

    try:
        return ClientConfig(
            api_key=api_key,
            default_model=str(values.get("default_model", DEFAULT_MODEL)),
            max_tokens=int(values.get("max_tokens", DEFAULT_MAX_TOKENS)),
            temperature=float(values.get("temperature", DEFAULT_TEMPERATURE)),
            pricing=pricing,
            retry=retry,
            history=history
        )
    except (TypeError, ValueError) as e:
        if isinstance(e, ConfigurationError):
            raise
        raise ConfigurationError(f"Invalid config value in {config_path}: {e}")


def _normalize_keys(data: Any, mapping: Dict[str, str], path: str) -> Dict[str, Any]:
    """Map camelCase or snake_case keys onto canonical names.

    Raises:
        ConfigurationError: If data is not a dict or has unknown keys
    """
    if not isinstance(data, dict):
        raise ConfigurationError(f"'{path}' must be a dictionary")

    allowed = set(mapping.keys()) | set(mapping.values())
    unknown_keys = set(data.keys()) - allowed
    if unknown_keys:
        raise ConfigurationError(f"Unknown keys in {path}: {unknown_keys}")

    return {mapping.get(key, key): value for key, value in data.items()}


def _parse_retry(data: Any) -> RetryPolicy:
    values = _normalize_keys(data, _RETRY_KEYS, "retry")
    defaults = RetryPolicy()
    try:
        return RetryPolicy(
            max_retries=int(values.get("max_retries", defaults.max_retries)),
            base_delay_ms=float(values.get("base_delay_ms", defaults.base_delay_ms)),
            max_delay_ms=float(values.get("max_delay_ms", defaults.max_delay_ms))
        )
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid retry configuration: {e}")


def _parse_history(data: Any) -> HistoryPolicy:
    values = _normalize_keys(data, _HISTORY_KEYS, "history")
    defaults = HistoryPolicy()

    enabled = values.get("enabled", defaults.enabled)
    if not isinstance(enabled, bool):
        raise ConfigurationError("'history.enabled' must be true or false")

    try:
        return HistoryPolicy(
            enabled=enabled,
            max_messages=int(values.get("max_messages", defaults.max_messages))
        )
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid history configuration: {e}")


def _parse_pricing(data: Any) -> PricingTable:
    """Layer configured model prices over the built-in table."""
    if not isinstance(data, dict):
        raise ConfigurationError("'pricing' must be a dictionary")

    overrides = {}
    for model, rates in data.items():
        values = _normalize_keys(rates, _PRICING_KEYS, f"pricing.{model}")
        missing = {"input_per_1k", "output_per_1k"} - set(values.keys())
        if missing:
            raise ConfigurationError(f"Missing keys in pricing.{model}: {missing}")
        try:
            overrides[str(model)] = ModelPricing(
                input_per_1k=float(values["input_per_1k"]),
                output_per_1k=float(values["output_per_1k"])
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid pricing for {model}: {e}")

    return DEFAULT_PRICING.merged(overrides)


def _resolve_api_key(value: Any, config_path: Path) -> Optional[str]:
    """Resolve the API key from the config value or the environment.

    ``env:NAME`` values are read from the named environment variable.
    Without a configured key, ANTHROPIC_API_KEY is used.
    """
    if value is not None and not isinstance(value, str):
        raise ConfigurationError("'apiKey' must be a string")

    if value and value.startswith(ENV_PREFIX):
        env_var = value[len(ENV_PREFIX):]
        api_key = os.environ.get(env_var)
        if not api_key:
            raise ConfigurationError(
                f"Environment variable {env_var} is not set.\n"
                f"Please set it in your environment or add \"apiKey\" directly in {config_path}"
            )
        return api_key

    if value:
        return value

    return os.environ.get(API_KEY_ENV_VAR) or None
