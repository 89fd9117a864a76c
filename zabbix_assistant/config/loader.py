"""
Configuration loader with TOML file parsing and environment variable overrides.
"""
import os
import logging
import tomllib
from pathlib import Path
from typing import Optional, Any, Dict, List

from .models import AssistantConfig

logger = logging.getLogger(__name__)

_config: Optional[AssistantConfig] = None

CONFIG_ENV_VAR = "ZABBIX_ASSISTANT_CONFIG"

CONFIG_PATHS = [
    Path("/etc/zabbix-assistant/assistant.toml"),
    Path.home() / ".config" / "zabbix-assistant" / "assistant.toml",
]

# Checked in order, first non-empty value wins
API_KEY_ENV_VARS = ["ZABBIX_ASSISTANT_OPENAI_API_KEY", "OPENAI_API_KEY"]


def _load_toml(path: Path) -> Dict[str, Any]:
    """Load TOML file and return parsed dict."""
    with open(path, "rb") as f:
        return tomllib.load(f)


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"not a boolean: {value!r}")


def resolve_api_key(environ: Optional[Dict[str, str]] = None) -> str:
    """Return the first non-empty completion credential from the environment."""
    env = os.environ if environ is None else environ
    for name in API_KEY_ENV_VARS:
        value = env.get(name, "")
        if value:
            return value
    return ""


def _apply_env_overrides(config: AssistantConfig, environ: Optional[Dict[str, str]] = None) -> AssistantConfig:
    """
    Override config with environment variables.
    Format: ZABBIX_ASSISTANT_SECTION_KEY
    Example: ZABBIX_ASSISTANT_REDIS_HOST overrides config.redis.host
    """
    env = os.environ if environ is None else environ

    env_map = {
        # MQTT overrides
        "ZABBIX_ASSISTANT_MQTT_ENABLED": lambda v: setattr(config.mqtt, "enabled", _parse_bool(v)),
        "ZABBIX_ASSISTANT_MQTT_BROKER": lambda v: setattr(config.mqtt, "broker", v),
        "ZABBIX_ASSISTANT_MQTT_PORT": lambda v: setattr(config.mqtt, "port", int(v)),
        "ZABBIX_ASSISTANT_MQTT_USERNAME": lambda v: setattr(config.mqtt, "username", v),
        "ZABBIX_ASSISTANT_MQTT_PASSWORD": lambda v: setattr(config.mqtt, "password", v),

        # Redis overrides
        "ZABBIX_ASSISTANT_REDIS_HOST": lambda v: setattr(config.redis, "host", v),
        "ZABBIX_ASSISTANT_REDIS_PORT": lambda v: setattr(config.redis, "port", int(v)),
        "ZABBIX_ASSISTANT_REDIS_DB": lambda v: setattr(config.redis, "db", int(v)),

        "ZABBIX_ASSISTANT_STORAGE_BACKEND": lambda v: setattr(config.storage, "backend", v),

        # Completion upstream overrides
        "ZABBIX_ASSISTANT_OPENAI_BASE_URL": lambda v: setattr(config.openai, "base_url", v),
        "ZABBIX_ASSISTANT_OPENAI_MODEL": lambda v: setattr(config.openai, "model", v),
        "ZABBIX_ASSISTANT_OPENAI_TIMEOUT": lambda v: setattr(config.openai, "timeout", float(v)),

        # Chat overrides
        "ZABBIX_ASSISTANT_CHAT_WORKERS": lambda v: setattr(config.chat, "workers", int(v)),
        "ZABBIX_ASSISTANT_CHAT_POLL_INTERVAL": lambda v: setattr(config.chat, "poll_interval", float(v)),

        # HTTP overrides
        "ZABBIX_ASSISTANT_HTTP_HOST": lambda v: setattr(config.http, "host", v),
        "ZABBIX_ASSISTANT_HTTP_PORT": lambda v: setattr(config.http, "port", int(v)),
    }

    for env_var, setter in env_map.items():
        value = env.get(env_var)
        if value is not None:
            try:
                setter(value)
                logger.debug(f"Config override from env: {env_var}")
            except (ValueError, TypeError) as e:
                logger.warning(f"Failed to apply env override {env_var}={value}: {e}")

    api_key = resolve_api_key(env)
    if api_key:
        config.openai.api_key = api_key

    return config


def _toml_to_config(data: Dict[str, Any]) -> AssistantConfig:
    """Convert TOML dict to AssistantConfig dataclass."""
    config = AssistantConfig()

    section_map = {
        "mqtt": config.mqtt,
        "redis": config.redis,
        "storage": config.storage,
        "openai": config.openai,
        "chat": config.chat,
        "zabbix": config.zabbix,
        "http": config.http,
    }

    for section_name, section_obj in section_map.items():
        if section_name in data:
            for k, v in data[section_name].items():
                if hasattr(section_obj, k):
                    setattr(section_obj, k, v)
                else:
                    logger.warning(f"Unknown config key [{section_name}] {k}")

    return config


def _candidate_paths() -> List[Path]:
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        return [Path(explicit)]
    return CONFIG_PATHS


def load_config(config_path: Optional[Path] = None) -> AssistantConfig:
    """
    Load configuration from TOML file with environment variable overrides.

    Args:
        config_path: Optional explicit path to config file. If None, searches
            $ZABBIX_ASSISTANT_CONFIG and then the default paths.

    Returns:
        AssistantConfig instance with loaded configuration.
    """
    global _config

    paths = [config_path] if config_path else _candidate_paths()

    data = {}
    for path in paths:
        if path.exists():
            try:
                data = _load_toml(path)
                logger.info(f"Loaded config from {path}")
                break
            except (OSError, tomllib.TOMLDecodeError) as e:
                logger.error(f"Failed to load config from {path}: {e}")
                continue
    else:
        logger.warning("No config file found, using defaults")

    config = _toml_to_config(data)
    config = _apply_env_overrides(config)
    _config = config
    return config


def get_config() -> AssistantConfig:
    """
    Get cached config or load if not yet loaded.

    Returns:
        AssistantConfig instance.
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config
