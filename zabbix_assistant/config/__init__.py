"""
Zabbix Assistant configuration management.

Provides centralized configuration loading from TOML files with environment variable overrides.

Usage:
    from zabbix_assistant.config import get_config

    config = get_config()
    redis_host = config.redis.host
    model = config.openai.model
"""
from .loader import load_config, get_config, resolve_api_key
from .models import AssistantConfig, DEFAULT_OPENAI_BASE_URL

__all__ = ["load_config", "get_config", "resolve_api_key", "AssistantConfig", "DEFAULT_OPENAI_BASE_URL"]
