"""
Configuration dataclass models for Zabbix Assistant.
"""
from dataclasses import dataclass, field


DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"


@dataclass
class MQTTConfig:
    """MQTT broker configuration (reply-ready events)."""
    enabled: bool = False
    broker: str = "localhost"
    port: int = 1883
    username: str = ""
    password: str = ""  # loaded from env


@dataclass
class RedisConfig:
    """Redis server configuration."""
    host: str = "localhost"
    port: int = 6379
    db: int = 0


@dataclass
class StorageConfig:
    """Storage backend selection."""
    backend: str = "redis"  # "redis" or "memory"


@dataclass
class OpenAIConfig:
    """Chat-completion upstream configuration."""
    api_key: str = ""  # loaded from env
    base_url: str = ""  # empty means DEFAULT_OPENAI_BASE_URL
    model: str = "gpt-4.1-nano"
    max_tokens: int = 500
    temperature: float = 0.7
    timeout: float = 60.0


@dataclass
class ChatConfig:
    """Conversation handling configuration."""
    history_limit: int = 50
    workers: int = 2
    poll_interval: float = 1.0


@dataclass
class ZabbixConfig:
    """Zabbix integration configuration."""
    probe_timeout: float = 10.0
    user_agent: str = "Zabbix-AI-Assistant/1.0"


@dataclass
class HTTPConfig:
    """HTTP API configuration."""
    host: str = "0.0.0.0"
    port: int = 8080


@dataclass
class AssistantConfig:
    """Root configuration object containing all subsystem configs."""
    mqtt: MQTTConfig = field(default_factory=MQTTConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    openai: OpenAIConfig = field(default_factory=OpenAIConfig)
    chat: ChatConfig = field(default_factory=ChatConfig)
    zabbix: ZabbixConfig = field(default_factory=ZabbixConfig)
    http: HTTPConfig = field(default_factory=HTTPConfig)
