"""
Zabbix Assistant - Storage

Conversation log and cached monitoring state behind backend-neutral interfaces.
"""
from typing import Optional

from zabbix_assistant.config import AssistantConfig, get_config
from .base import ConversationStore, MonitoringStore, Store
from .models import ChatTurn, ServerConfig, Host, Alert
from .memory_store import MemoryStore
from .redis_store import RedisStore


def create_store(config: Optional[AssistantConfig] = None) -> Store:
    """Build the backend named by storage.backend."""
    cfg = config or get_config()
    backend = cfg.storage.backend
    if backend == "redis":
        return RedisStore(cfg.redis)
    if backend == "memory":
        return MemoryStore()
    raise ValueError(f"Unknown storage backend: {backend!r}")


__all__ = [
    "ConversationStore", "MonitoringStore", "Store",
    "ChatTurn", "ServerConfig", "Host", "Alert",
    "MemoryStore", "RedisStore", "create_store",
]
