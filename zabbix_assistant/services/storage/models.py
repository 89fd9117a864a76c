"""
Record types persisted by the storage backends.
"""

from dataclasses import dataclass, asdict
from typing import Dict, Any, Optional


@dataclass
class ChatTurn:
    """One stored chat message.

    A user turn starts with an empty reply_text that the response pipeline
    patches once. Assistant turns are separate records with
    is_user_turn=False and an empty reply_text of their own.
    """
    user_id: str
    text: str
    created_at: float
    is_user_turn: bool = True
    reply_text: str = ""
    id: Optional[str] = None

    @property
    def answered(self) -> bool:
        return bool(self.reply_text)

    def to_history_entry(self) -> Dict[str, Any]:
        """Shape returned by the chat history read."""
        return {
            "id": self.id,
            "text": self.text,
            "reply_text": self.reply_text,
            "created_at": self.created_at,
            "is_user_turn": self.is_user_turn,
        }


@dataclass
class ServerConfig:
    """Zabbix server connection settings, at most one per user."""
    user_id: str
    endpoint_url: str
    username: str
    password: str
    active: bool = True
    id: Optional[str] = None

    def to_public_dict(self) -> Dict[str, Any]:
        """Config as returned to callers. Never includes the password."""
        return {
            "id": self.id,
            "endpoint_url": self.endpoint_url,
            "username": self.username,
            "active": self.active,
        }


@dataclass
class Host:
    """Cached Zabbix host, unique per (user_id, external_id)."""
    user_id: str
    external_id: str
    name: str
    status: str
    last_update: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Alert:
    """Cached Zabbix alert, unique per (user_id, external_id)."""
    user_id: str
    external_id: str
    host_name: str
    trigger_name: str
    severity: str
    status: str
    observed_at: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
