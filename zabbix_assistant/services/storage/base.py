"""
Storage interfaces.

The response pipeline depends only on ConversationStore plus the read side of
MonitoringStore, so any engine that can provide these operations can back it.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from .models import ChatTurn, ServerConfig, Host, Alert


class ConversationStore(ABC):
    """Append-only chat log with patch-in-place for the pending reply."""

    @abstractmethod
    async def append_turn(self, turn: ChatTurn) -> str:
        """Store a new turn and return its id."""

    @abstractmethod
    async def patch_reply(self, turn_id: str, reply_text: str) -> None:
        """Set reply_text on an existing turn.

        Raises:
            TurnNotFound: if no turn has this id.
        """

    @abstractmethod
    async def recent_turns(self, user_id: str, limit: int) -> List[ChatTurn]:
        """Return up to `limit` most recent turns for a user, oldest first."""

    @abstractmethod
    async def get_turn(self, turn_id: str) -> Optional[ChatTurn]:
        """Return a single turn, or None."""


class MonitoringStore(ABC):
    """Locally cached Zabbix state: server config, hosts, alerts."""

    @abstractmethod
    async def get_server_config(self, user_id: str) -> Optional[ServerConfig]:
        pass

    @abstractmethod
    async def upsert_server_config(
        self,
        user_id: str,
        endpoint_url: str,
        username: str,
        password: str,
    ) -> ServerConfig:
        """Create or replace the user's single config record and mark it active."""

    @abstractmethod
    async def upsert_host(
        self,
        user_id: str,
        external_id: str,
        name: str,
        status: str,
        last_update: Optional[float] = None,
    ) -> Host:
        pass

    @abstractmethod
    async def list_hosts(self, user_id: str, limit: int) -> List[Host]:
        """Return up to `limit` hosts in first-seen order."""

    @abstractmethod
    async def upsert_alert(
        self,
        user_id: str,
        external_id: str,
        host_name: str,
        trigger_name: str,
        severity: str,
        status: str,
        observed_at: Optional[float] = None,
    ) -> Alert:
        pass

    @abstractmethod
    async def recent_alerts(self, user_id: str, limit: int) -> List[Alert]:
        """Return up to `limit` alerts, most recently observed first."""


class Store(ConversationStore, MonitoringStore):
    """A backend providing both interfaces plus connection lifecycle."""

    name = "store"

    async def connect(self):
        pass

    async def disconnect(self):
        pass
