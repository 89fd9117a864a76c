"""
In-process storage backend.

Keeps everything in dictionaries. Used for development runs
(storage.backend = "memory") and tests. Nothing survives a restart.
"""

import itertools
import time
import uuid
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

from zabbix_assistant.common.errors import TurnNotFound
from .base import Store
from .models import ChatTurn, ServerConfig, Host, Alert


class MemoryStore(Store):
    """Dictionary-backed Store."""

    name = "memory"

    def __init__(self):
        self._seq = itertools.count(1)
        self._turns: Dict[str, ChatTurn] = {}
        self._user_turns: Dict[str, List[str]] = {}
        self._configs: Dict[str, ServerConfig] = {}
        # (user_id, external_id) -> (first_seen_seq, host)
        self._hosts: Dict[Tuple[str, str], Tuple[int, Host]] = {}
        # (user_id, external_id) -> (last_write_seq, alert)
        self._alerts: Dict[Tuple[str, str], Tuple[int, Alert]] = {}

    # --- Conversation ---

    async def append_turn(self, turn: ChatTurn) -> str:
        turn_id = str(next(self._seq))
        self._turns[turn_id] = replace(turn, id=turn_id)
        self._user_turns.setdefault(turn.user_id, []).append(turn_id)
        return turn_id

    async def patch_reply(self, turn_id: str, reply_text: str) -> None:
        turn = self._turns.get(turn_id)
        if turn is None:
            raise TurnNotFound(turn_id)
        turn.reply_text = reply_text

    async def recent_turns(self, user_id: str, limit: int) -> List[ChatTurn]:
        ids = self._user_turns.get(user_id, [])[-limit:] if limit > 0 else []
        return [replace(self._turns[turn_id]) for turn_id in ids if turn_id in self._turns]

    async def get_turn(self, turn_id: str) -> Optional[ChatTurn]:
        turn = self._turns.get(turn_id)
        return replace(turn) if turn else None

    async def delete_turn(self, turn_id: str) -> None:
        """Remove a turn. Not part of the store contract; lets tests simulate deletions."""
        turn = self._turns.pop(turn_id, None)
        if turn:
            self._user_turns[turn.user_id].remove(turn_id)

    # --- Monitoring ---

    async def get_server_config(self, user_id: str) -> Optional[ServerConfig]:
        config = self._configs.get(user_id)
        return replace(config) if config else None

    async def upsert_server_config(
        self,
        user_id: str,
        endpoint_url: str,
        username: str,
        password: str,
    ) -> ServerConfig:
        existing = self._configs.get(user_id)
        config = ServerConfig(
            user_id=user_id,
            endpoint_url=endpoint_url,
            username=username,
            password=password,
            active=True,
            id=existing.id if existing else uuid.uuid4().hex,
        )
        self._configs[user_id] = config
        return replace(config)

    async def upsert_host(
        self,
        user_id: str,
        external_id: str,
        name: str,
        status: str,
        last_update: Optional[float] = None,
    ) -> Host:
        key = (user_id, external_id)
        host = Host(
            user_id=user_id,
            external_id=external_id,
            name=name,
            status=status,
            last_update=last_update if last_update is not None else time.time(),
        )
        first_seen = self._hosts[key][0] if key in self._hosts else next(self._seq)
        self._hosts[key] = (first_seen, host)
        return replace(host)

    async def list_hosts(self, user_id: str, limit: int) -> List[Host]:
        rows = sorted(
            (seq, host) for (owner, _), (seq, host) in self._hosts.items() if owner == user_id
        )
        return [replace(host) for _, host in rows[:max(limit, 0)]]

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
        alert = Alert(
            user_id=user_id,
            external_id=external_id,
            host_name=host_name,
            trigger_name=trigger_name,
            severity=severity,
            status=status,
            observed_at=observed_at if observed_at is not None else time.time(),
        )
        self._alerts[(user_id, external_id)] = (next(self._seq), alert)
        return replace(alert)

    async def recent_alerts(self, user_id: str, limit: int) -> List[Alert]:
        rows = [
            (alert.observed_at, seq, alert)
            for (owner, _), (seq, alert) in self._alerts.items()
            if owner == user_id
        ]
        rows.sort(key=lambda row: (row[0], row[1]), reverse=True)
        return [replace(alert) for _, _, alert in rows[:max(limit, 0)]]
