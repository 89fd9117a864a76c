#!/usr/bin/env python3
"""
Zabbix Assistant - Redis storage backend

Key layout:
- chat:turn:seq                     global turn counter (ids and ordering)
- chat:turn:{id}                    hash, one chat turn
- chat:user:{user_id}:turns         zset, turn ids scored by sequence
- zabbix:config:{user_id}           hash, the user's server config
- zabbix:hosts:{user_id}            hash, external_id -> host JSON
- zabbix:hosts:seq                  global host counter (first-seen ordering)
- zabbix:hosts:{user_id}:order      zset, external_id scored by first-seen sequence
- zabbix:alerts:{user_id}           hash, external_id -> alert JSON
- zabbix:alerts:{user_id}:recent    zset, external_id scored by observed_at
"""

import json
import time
import uuid
from typing import Dict, List, Optional

import redis.asyncio as redis

from zabbix_assistant.config import get_config
from zabbix_assistant.config.models import RedisConfig
from zabbix_assistant.common.errors import TurnNotFound
from zabbix_assistant.common.logging import setup_logging
from .base import Store
from .models import ChatTurn, ServerConfig, Host, Alert

logger = setup_logging("storage")


class RedisStore(Store):
    """Store backed by Redis hashes and sorted sets."""

    name = "redis"

    TURN_SEQ_KEY = "chat:turn:seq"
    TURN_KEY = "chat:turn:{turn_id}"
    USER_TURNS_KEY = "chat:user:{user_id}:turns"
    CONFIG_KEY = "zabbix:config:{user_id}"
    HOSTS_SEQ_KEY = "zabbix:hosts:seq"
    HOSTS_KEY = "zabbix:hosts:{user_id}"
    HOSTS_ORDER_KEY = "zabbix:hosts:{user_id}:order"
    ALERTS_KEY = "zabbix:alerts:{user_id}"
    ALERTS_RECENT_KEY = "zabbix:alerts:{user_id}:recent"

    def __init__(self, redis_config: Optional[RedisConfig] = None, client: Optional[redis.Redis] = None):
        self.redis_config = redis_config or get_config().redis
        self.redis_client: Optional[redis.Redis] = client

    async def connect(self):
        """Connect to Redis."""
        if self.redis_client is None:
            self.redis_client = redis.Redis(
                host=self.redis_config.host,
                port=self.redis_config.port,
                db=self.redis_config.db,
                decode_responses=True,
            )
        try:
            await self.redis_client.ping()
            logger.info(f"Connected to Redis at {self.redis_config.host}:{self.redis_config.port}")
        except redis.RedisError as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise

    async def disconnect(self):
        """Disconnect from Redis."""
        if self.redis_client:
            await self.redis_client.aclose()
            self.redis_client = None
            logger.info("Disconnected from Redis")

    # --- Conversation ---

    @staticmethod
    def _turn_from_hash(turn_id: str, data: Dict[str, str]) -> ChatTurn:
        return ChatTurn(
            id=turn_id,
            user_id=data["user_id"],
            text=data.get("text", ""),
            reply_text=data.get("reply_text", ""),
            created_at=float(data.get("created_at", "0")),
            is_user_turn=data.get("is_user_turn") == "1",
        )

    async def append_turn(self, turn: ChatTurn) -> str:
        seq = await self.redis_client.incr(self.TURN_SEQ_KEY)
        turn_id = str(seq)

        pipe = self.redis_client.pipeline(transaction=True)
        pipe.hset(self.TURN_KEY.format(turn_id=turn_id), mapping={
            "user_id": turn.user_id,
            "text": turn.text,
            "reply_text": turn.reply_text,
            "created_at": repr(turn.created_at),
            "is_user_turn": "1" if turn.is_user_turn else "0",
        })
        pipe.zadd(self.USER_TURNS_KEY.format(user_id=turn.user_id), {turn_id: seq})
        await pipe.execute()
        return turn_id

    async def patch_reply(self, turn_id: str, reply_text: str) -> None:
        key = self.TURN_KEY.format(turn_id=turn_id)
        if not await self.redis_client.exists(key):
            raise TurnNotFound(turn_id)
        await self.redis_client.hset(key, "reply_text", reply_text)

    async def recent_turns(self, user_id: str, limit: int) -> List[ChatTurn]:
        if limit <= 0:
            return []
        turn_ids = await self.redis_client.zrevrange(
            self.USER_TURNS_KEY.format(user_id=user_id), 0, limit - 1
        )
        if not turn_ids:
            return []

        pipe = self.redis_client.pipeline(transaction=False)
        for turn_id in turn_ids:
            pipe.hgetall(self.TURN_KEY.format(turn_id=turn_id))
        results = await pipe.execute()

        turns = [
            self._turn_from_hash(turn_id, data)
            for turn_id, data in zip(turn_ids, results)
            if data
        ]
        turns.reverse()
        return turns

    async def get_turn(self, turn_id: str) -> Optional[ChatTurn]:
        data = await self.redis_client.hgetall(self.TURN_KEY.format(turn_id=turn_id))
        if not data:
            return None
        return self._turn_from_hash(turn_id, data)

    # --- Monitoring ---

    async def get_server_config(self, user_id: str) -> Optional[ServerConfig]:
        data = await self.redis_client.hgetall(self.CONFIG_KEY.format(user_id=user_id))
        if not data:
            return None
        return ServerConfig(
            id=data.get("id"),
            user_id=user_id,
            endpoint_url=data.get("endpoint_url", ""),
            username=data.get("username", ""),
            password=data.get("password", ""),
            active=data.get("active") == "1",
        )

    async def upsert_server_config(
        self,
        user_id: str,
        endpoint_url: str,
        username: str,
        password: str,
    ) -> ServerConfig:
        key = self.CONFIG_KEY.format(user_id=user_id)
        # Keeps the id of an existing record
        await self.redis_client.hsetnx(key, "id", uuid.uuid4().hex)
        await self.redis_client.hset(key, mapping={
            "endpoint_url": endpoint_url,
            "username": username,
            "password": password,
            "active": "1",
        })
        return await self.get_server_config(user_id)

    async def upsert_host(
        self,
        user_id: str,
        external_id: str,
        name: str,
        status: str,
        last_update: Optional[float] = None,
    ) -> Host:
        host = Host(
            user_id=user_id,
            external_id=external_id,
            name=name,
            status=status,
            last_update=last_update if last_update is not None else time.time(),
        )
        seq = await self.redis_client.incr(self.HOSTS_SEQ_KEY)
        pipe = self.redis_client.pipeline(transaction=True)
        pipe.hset(self.HOSTS_KEY.format(user_id=user_id), external_id, json.dumps(host.to_dict()))
        pipe.zadd(self.HOSTS_ORDER_KEY.format(user_id=user_id), {external_id: seq}, nx=True)
        await pipe.execute()
        return host

    async def list_hosts(self, user_id: str, limit: int) -> List[Host]:
        if limit <= 0:
            return []
        external_ids = await self.redis_client.zrange(
            self.HOSTS_ORDER_KEY.format(user_id=user_id), 0, limit - 1
        )
        if not external_ids:
            return []
        rows = await self.redis_client.hmget(self.HOSTS_KEY.format(user_id=user_id), external_ids)
        return [Host(**json.loads(row)) for row in rows if row]

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
        pipe = self.redis_client.pipeline(transaction=True)
        pipe.hset(self.ALERTS_KEY.format(user_id=user_id), external_id, json.dumps(alert.to_dict()))
        pipe.zadd(self.ALERTS_RECENT_KEY.format(user_id=user_id), {external_id: alert.observed_at})
        await pipe.execute()
        return alert

    async def recent_alerts(self, user_id: str, limit: int) -> List[Alert]:
        if limit <= 0:
            return []
        external_ids = await self.redis_client.zrevrange(
            self.ALERTS_RECENT_KEY.format(user_id=user_id), 0, limit - 1
        )
        if not external_ids:
            return []
        rows = await self.redis_client.hmget(self.ALERTS_KEY.format(user_id=user_id), external_ids)
        return [Alert(**json.loads(row)) for row in rows if row]
