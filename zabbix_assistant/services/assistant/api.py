#!/usr/bin/env python3
"""
Zabbix Assistant - HTTP API
FastAPI service wiring storage, the response worker and the Zabbix integration.

Endpoints:
- GET /health: Health check
- POST /chat/messages: Send a message, returns the pending turn id
- GET /chat/messages: Recent chat history (oldest first)
- GET /zabbix/config: Current server config (no password)
- PUT /zabbix/config: Save server config
- POST /zabbix/test-connection: Probe a Zabbix API endpoint
- POST /zabbix/sync: Sync cached hosts and alerts

The caller identity comes from the X-User-ID header.
"""

import asyncio
from typing import List, Dict, Optional, Any

from fastapi import Depends, FastAPI, HTTPException, Header
from pydantic import BaseModel, Field, field_validator

from zabbix_assistant.config import AssistantConfig
from zabbix_assistant.common.service_base import AssistantService
from zabbix_assistant.common.errors import Unauthenticated, require_user
from zabbix_assistant.common import mqtt_topics
from zabbix_assistant.services.storage import Store, RedisStore, create_store
from zabbix_assistant.services.chat import (
    ChatEngine,
    CompletionClient,
    ContextAssembler,
    JobQueue,
    MemoryJobQueue,
    RedisJobQueue,
    ResponsePipeline,
    ResponseWorker,
)
from zabbix_assistant.services.zabbix import ZabbixIntegration

IDENTITY_HEADER = "X-User-ID"


async def require_caller(user_id: Optional[str] = Header(None, alias=IDENTITY_HEADER)) -> str:
    """Caller identity for write routes. Resolved before the request body is validated."""
    try:
        return require_user(user_id)
    except Unauthenticated as e:
        raise HTTPException(status_code=401, detail=str(e))


# Request/Response Models
class SendMessageRequest(BaseModel):
    """Request model for sending a chat message."""
    message: str = Field(..., description="Message text; must not be blank")

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("message must not be empty")
        return value


class SendMessageResponse(BaseModel):
    """Response model for a sent message."""
    turn_id: str = Field(..., description="Id of the pending user turn")


class ChatTurnModel(BaseModel):
    """One chat history entry."""
    id: str
    text: str
    reply_text: str
    created_at: float
    is_user_turn: bool


class HistoryResponse(BaseModel):
    """Response model for chat history."""
    turns: List[ChatTurnModel]


class ServerConfigRequest(BaseModel):
    """Request model for saving or probing a Zabbix server."""
    endpoint_url: str = Field(..., min_length=1, description="Zabbix frontend base URL")
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class ServerConfigResponse(BaseModel):
    """Stored config as returned to callers."""
    id: Optional[str]
    endpoint_url: str
    username: str
    active: bool


class SaveConfigResponse(BaseModel):
    status: str
    id: Optional[str]


class OperationResponse(BaseModel):
    """Outcome of probe and sync."""
    success: bool
    message: str


class AssistantAPIService(AssistantService):
    """Chat + Zabbix HTTP service with the background response worker."""

    def __init__(
        self,
        config: Optional[AssistantConfig] = None,
        store: Optional[Store] = None,
        completion_client: Optional[CompletionClient] = None,
        queue: Optional[JobQueue] = None,
    ):
        super().__init__(name="assistant", config=config)
        self.http_port = self.config.http.port
        self.store: Optional[Store] = store
        self.completion_client = completion_client
        self.queue = queue
        self.chat: Optional[ChatEngine] = None
        self.zabbix: Optional[ZabbixIntegration] = None
        self.worker: Optional[ResponseWorker] = None

    async def setup(self):
        """Connect storage, start the response worker and register routes."""
        if self.store is None:
            self.store = create_store(self.config)
        await self.store.connect()

        if self.queue is None:
            if isinstance(self.store, RedisStore):
                self.queue = RedisJobQueue(self.store.redis_client)
            else:
                self.queue = MemoryJobQueue()

        if self.completion_client is None:
            self.completion_client = CompletionClient(self.config.openai)
        if not self.config.openai.api_key:
            self.logger.warning("No completion API key configured; replies will use the fallback message")

        pipeline = ResponsePipeline(
            store=self.store,
            assembler=ContextAssembler(self.store),
            client=self.completion_client,
        )
        self.chat = ChatEngine(self.store, self.queue, history_limit=self.config.chat.history_limit)
        self.zabbix = ZabbixIntegration(self.store, self.config.zabbix)
        self.worker = ResponseWorker(
            queue=self.queue,
            pipeline=pipeline,
            store=self.store,
            concurrency=self.config.chat.workers,
            poll_interval=self.config.chat.poll_interval,
            on_reply=self._publish_reply,
        )
        await self.worker.start()

        app = self.get_app()
        self._register_routes(app)
        self.logger.info(f"Assistant ready (storage={self.store.name})")

    async def teardown(self):
        """Drain the worker, then release clients."""
        if self.worker:
            await self.worker.stop()
        if self.completion_client:
            await self.completion_client.close()
        if self.store:
            await self.store.disconnect()

    async def _publish_reply(self, event: Dict[str, Any]):
        await self.mqtt_publish(mqtt_topics.CHAT_REPLY, event)

    def health_details(self) -> Dict[str, Any]:
        return {
            "storage": self.store.name if self.store else None,
            "worker_running": bool(self.worker and self.worker.running),
            "responses_processed": self.worker.processed if self.worker else 0,
        }

    def _require_ready(self):
        if not self.chat or not self.zabbix:
            raise HTTPException(status_code=503, detail="Assistant not initialized")

    def _register_routes(self, app: FastAPI):
        """Register all FastAPI routes."""

        @app.post("/chat/messages", response_model=SendMessageResponse)
        async def send_message(
            request: SendMessageRequest,
            user_id: str = Depends(require_caller),
        ):
            """
            Store a user message and schedule the assistant's reply.

            Returns immediately with the pending turn id; the reply is written
            to that turn by the background worker.
            """
            self._require_ready()
            try:
                turn_id = await self.chat.send_message(user_id, request.message)
                return SendMessageResponse(turn_id=turn_id)
            except Exception as e:
                self.logger.error(f"Error sending message: {e}")
                raise HTTPException(status_code=500, detail=str(e))

        @app.get("/chat/messages", response_model=HistoryResponse)
        async def chat_history(user_id: Optional[str] = Header(None, alias=IDENTITY_HEADER)):
            """Up to 50 most recent turns, oldest first."""
            self._require_ready()
            try:
                turns = await self.chat.history(user_id)
                return HistoryResponse(turns=[ChatTurnModel(**turn.to_history_entry()) for turn in turns])
            except Exception as e:
                self.logger.error(f"Error reading chat history: {e}")
                raise HTTPException(status_code=500, detail=str(e))

        @app.get("/zabbix/config", response_model=Optional[ServerConfigResponse])
        async def get_server_config(user_id: Optional[str] = Header(None, alias=IDENTITY_HEADER)):
            """Current server config without the password, or null."""
            self._require_ready()
            try:
                return await self.zabbix.get_config(user_id)
            except Exception as e:
                self.logger.error(f"Error reading Zabbix config: {e}")
                raise HTTPException(status_code=500, detail=str(e))

        @app.put("/zabbix/config", response_model=SaveConfigResponse)
        async def save_server_config(
            request: ServerConfigRequest,
            user_id: str = Depends(require_caller),
        ):
            """Save (create or replace) the caller's server config."""
            self._require_ready()
            try:
                config = await self.zabbix.save_config(
                    user_id, request.endpoint_url, request.username, request.password
                )
                return SaveConfigResponse(status="saved", id=config.id)
            except Exception as e:
                self.logger.error(f"Error saving Zabbix config: {e}")
                raise HTTPException(status_code=500, detail=str(e))

        @app.post("/zabbix/test-connection", response_model=OperationResponse)
        async def test_connection(request: ServerConfigRequest):
            """Probe a Zabbix API endpoint with the given credentials."""
            self._require_ready()
            result = await self.zabbix.test_connection(
                request.endpoint_url, request.username, request.password
            )
            return OperationResponse(**result.to_dict())

        @app.post("/zabbix/sync", response_model=OperationResponse)
        async def sync(user_id: str = Depends(require_caller)):
            """Refresh the caller's cached hosts and alerts."""
            self._require_ready()
            result = await self.zabbix.sync(user_id)
            return OperationResponse(**result.to_dict())


def main():
    """Console entry point."""
    service = AssistantAPIService()
    asyncio.run(service.run())


if __name__ == "__main__":
    main()
