"""Base class for Zabbix Assistant services.

Provides:
- FastAPI HTTP server with /health endpoint
- Optional MQTT publisher connection (connect, reconnect, graceful disconnect)
- Structured logging
- Graceful shutdown on SIGTERM/SIGINT
- Central config loading
"""

import asyncio
import json
import signal
from typing import Optional, Dict, Any, List
from contextlib import asynccontextmanager

import uvicorn
from aiomqtt import Client as MQTTClient, MqttError
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from zabbix_assistant.config import get_config, AssistantConfig
from zabbix_assistant.common.logging import setup_logging
from zabbix_assistant.common import mqtt_topics


class AssistantService:
    """Base class for Zabbix Assistant services."""

    def __init__(self, name: str, http_port: Optional[int] = None, config: Optional[AssistantConfig] = None):
        self.name = name
        self.http_port = http_port
        self.config: AssistantConfig = config or get_config()
        self.logger = setup_logging(name)
        self._mqtt_client: Optional[MQTTClient] = None
        self._running = False
        self._tasks: List[asyncio.Task] = []
        self._app: Optional[FastAPI] = None

    # --- MQTT ---

    async def mqtt_publish(self, topic: str, payload: Any):
        """Publish a message to an MQTT topic. Dropped when not connected."""
        if self._mqtt_client is None:
            self.logger.debug(f"MQTT not connected, dropping publish to {topic}")
            return
        if isinstance(payload, dict):
            payload = json.dumps(payload)
        if isinstance(payload, str):
            payload = payload.encode()
        try:
            await self._mqtt_client.publish(topic, payload)
        except MqttError as e:
            self.logger.warning(f"MQTT publish to {topic} failed: {e}")

    async def _mqtt_loop(self):
        """MQTT connection loop with auto-reconnect and exponential backoff."""
        cfg = self.config.mqtt
        reconnect_delay = 1
        max_delay = 60
        while self._running:
            try:
                async with MQTTClient(
                    hostname=cfg.broker,
                    port=cfg.port,
                    username=cfg.username or None,
                    password=cfg.password or None,
                    identifier=f"zabbix-assistant-{self.name}",
                ) as client:
                    self._mqtt_client = client
                    self.logger.info(f"MQTT connected to {cfg.broker}:{cfg.port}")
                    reconnect_delay = 1
                    await self.mqtt_publish(
                        mqtt_topics.SERVICE_STATUS,
                        {"service": self.name, "status": "online"},
                    )

                    # Publisher only; hold the connection until it drops
                    async for _ in client.messages:
                        pass

            except MqttError as e:
                self._mqtt_client = None
                if self._running:
                    self.logger.warning(f"MQTT disconnected: {e}, reconnecting in {reconnect_delay}s...")
                    await asyncio.sleep(reconnect_delay)
                    reconnect_delay = min(reconnect_delay * 2, max_delay)

    # --- HTTP ---

    def health_details(self) -> Dict[str, Any]:
        """Override in subclass to add fields to the /health payload."""
        return {}

    def get_app(self) -> FastAPI:
        """Get or create the FastAPI app."""
        if self._app is None:
            @asynccontextmanager
            async def lifespan(app):
                yield

            self._app = FastAPI(
                title=f"Zabbix Assistant - {self.name.title()} Service",
                lifespan=lifespan,
            )
            self._app.add_middleware(
                CORSMiddleware,
                allow_origins=["*"],
                allow_methods=["*"],
                allow_headers=["*"],
            )

            @self._app.get("/health")
            async def health():
                return {
                    "service": self.name,
                    "status": "healthy",
                    "mqtt_connected": self._mqtt_client is not None,
                    **self.health_details(),
                }
        return self._app

    async def _run_http(self):
        """Run the FastAPI HTTP server."""
        app = self.get_app()
        config = uvicorn.Config(
            app,
            host=self.config.http.host,
            port=self.http_port,
            log_level="warning",
        )
        server = uvicorn.Server(config)
        await server.serve()

    # --- Lifecycle ---

    async def setup(self):
        """Override in subclass for service-specific initialization."""
        pass

    async def teardown(self):
        """Override in subclass for service-specific cleanup."""
        pass

    async def run(self):
        """Main entry point. Starts MQTT, HTTP, and runs until shutdown."""
        self._running = True
        self.logger.info(f"Starting {self.name} service...")

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda: asyncio.create_task(self.shutdown()))

        await self.setup()

        if self.config.mqtt.enabled:
            self._tasks.append(asyncio.create_task(self._mqtt_loop()))

        if self.http_port:
            self._tasks.append(asyncio.create_task(self._run_http()))

        self.logger.info(f"{self.name} service started")

        try:
            await asyncio.gather(*self._tasks)
        except asyncio.CancelledError:
            pass
        finally:
            await self.teardown()
            self.logger.info(f"{self.name} service stopped")

    async def shutdown(self):
        """Graceful shutdown."""
        self.logger.info(f"Shutting down {self.name}...")
        await self.mqtt_publish(
            mqtt_topics.SERVICE_STATUS,
            {"service": self.name, "status": "offline"},
        )
        self._running = False
        for task in self._tasks:
            task.cancel()
