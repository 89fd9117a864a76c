#!/usr/bin/env python3
"""
Zabbix integration: server config, connectivity probe, data sync.

The probe and sync return OperationResult objects and never raise, so
callers can render success and failure the same way. Saving config and
syncing require a caller identity.
"""

import asyncio
import json
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any

import aiohttp

from zabbix_assistant.config import get_config
from zabbix_assistant.config.models import ZabbixConfig
from zabbix_assistant.common.errors import require_user
from zabbix_assistant.common.logging import setup_logging
from zabbix_assistant.services.storage import MonitoringStore, ServerConfig

logger = setup_logging("zabbix")

API_PATH = "/api_jsonrpc.php"

NETWORK_ERROR_MESSAGE = "Network error. Check if Zabbix server is accessible and CORS is configured."

SYNC_SUCCESS_MESSAGE = (
    "Sample data synchronized successfully. "
    "Real Zabbix integration will be enabled once connection is tested."
)

# (external_id, name, status)
SAMPLE_HOSTS = [
    ("1", "web-server-01", "active"),
    ("2", "db-server-01", "active"),
]

# (external_id, host_name, trigger_name, severity, status)
SAMPLE_ALERTS = [
    ("1", "web-server-01", "High CPU usage", "warning", "active"),
]


@dataclass
class OperationResult:
    """Uniform outcome of probe and sync."""
    success: bool
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ProbeFailure(Exception):
    """Internal: a probe step failed with a user-facing reason."""


def normalize_endpoint(endpoint_url: str) -> str:
    return endpoint_url.strip().rstrip("/")


class ZabbixIntegration:
    """Config CRUD, connectivity probe and sample sync for one store."""

    def __init__(self, store: MonitoringStore, config: Optional[ZabbixConfig] = None):
        self.store = store
        self.config = config or get_config().zabbix

    async def save_config(self, user_id: Optional[str], endpoint_url: str, username: str, password: str) -> ServerConfig:
        """Create or update the caller's server config and mark it active."""
        user_id = require_user(user_id)
        config = await self.store.upsert_server_config(
            user_id=user_id,
            endpoint_url=normalize_endpoint(endpoint_url),
            username=username,
            password=password,
        )
        logger.info(f"Saved Zabbix config {config.id}", extra={"user_id": user_id})
        return config

    async def get_config(self, user_id: Optional[str]) -> Optional[Dict[str, Any]]:
        """Caller's config without the password, or None."""
        if not user_id:
            return None
        config = await self.store.get_server_config(user_id)
        if config is None:
            return None
        return config.to_public_dict()

    async def test_connection(self, endpoint_url: str, username: str, password: str) -> OperationResult:
        """
        Try a user.login JSON-RPC call against the Zabbix API.

        Returns:
            OperationResult; never raises.
        """
        url = f"{normalize_endpoint(endpoint_url)}{API_PATH}"
        payload = {
            "jsonrpc": "2.0",
            "method": "user.login",
            "params": {
                "user": username,
                "password": password,
            },
            "id": 1,
        }
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self.config.user_agent,
        }

        try:
            timeout = aiohttp.ClientTimeout(total=self.config.probe_timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(url, json=payload, headers=headers) as response:
                    if response.status == 403:
                        raise ProbeFailure(
                            "Access forbidden. Check Zabbix server configuration and firewall settings."
                        )
                    if response.status == 404:
                        raise ProbeFailure("Zabbix API not found. Verify the server URL is correct.")
                    if not 200 <= response.status < 300:
                        raise ProbeFailure(f"HTTP error! status: {response.status}")
                    data = await response.json(content_type=None)

            error = data.get("error") if isinstance(data, dict) else None
            if error:
                reason = error.get("data") if isinstance(error, dict) else None
                raise ProbeFailure(reason or "Authentication failed")

            logger.info("Zabbix connection test succeeded", extra={"endpoint": url})
            return OperationResult(success=True, message="Connection successful!")

        except ProbeFailure as e:
            reason = str(e)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            logger.warning(f"Zabbix connection test network failure: {e}", extra={"endpoint": url})
            reason = NETWORK_ERROR_MESSAGE
        except json.JSONDecodeError:
            reason = "Invalid response from Zabbix API"
        except Exception as e:
            logger.error(f"Zabbix connection test failed: {e}", exc_info=True, extra={"endpoint": url})
            reason = str(e) or "Unknown error"

        logger.info(f"Zabbix connection test failed: {reason}", extra={"endpoint": url})
        return OperationResult(success=False, message=f"Connection failed: {reason}")

    async def sync(self, user_id: Optional[str]) -> OperationResult:
        """
        Upsert the sample host/alert set for the caller.

        Raises:
            Unauthenticated: user_id is missing.
        """
        user_id = require_user(user_id)
        try:
            for external_id, name, status in SAMPLE_HOSTS:
                await self.store.upsert_host(user_id, external_id, name, status)
            for external_id, host_name, trigger_name, severity, status in SAMPLE_ALERTS:
                await self.store.upsert_alert(user_id, external_id, host_name, trigger_name, severity, status)
        except Exception as e:
            logger.error(f"Sync failed: {e}", exc_info=True, extra={"user_id": user_id})
            return OperationResult(success=False, message=f"Sync failed: {str(e) or 'Unknown error'}")

        logger.info(
            f"Synced {len(SAMPLE_HOSTS)} hosts and {len(SAMPLE_ALERTS)} alerts",
            extra={"user_id": user_id},
        )
        return OperationResult(success=True, message=SYNC_SUCCESS_MESSAGE)
