#!/usr/bin/env python3
"""
Chat-completion client.

Sends one system message (assistant instructions + monitoring snapshot) and
one user message to an OpenAI-compatible /chat/completions endpoint and
returns the reply text. One POST per call; retrying is the caller's business.
"""

import asyncio
import json
import time
from typing import Optional, Dict, Any, List

import aiohttp

from zabbix_assistant.config import get_config, DEFAULT_OPENAI_BASE_URL
from zabbix_assistant.config.models import OpenAIConfig
from zabbix_assistant.common.errors import AssistantError
from zabbix_assistant.common.logging import setup_logging

logger = setup_logging("completion")

EMPTY_COMPLETION_REPLY = "I'm sorry, I couldn't generate a response."

SYSTEM_PROMPT_TEMPLATE = (
    "You are a helpful Zabbix monitoring assistant. You help users understand their "
    "Zabbix server data, alerts, and monitoring status.\n"
    "\n"
    "Current Zabbix context:\n"
    "{context}\n"
    "\n"
    "Provide helpful, accurate responses about Zabbix monitoring data. If you don't have "
    "specific data, explain what information would be helpful and how to configure "
    "Zabbix integration."
)


class CompletionError(AssistantError):
    """Base class for completion failures."""


class UpstreamUnavailable(CompletionError):
    """No credential is configured for the completion upstream."""


class UpstreamError(CompletionError):
    """The upstream answered with a non-success status or could not be reached."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


def build_messages(user_text: str, context: str) -> List[Dict[str, str]]:
    """Fixed-shape prompt: one system message, one user message."""
    return [
        {"role": "system", "content": SYSTEM_PROMPT_TEMPLATE.format(context=context)},
        {"role": "user", "content": user_text},
    ]


def extract_reply(data: Any) -> str:
    """Pull choices[0].message.content out of a response body.

    Missing or blank content yields EMPTY_COMPLETION_REPLY.
    """
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        content = None
    if not isinstance(content, str) or not content.strip():
        return EMPTY_COMPLETION_REPLY
    return content


class CompletionClient:
    """Async client for an OpenAI-compatible chat-completion endpoint."""

    def __init__(self, config: Optional[OpenAIConfig] = None):
        self.config = config or get_config().openai
        base_url = self.config.base_url or DEFAULT_OPENAI_BASE_URL
        self.endpoint = f"{base_url.rstrip('/')}/chat/completions"
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def complete(self, user_text: str, context: str) -> str:
        """
        Generate a reply to user_text with context embedded in the system prompt.

        Raises:
            UpstreamUnavailable: no API key configured
            UpstreamError: non-2xx status, transport failure, timeout or bad body
        """
        if not self.config.api_key:
            raise UpstreamUnavailable("OpenAI API key not configured")

        payload = {
            "model": self.config.model,
            "messages": build_messages(user_text, context),
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
        }

        session = await self._get_session()
        started = time.monotonic()
        try:
            async with session.post(self.endpoint, json=payload, headers=headers) as response:
                if not 200 <= response.status < 300:
                    body = await response.text()
                    logger.error(f"Completion upstream error {response.status}: {body[:200]}")
                    raise UpstreamError(
                        f"OpenAI API error: {response.status} {response.reason or ''}".rstrip(),
                        status=response.status,
                    )
                data = await response.json(content_type=None)

        except asyncio.TimeoutError as e:
            raise UpstreamError(f"OpenAI API request timed out after {self.config.timeout}s") from e
        except aiohttp.ClientError as e:
            raise UpstreamError(f"OpenAI API request failed: {e}") from e
        except json.JSONDecodeError as e:
            raise UpstreamError(f"OpenAI API returned invalid JSON: {e}") from e

        duration_ms = (time.monotonic() - started) * 1000
        logger.debug(
            f"Completion received in {duration_ms:.0f}ms",
            extra={"endpoint": self.endpoint, "duration_ms": round(duration_ms, 1)},
        )
        return extract_reply(data)
