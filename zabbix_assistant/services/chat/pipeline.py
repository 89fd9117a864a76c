#!/usr/bin/env python3
"""
Response Pipeline

Detached work that answers one pending user turn:
1. Assemble the monitoring snapshot for the user
2. Ask the completion client for a reply
3. Success: patch the pending turn with the reply, then append an
   assistant turn carrying the same text
4. Failure of 1 or 2: patch the pending turn with FALLBACK_REPLY only

run() never raises. By the time it executes, the request that created the
turn has already returned, so errors end here in the log.
"""

import time
from typing import Optional

from zabbix_assistant.common.logging import setup_logging
from zabbix_assistant.services.storage import ConversationStore, ChatTurn
from .completion import CompletionClient, CompletionError
from .context import ContextAssembler

logger = setup_logging("pipeline")

FALLBACK_REPLY = (
    "I'm sorry, I encountered an error while processing your request. Please try again."
)


class ResponsePipeline:
    """Assembler -> completion client -> conversation store."""

    def __init__(
        self,
        store: ConversationStore,
        assembler: ContextAssembler,
        client: CompletionClient,
    ):
        self.store = store
        self.assembler = assembler
        self.client = client

    async def run(self, user_id: str, user_text: str, pending_turn_id: str) -> None:
        """Answer the pending turn. Always returns normally."""
        log_extra = {"user_id": user_id, "turn_id": pending_turn_id}
        try:
            await self._run(user_id, user_text, pending_turn_id)
        except Exception as e:
            logger.error(
                f"Response pipeline failed for turn {pending_turn_id}: {e}",
                exc_info=True,
                extra=log_extra,
            )

    async def _run(self, user_id: str, user_text: str, pending_turn_id: str) -> None:
        log_extra = {"user_id": user_id, "turn_id": pending_turn_id}
        started = time.monotonic()

        reply = await self._generate(user_id, user_text, pending_turn_id)
        if reply is None:
            await self.store.patch_reply(pending_turn_id, FALLBACK_REPLY)
            logger.info(f"Turn {pending_turn_id} answered with fallback", extra=log_extra)
            return

        await self.store.patch_reply(pending_turn_id, reply)
        await self.store.append_turn(ChatTurn(
            user_id=user_id,
            text=reply,
            reply_text="",
            created_at=time.time(),
            is_user_turn=False,
        ))

        duration_ms = (time.monotonic() - started) * 1000
        logger.info(
            f"Turn {pending_turn_id} answered in {duration_ms:.0f}ms",
            extra={**log_extra, "duration_ms": round(duration_ms, 1)},
        )

    async def _generate(self, user_id: str, user_text: str, pending_turn_id: str) -> Optional[str]:
        """Return the completion, or None when any step before write-back failed."""
        log_extra = {"user_id": user_id, "turn_id": pending_turn_id}
        try:
            context = await self.assembler.assemble(user_id)
            return await self.client.complete(user_text, context)
        except CompletionError as e:
            logger.error(f"Error generating AI response: {e}", extra=log_extra)
        except Exception as e:
            logger.error(f"Error generating AI response: {e}", exc_info=True, extra=log_extra)
        return None
