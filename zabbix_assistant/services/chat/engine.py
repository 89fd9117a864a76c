"""
Chat operations exposed to callers: send a message, read history.
"""

import time
from typing import List, Optional

from zabbix_assistant.common.errors import require_user
from zabbix_assistant.common.logging import setup_logging
from zabbix_assistant.services.storage import ConversationStore, ChatTurn
from .pipeline import FALLBACK_REPLY
from .worker import JobQueue, ResponseJob

logger = setup_logging("chat")

HISTORY_LIMIT = 50


class ChatEngine:
    """Stores user turns and schedules their responses."""

    def __init__(self, store: ConversationStore, queue: JobQueue, history_limit: int = HISTORY_LIMIT):
        self.store = store
        self.queue = queue
        self.history_limit = history_limit

    async def send_message(self, user_id: Optional[str], message: str) -> str:
        """
        Store a pending user turn and schedule its response.

        Args:
            user_id: Caller identity. Required.
            message: Message text, already validated as non-blank by the caller.

        Returns:
            Id of the pending turn. The reply arrives later via the pipeline.

        Raises:
            Unauthenticated: user_id is missing; nothing is written.
            Any queue error, after the stored turn is patched with the fallback reply.
        """
        user_id = require_user(user_id)

        turn_id = await self.store.append_turn(ChatTurn(
            user_id=user_id,
            text=message,
            reply_text="",
            created_at=time.time(),
            is_user_turn=True,
        ))
        log_extra = {"user_id": user_id, "turn_id": turn_id}
        try:
            await self.queue.push(ResponseJob(user_id=user_id, turn_id=turn_id, text=message))
        except Exception as e:
            logger.error(f"Could not queue response for turn {turn_id}: {e}", extra=log_extra)
            try:
                await self.store.patch_reply(turn_id, FALLBACK_REPLY)
            except Exception as patch_error:
                logger.error(f"Could not patch fallback onto turn {turn_id}: {patch_error}", extra=log_extra)
            raise

        logger.info(f"Queued response for turn {turn_id}", extra=log_extra)
        return turn_id

    async def history(self, user_id: Optional[str]) -> List[ChatTurn]:
        """Most recent turns, oldest first. Anonymous callers get nothing."""
        if not user_id:
            return []
        return await self.store.recent_turns(user_id, self.history_limit)
