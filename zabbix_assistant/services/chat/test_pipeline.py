#!/usr/bin/env python3
"""
Response Pipeline Tests
"""

import asyncio
import time

import pytest

from zabbix_assistant.services.chat import (
    ContextAssembler,
    ResponsePipeline,
    FALLBACK_REPLY,
    UpstreamUnavailable,
)
from zabbix_assistant.services.storage import ChatTurn


async def pending_turn(store, text="What alerts do I have?", user_id="user-1"):
    return await store.append_turn(ChatTurn(user_id=user_id, text=text, created_at=time.time()))


def make_pipeline(store, client):
    return ResponsePipeline(store=store, assembler=ContextAssembler(store), client=client)


class TestResponsePipeline:
    """Test suite for ResponsePipeline."""

    @pytest.mark.asyncio
    async def test_success_patches_turn_and_appends_assistant_turn(self, store, completion_client):
        turn_id = await pending_turn(store)

        await make_pipeline(store, completion_client).run("user-1", "What alerts do I have?", turn_id)

        turns = await store.recent_turns("user-1", 50)
        assert len(turns) == 2
        user_turn, assistant_turn = turns
        assert user_turn.id == turn_id
        assert user_turn.reply_text == "All systems nominal."
        assert assistant_turn.is_user_turn is False
        assert assistant_turn.text == "All systems nominal."
        assert assistant_turn.reply_text == ""

    @pytest.mark.asyncio
    async def test_upstream_error_patches_fallback_only(self, store, failing_client):
        turn_id = await pending_turn(store)

        await make_pipeline(store, failing_client).run("user-1", "What alerts do I have?", turn_id)

        turns = await store.recent_turns("user-1", 50)
        assert len(turns) == 1
        assert turns[0].reply_text == FALLBACK_REPLY

    @pytest.mark.asyncio
    async def test_missing_credential_patches_fallback_only(self, store, make_client):
        client = make_client(error=UpstreamUnavailable("OpenAI API key not configured"))
        turn_id = await pending_turn(store)

        await make_pipeline(store, client).run("user-1", "hello", turn_id)

        turns = await store.recent_turns("user-1", 50)
        assert [t.reply_text for t in turns] == [FALLBACK_REPLY]

    @pytest.mark.asyncio
    async def test_unexpected_error_patches_fallback(self, store, make_client):
        client = make_client(error=RuntimeError("socket exploded"))
        turn_id = await pending_turn(store)

        await make_pipeline(store, client).run("user-1", "hello", turn_id)

        turns = await store.recent_turns("user-1", 50)
        assert len(turns) == 1
        assert turns[0].reply_text == FALLBACK_REPLY

    @pytest.mark.asyncio
    async def test_client_receives_assembled_context(self, store, completion_client):
        """Configured server, no hosts, no alerts: the exact snapshot goes upstream."""
        await store.upsert_server_config("user-1", "http://zabbix.local", "Admin", "zabbix")
        turn_id = await pending_turn(store)
        expected = await ContextAssembler(store).assemble("user-1")

        await make_pipeline(store, completion_client).run("user-1", "What alerts do I have?", turn_id)

        assert completion_client.calls == [("What alerts do I have?", expected)]
        assert "No recent alerts" in expected
        assert "- Active: 0\n- Total: 0\n" in expected

    @pytest.mark.asyncio
    async def test_deleted_turn_does_not_raise(self, store, completion_client):
        """Store errors end the run without reaching the caller."""
        turn_id = await pending_turn(store)
        await store.delete_turn(turn_id)

        await make_pipeline(store, completion_client).run("user-1", "hello", turn_id)

        assert await store.recent_turns("user-1", 50) == []

    @pytest.mark.asyncio
    async def test_concurrent_runs_patch_their_own_turns(self, store, make_client):
        first = await pending_turn(store, text="first")
        second = await pending_turn(store, text="second")

        delays = {"first": 0.2, "second": 0.0}
        finished = []

        class EchoClient(make_client):
            async def complete(self, user_text, context):
                await asyncio.sleep(delays[user_text])
                finished.append(user_text)
                return f"re: {user_text}"

        pipeline = make_pipeline(store, EchoClient())
        await asyncio.gather(
            pipeline.run("user-1", "first", first),
            pipeline.run("user-1", "second", second),
        )

        assert finished == ["second", "first"]
        assert (await store.get_turn(first)).reply_text == "re: first"
        assert (await store.get_turn(second)).reply_text == "re: second"
        assistant_turns = [t.text for t in await store.recent_turns("user-1", 50) if not t.is_user_turn]
        assert sorted(assistant_turns) == ["re: first", "re: second"]
