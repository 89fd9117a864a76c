#!/usr/bin/env python3
"""
Response Worker Tests

Exercises ChatEngine -> MemoryJobQueue -> ResponseWorker -> ResponsePipeline.
"""

import asyncio

import fakeredis.aioredis
import pytest
import redis.asyncio as redis
from aiohttp import web
from aiohttp.test_utils import TestServer

from zabbix_assistant.common.errors import Unauthenticated
from zabbix_assistant.config.models import OpenAIConfig
from zabbix_assistant.services.chat import (
    ChatEngine,
    CompletionClient,
    ContextAssembler,
    JobQueue,
    MemoryJobQueue,
    RedisJobQueue,
    ResponseJob,
    ResponsePipeline,
    ResponseWorker,
    FALLBACK_REPLY,
)
from zabbix_assistant.services.storage import MemoryStore


def build(store, client, on_reply=None):
    queue = MemoryJobQueue()
    pipeline = ResponsePipeline(store=store, assembler=ContextAssembler(store), client=client)
    worker = ResponseWorker(queue, pipeline, store, concurrency=2, poll_interval=0.05, on_reply=on_reply)
    engine = ChatEngine(store, queue)
    return engine, queue, worker


class TestResponseWorker:
    """Test suite for detached response generation."""

    @pytest.mark.asyncio
    async def test_send_returns_pending_turn_before_reply(self, store, completion_client):
        engine, queue, worker = build(store, completion_client)

        turn_id = await engine.send_message("user-1", "What alerts do I have?")

        turn = await store.get_turn(turn_id)
        assert turn.is_user_turn
        assert turn.reply_text == ""
        assert completion_client.calls == []

    @pytest.mark.asyncio
    async def test_worker_answers_queued_turn(self, store, completion_client):
        events = []

        async def on_reply(event):
            events.append(event)

        engine, queue, worker = build(store, completion_client, on_reply=on_reply)
        await worker.start()
        try:
            turn_id = await engine.send_message("user-1", "What alerts do I have?")
            await asyncio.wait_for(queue.join(), timeout=5)
        finally:
            await worker.stop()

        history = await engine.history("user-1")
        assert [t.is_user_turn for t in history] == [True, False]
        assert history[0].id == turn_id
        assert history[0].reply_text == "All systems nominal."
        assert history[1].text == "All systems nominal."
        assert worker.processed == 1
        assert [e["turn_id"] for e in events] == [turn_id]

    @pytest.mark.asyncio
    async def test_redelivered_job_is_skipped(self, store, completion_client):
        engine, queue, worker = build(store, completion_client)
        turn_id = await engine.send_message("user-1", "hello")
        job = await queue.pop(timeout=1)

        await worker.handle(job)
        await worker.handle(ResponseJob(user_id="user-1", turn_id=turn_id, text="hello"))

        assert len(completion_client.calls) == 1
        assert worker.skipped == 1
        assert len(await store.recent_turns("user-1", 50)) == 2

    @pytest.mark.asyncio
    async def test_send_requires_caller(self, store, completion_client):
        engine, queue, worker = build(store, completion_client)

        with pytest.raises(Unauthenticated):
            await engine.send_message(None, "hello")

        assert await store.recent_turns("", 50) == []
        assert await queue.pop(timeout=0.05) is None

    @pytest.mark.asyncio
    async def test_anonymous_history_is_empty(self, store, completion_client):
        engine, _, _ = build(store, completion_client)
        await engine.send_message("user-1", "hello")

        assert await engine.history(None) == []

    @pytest.mark.asyncio
    async def test_history_limit_and_order(self, store, completion_client):
        engine, _, _ = build(store, completion_client)
        for i in range(60):
            await engine.send_message("user-1", f"message {i}")

        history = await engine.history("user-1")

        assert len(history) == 50
        assert history[0].text == "message 10"
        assert history[-1].text == "message 59"

    @pytest.mark.asyncio
    async def test_upstream_timeout_leaves_fallback_reply(self, store):
        """A slow upstream ends with the apology on the user turn and no second turn."""
        async def slow_handler(request):
            await asyncio.sleep(1.0)
            return web.json_response({"choices": [{"message": {"content": "late"}}]})

        app = web.Application()
        app.router.add_post("/v1/chat/completions", slow_handler)
        server = TestServer(app)
        await server.start_server()

        client = CompletionClient(OpenAIConfig(
            api_key="sk-test", base_url=str(server.make_url("/v1")), timeout=0.2,
        ))
        engine, queue, worker = build(store, client)
        await worker.start()
        try:
            await engine.send_message("user-1", "What alerts do I have?")
            await asyncio.wait_for(queue.join(), timeout=5)
        finally:
            await worker.stop()
            await client.close()
            await server.close()

        history = await engine.history("user-1")
        assert len(history) == 1
        assert history[0].reply_text == FALLBACK_REPLY

    @pytest.mark.asyncio
    async def test_unreadable_turn_gets_fallback(self, completion_client):
        class FlakyStore(MemoryStore):
            failures = 1

            async def get_turn(self, turn_id):
                if self.failures:
                    self.failures -= 1
                    raise redis.ConnectionError("Connection reset by peer")
                return await super().get_turn(turn_id)

        store = FlakyStore()
        engine, queue, worker = build(store, completion_client)
        turn_id = await engine.send_message("user-1", "hello")

        await worker.handle(await queue.pop(timeout=1))

        assert (await store.get_turn(turn_id)).reply_text == FALLBACK_REPLY
        assert completion_client.calls == []
        assert worker.processed == 0


class BrokenQueue(JobQueue):
    """Queue whose backend is gone."""

    async def push(self, job):
        raise redis.ConnectionError("Error 111 connecting to localhost:6379")

    async def pop(self, timeout):
        return None

    async def ack(self, job):
        pass


class TestSendFailures:

    @pytest.mark.asyncio
    async def test_failed_push_leaves_fallback_on_turn(self, store):
        engine = ChatEngine(store, BrokenQueue())

        with pytest.raises(redis.ConnectionError):
            await engine.send_message("user-1", "hello")

        history = await engine.history("user-1")
        assert [(t.text, t.reply_text) for t in history] == [("hello", FALLBACK_REPLY)]


@pytest.fixture
async def redis_client():
    client = fakeredis.aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.aclose()


class TestRedisJobQueue:

    @pytest.mark.asyncio
    async def test_pop_moves_job_to_processing_until_ack(self, redis_client):
        queue = RedisJobQueue(redis_client)
        await queue.push(ResponseJob(user_id="user-1", turn_id="1", text="hello"))

        job = await queue.pop(timeout=1)

        assert (job.user_id, job.turn_id, job.text) == ("user-1", "1", "hello")
        assert await redis_client.llen(RedisJobQueue.PENDING_KEY) == 0
        assert await redis_client.llen(RedisJobQueue.PROCESSING_KEY) == 1

        await queue.ack(job)

        assert await redis_client.llen(RedisJobQueue.PROCESSING_KEY) == 0

    @pytest.mark.asyncio
    async def test_jobs_pop_in_push_order(self, redis_client):
        queue = RedisJobQueue(redis_client)
        for turn_id in ("1", "2", "3"):
            await queue.push(ResponseJob(user_id="user-1", turn_id=turn_id, text="hello"))

        popped = [(await queue.pop(timeout=1)).turn_id for _ in range(3)]

        assert popped == ["1", "2", "3"]

    @pytest.mark.asyncio
    async def test_recover_requeues_unacked_jobs_in_order(self, redis_client):
        queue = RedisJobQueue(redis_client)
        for turn_id in ("1", "2", "3"):
            await queue.push(ResponseJob(user_id="user-1", turn_id=turn_id, text="hello"))
        await queue.pop(timeout=1)
        await queue.pop(timeout=1)

        assert await queue.recover() == 2

        assert await redis_client.llen(RedisJobQueue.PROCESSING_KEY) == 0
        popped = [(await queue.pop(timeout=1)).turn_id for _ in range(3)]
        assert popped == ["1", "2", "3"]

    @pytest.mark.asyncio
    async def test_malformed_job_is_dropped(self, redis_client):
        queue = RedisJobQueue(redis_client)
        await redis_client.lpush(RedisJobQueue.PENDING_KEY, "not json")

        assert await queue.pop(timeout=1) is None
        assert await redis_client.llen(RedisJobQueue.PROCESSING_KEY) == 0
