#!/usr/bin/env python3
"""
Response job queue and worker pool.

Sending a chat message stores the pending turn and pushes a ResponseJob;
ResponseWorker consumers pop jobs and run the ResponsePipeline for them,
detached from the HTTP request.

Queues:
- RedisJobQueue: durable. Jobs move pending -> processing with BLMOVE and
  are removed on ack. Jobs still in processing at startup (a crash mid-run)
  go back to pending, so delivery is at-least-once.
- MemoryJobQueue: asyncio.Queue, lost on restart.

Redelivered jobs are harmless: a turn that already has a reply is skipped.
"""

import asyncio
import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, List, Callable, Awaitable, Dict, Any

import redis.asyncio as redis

from zabbix_assistant.common.logging import setup_logging
from zabbix_assistant.services.storage import ConversationStore
from .pipeline import ResponsePipeline, FALLBACK_REPLY

logger = setup_logging("worker")

ReplyListener = Callable[[Dict[str, Any]], Awaitable[None]]


@dataclass
class ResponseJob:
    """Work item: answer one pending turn."""
    user_id: str
    turn_id: str
    text: str
    raw: Optional[str] = None  # serialized form as popped, used for ack

    def to_json(self) -> str:
        return json.dumps({"user_id": self.user_id, "turn_id": self.turn_id, "text": self.text})

    @classmethod
    def from_json(cls, raw: str) -> "ResponseJob":
        data = json.loads(raw)
        return cls(user_id=data["user_id"], turn_id=data["turn_id"], text=data["text"], raw=raw)


class JobQueue(ABC):
    """Queue of ResponseJobs."""

    @abstractmethod
    async def push(self, job: ResponseJob) -> None:
        pass

    @abstractmethod
    async def pop(self, timeout: float) -> Optional[ResponseJob]:
        """Wait up to timeout seconds for a job; None if none arrived."""

    @abstractmethod
    async def ack(self, job: ResponseJob) -> None:
        """Mark a popped job as finished."""

    async def recover(self) -> int:
        """Requeue jobs interrupted by a previous shutdown. Returns the count."""
        return 0


class MemoryJobQueue(JobQueue):
    """In-process queue."""

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()

    async def push(self, job: ResponseJob) -> None:
        await self._queue.put(job)

    async def pop(self, timeout: float) -> Optional[ResponseJob]:
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    async def ack(self, job: ResponseJob) -> None:
        self._queue.task_done()

    async def join(self):
        """Wait until every pushed job has been acked."""
        await self._queue.join()


class RedisJobQueue(JobQueue):
    """Durable queue on two Redis lists."""

    PENDING_KEY = "chat:jobs:pending"
    PROCESSING_KEY = "chat:jobs:processing"

    def __init__(self, redis_client: redis.Redis):
        self.redis_client = redis_client

    async def push(self, job: ResponseJob) -> None:
        await self.redis_client.lpush(self.PENDING_KEY, job.to_json())

    async def pop(self, timeout: float) -> Optional[ResponseJob]:
        raw = await self.redis_client.blmove(
            self.PENDING_KEY, self.PROCESSING_KEY, timeout, "RIGHT", "LEFT"
        )
        if raw is None:
            return None
        try:
            return ResponseJob.from_json(raw)
        except (ValueError, KeyError) as e:
            logger.error(f"Dropping malformed job {raw!r}: {e}")
            await self.redis_client.lrem(self.PROCESSING_KEY, 1, raw)
            return None

    async def ack(self, job: ResponseJob) -> None:
        await self.redis_client.lrem(self.PROCESSING_KEY, 1, job.raw or job.to_json())

    async def recover(self) -> int:
        recovered = 0
        while await self.redis_client.lmove(self.PROCESSING_KEY, self.PENDING_KEY, "LEFT", "RIGHT"):
            recovered += 1
        return recovered


class ResponseWorker:
    """Pool of consumers running the response pipeline for queued jobs."""

    def __init__(
        self,
        queue: JobQueue,
        pipeline: ResponsePipeline,
        store: ConversationStore,
        concurrency: int = 2,
        poll_interval: float = 1.0,
        on_reply: Optional[ReplyListener] = None,
    ):
        self.queue = queue
        self.pipeline = pipeline
        self.store = store
        self.concurrency = max(1, concurrency)
        self.poll_interval = poll_interval
        self.on_reply = on_reply
        self._running = False
        self._tasks: List[asyncio.Task] = []
        self.processed = 0
        self.skipped = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Recover interrupted jobs and start the consumers."""
        recovered = await self.queue.recover()
        if recovered:
            logger.warning(f"Requeued {recovered} interrupted response job(s)")

        self._running = True
        for worker_id in range(self.concurrency):
            self._tasks.append(asyncio.create_task(self._consume(worker_id)))
        logger.info(f"Response worker started with {self.concurrency} consumer(s)")

    async def stop(self):
        """Stop taking new jobs and wait for in-flight runs to finish."""
        self._running = False
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Response worker stopped")

    async def _consume(self, worker_id: int):
        while self._running:
            try:
                job = await self.queue.pop(self.poll_interval)
            except redis.RedisError as e:
                logger.error(f"Consumer {worker_id} failed to pop job: {e}")
                await asyncio.sleep(self.poll_interval)
                continue

            if job is None:
                continue

            try:
                await self.handle(job)
            finally:
                try:
                    await self.queue.ack(job)
                except redis.RedisError as e:
                    logger.error(f"Failed to ack job for turn {job.turn_id}: {e}")

    async def handle(self, job: ResponseJob):
        """Run the pipeline for one job unless its turn is already terminal."""
        log_extra = {"user_id": job.user_id, "turn_id": job.turn_id}
        try:
            turn = await self.store.get_turn(job.turn_id)
        except Exception as e:
            # The job is acked either way, so leave the turn terminal
            logger.error(f"Could not load turn {job.turn_id}: {e}", extra=log_extra)
            try:
                await self.store.patch_reply(job.turn_id, FALLBACK_REPLY)
            except Exception as patch_error:
                logger.error(f"Could not patch fallback onto turn {job.turn_id}: {patch_error}", extra=log_extra)
            return

        if turn is None or turn.answered:
            self.skipped += 1
            logger.info(f"Skipping job for turn {job.turn_id}: already answered or gone", extra=log_extra)
            return

        await self.pipeline.run(job.user_id, job.text, job.turn_id)
        self.processed += 1

        if self.on_reply:
            try:
                await self.on_reply({
                    "user_id": job.user_id,
                    "turn_id": job.turn_id,
                    "timestamp": time.time(),
                })
            except Exception as e:
                logger.warning(f"Reply listener failed for turn {job.turn_id}: {e}", extra=log_extra)
