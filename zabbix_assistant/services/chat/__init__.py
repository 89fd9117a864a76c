"""
Zabbix Assistant - Chat

Monitoring-aware chat: snapshot assembly, completion upstream, and the
detached response pipeline.
"""
from .completion import (
    CompletionClient,
    CompletionError,
    UpstreamUnavailable,
    UpstreamError,
    EMPTY_COMPLETION_REPLY,
)
from .context import ContextAssembler, NO_SERVER_CONTEXT
from .engine import ChatEngine
from .pipeline import ResponsePipeline, FALLBACK_REPLY
from .worker import ResponseJob, JobQueue, MemoryJobQueue, RedisJobQueue, ResponseWorker

__all__ = [
    "CompletionClient", "CompletionError", "UpstreamUnavailable", "UpstreamError",
    "EMPTY_COMPLETION_REPLY", "ContextAssembler", "NO_SERVER_CONTEXT", "ChatEngine",
    "ResponsePipeline", "FALLBACK_REPLY", "ResponseJob", "JobQueue", "MemoryJobQueue",
    "RedisJobQueue", "ResponseWorker",
]
