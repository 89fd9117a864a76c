"""
Zabbix Assistant - HTTP service

Chat and Zabbix endpoints plus the background response worker.
"""
from .api import AssistantAPIService

__all__ = ["AssistantAPIService"]
