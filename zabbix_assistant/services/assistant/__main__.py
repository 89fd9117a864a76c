"""Entry point for: python3 -m zabbix_assistant.services.assistant"""
import asyncio
from zabbix_assistant.services.assistant.api import AssistantAPIService

service = AssistantAPIService()
asyncio.run(service.run())
