"""
Zabbix Assistant - Zabbix integration

Server config, connectivity probe and the cached host/alert sync.
"""
from .engine import ZabbixIntegration, OperationResult, SAMPLE_HOSTS, SAMPLE_ALERTS

__all__ = ["ZabbixIntegration", "OperationResult", "SAMPLE_HOSTS", "SAMPLE_ALERTS"]
