"""Zabbix Assistant: chat with an AI about your Zabbix monitoring state."""

__version__ = "0.1.0"
