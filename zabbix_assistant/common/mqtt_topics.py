"""Canonical MQTT topic constants for Zabbix Assistant.

Topic namespace: zabbix_assistant/
"""

# Published after a response run leaves a turn in its terminal state
CHAT_REPLY = "zabbix_assistant/chat/reply"

# Published when the service starts or stops
SERVICE_STATUS = "zabbix_assistant/service/status"
