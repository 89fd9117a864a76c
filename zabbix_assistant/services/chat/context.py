"""
Monitoring snapshot rendering.

Turns the cached Zabbix state of one user into the plain-text block that is
embedded in the completion system prompt.
"""

from typing import List

from zabbix_assistant.services.storage import MonitoringStore, Alert, Host

NO_SERVER_CONTEXT = "Zabbix Server Status:\n- No Zabbix server configured\n"

# Caps keep the prompt bounded; they do not reflect all stored data
MAX_ALERTS = 10
MAX_HOSTS = 20


class ContextAssembler:
    """Builds the monitoring snapshot for a user."""

    def __init__(self, store: MonitoringStore, max_alerts: int = MAX_ALERTS, max_hosts: int = MAX_HOSTS):
        self.store = store
        self.max_alerts = max_alerts
        self.max_hosts = max_hosts

    async def assemble(self, user_id: str) -> str:
        """
        Render the snapshot for user_id.

        Returns NO_SERVER_CONTEXT when the user has no active server config.
        Missing hosts or alerts degrade to explanatory lines, never errors.
        """
        config = await self.store.get_server_config(user_id)
        if config is None or not config.active:
            return NO_SERVER_CONTEXT

        alerts = await self.store.recent_alerts(user_id, self.max_alerts)
        hosts = await self.store.list_hosts(user_id, self.max_hosts)

        lines = [
            "Zabbix Server Status:",
            f"- Server: {config.endpoint_url}",
            f"- Total Hosts: {len(hosts)}",
            "",
        ]
        lines.extend(self._alert_lines(alerts))
        lines.append("")
        lines.extend(self._host_status_lines(hosts))
        return "\n".join(lines) + "\n"

    @staticmethod
    def _alert_lines(alerts: List[Alert]) -> List[str]:
        if not alerts:
            return ["No recent alerts"]
        lines = [f"Recent Alerts ({len(alerts)}):"]
        for alert in alerts:
            lines.append(f"- {alert.host_name}: {alert.trigger_name} ({alert.severity})")
        return lines

    @staticmethod
    def _host_status_lines(hosts: List[Host]) -> List[str]:
        active = sum(1 for host in hosts if host.status == "active")
        return [
            "Hosts Status:",
            f"- Active: {active}",
            f"- Total: {len(hosts)}",
        ]
