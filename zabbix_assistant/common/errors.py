"""Exceptions shared across Zabbix Assistant services."""


class AssistantError(Exception):
    """Base class for all Zabbix Assistant errors."""


class Unauthenticated(AssistantError):
    """The operation requires a caller identity and none was supplied."""

    def __init__(self, message: str = "User not authenticated"):
        super().__init__(message)


class TurnNotFound(AssistantError):
    """A chat turn referenced by id does not exist in the store."""

    def __init__(self, turn_id: str):
        super().__init__(f"Chat turn not found: {turn_id}")
        self.turn_id = turn_id


def require_user(user_id) -> str:
    """Return user_id or raise Unauthenticated when it is missing."""
    if not user_id:
        raise Unauthenticated()
    return user_id
