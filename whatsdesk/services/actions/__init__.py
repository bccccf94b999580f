"""Action execution for agent replies."""

from whatsdesk.services.actions.executor import SERVICE_MENU, ActionExecutor

__all__ = ["SERVICE_MENU", "ActionExecutor"]
