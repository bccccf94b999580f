"""API routes."""

from whatsdesk.api.routes.admin import router as admin_router
from whatsdesk.api.routes.agents import router as agents_router
from whatsdesk.api.routes.channels import router as channels_router
from whatsdesk.api.routes.conversations import router as conversations_router
from whatsdesk.api.routes.health import router as health_router
from whatsdesk.api.routes.knowledge import router as knowledge_router
from whatsdesk.api.routes.webhooks import router as webhooks_router

__all__ = [
    "admin_router",
    "agents_router",
    "channels_router",
    "conversations_router",
    "health_router",
    "knowledge_router",
    "webhooks_router",
]
