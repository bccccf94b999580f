"""Agent orchestration: configs, prompt templates, intents and the orchestrator."""

from whatsdesk.services.agent.configs import AgentConfigService
from whatsdesk.services.agent.intents import ActionType, AgentAction, detect_actions, extract_context
from whatsdesk.services.agent.orchestrator import (
    DEFAULT_SYSTEM_PROMPT,
    FALLBACK_REPLY,
    AgentOrchestrator,
    AgentReply,
)
from whatsdesk.services.agent.prompts import (
    PromptTemplateService,
    PromptValidation,
    render_prompt,
    validate_prompt,
)

__all__ = [
    "DEFAULT_SYSTEM_PROMPT",
    "FALLBACK_REPLY",
    "ActionType",
    "AgentAction",
    "AgentConfigService",
    "AgentOrchestrator",
    "AgentReply",
    "PromptTemplateService",
    "PromptValidation",
    "detect_actions",
    "extract_context",
    "render_prompt",
    "validate_prompt",
]
