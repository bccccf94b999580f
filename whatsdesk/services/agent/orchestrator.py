"""Agent orchestrator - turns one inbound message into a reply and actions."""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

import structlog

from whatsdesk.core.config import settings
from whatsdesk.core.exceptions import UpstreamError
from whatsdesk.models import AgentConfig, AgentUsageLog, Conversation, Tenant
from whatsdesk.services.agent.configs import AgentConfigService
from whatsdesk.services.agent.intents import ActionType, AgentAction, detect_actions, extract_context
from whatsdesk.services.agent.prompts import render_prompt
from whatsdesk.services.conversation.store import ConversationStore
from whatsdesk.services.knowledge.store import KnowledgeHit, KnowledgeStore
from whatsdesk.services.llm.provider import LLMProvider, LLMResponse
from whatsdesk.storage.base import StorageBackend

logger = structlog.get_logger()

FALLBACK_REPLY = (
    "🤖 Olá! Estou com um problema técnico no momento. "
    "Em breve um de nossos atendentes entrará em contato com você. "
    "Obrigado pela compreensão!"
)
DEFAULT_SYSTEM_PROMPT = "Você é um assistente virtual prestativo."

KNOWLEDGE_HEADER = "INFORMAÇÕES DA EMPRESA (Base de Conhecimento):"
HISTORY_HEADER = "HISTÓRICO DA CONVERSA:"
CONTEXT_HEADER = "CONTEXTO ATUAL:"


@dataclass
class AgentReply:
    """What the pipeline should do with one inbound message."""

    should_respond: bool
    response_text: str | None = None
    actions: list[AgentAction] = field(default_factory=list)
    context_patch: dict[str, Any] = field(default_factory=dict)
    no_active_agent: bool = False
    usage: LLMResponse | None = None

    @classmethod
    def without_agent(cls) -> "AgentReply":
        return cls(should_respond=False, no_active_agent=True)


class AgentOrchestrator:
    """Builds the prompt, calls the completion API once and classifies the result."""

    def __init__(
        self,
        storage: StorageBackend,
        knowledge: KnowledgeStore,
        llm: LLMProvider,
        conversations: ConversationStore,
        history_turns: int | None = None,
        top_k: int | None = None,
    ) -> None:
        self.storage = storage
        self.knowledge = knowledge
        self.llm = llm
        self.conversations = conversations
        self.agents = AgentConfigService(storage, llm)
        self.history_turns = history_turns or settings.agent_history_turns
        self.top_k = top_k or settings.agent_knowledge_top_k
        self._usage_tasks: set[asyncio.Task] = set()

    async def respond(self, tenant_id: str, conversation: Conversation, user_message: str) -> AgentReply:
        """Produce the reply for one inbound message.

        Args:
            tenant_id: Tenant that owns the conversation
            conversation: Conversation the message belongs to
            user_message: Text the contact sent

        Returns:
            AgentReply; ``no_active_agent`` is set when neither the tenant
            nor the global scope has an active agent. Upstream failures
            produce the fallback reply plus a technical_error transfer.
        """
        agent = await self.agents.resolve_active(tenant_id)
        if agent is None:
            logger.warning("No active agent", tenant_id=tenant_id, conversation_id=conversation.id)
            return AgentReply.without_agent()

        system_prompt = await self.build_system_prompt(agent, tenant_id, conversation, user_message)

        try:
            response = await self.llm.complete(
                agent,
                messages=[{"role": "user", "content": user_message}],
                system_prompt=system_prompt,
            )
        except UpstreamError as e:
            logger.error(
                "Agent completion failed, using fallback",
                tenant_id=tenant_id,
                conversation_id=conversation.id,
                agent_id=agent.id,
                error=e.message,
            )
            self._log_usage(agent, tenant_id, conversation, None)
            return AgentReply(
                should_respond=True,
                response_text=FALLBACK_REPLY,
                actions=[AgentAction(ActionType.TRANSFER_HUMAN, {"reason": "technical_error"})],
            )

        self._log_usage(agent, tenant_id, conversation, response)

        actions = detect_actions(user_message, response.content)
        context_patch = extract_context(user_message)

        logger.info(
            "Agent replied",
            tenant_id=tenant_id,
            conversation_id=conversation.id,
            actions=[a.type.value for a in actions],
            context_keys=sorted(context_patch),
        )

        return AgentReply(
            should_respond=True,
            response_text=response.content,
            actions=actions,
            context_patch=context_patch,
            usage=response,
        )

    async def build_system_prompt(
        self,
        agent: AgentConfig,
        tenant_id: str,
        conversation: Conversation,
        user_message: str,
    ) -> str:
        parts = [await self._base_prompt(agent, tenant_id)]

        hits = await self._search_knowledge(tenant_id, user_message)
        if hits:
            parts.append(f"{KNOWLEDGE_HEADER}\n" + "\n\n".join(hit.chunk_text for hit in hits))

        history = await self.conversations.transcript(conversation, limit=self.history_turns)
        parts.append(f"{HISTORY_HEADER}\n" + "\n".join(m.transcript_line() for m in history))

        parts.append(f"{CONTEXT_HEADER} {json.dumps(conversation.context, ensure_ascii=False, default=str)}")

        return "\n\n".join(parts)

    async def _base_prompt(self, agent: AgentConfig, tenant_id: str) -> str:
        if agent.custom_instructions:
            return agent.custom_instructions

        if agent.system_prompt_id:
            template = await self.storage.get_prompt_template(agent.system_prompt_id)
            if template is not None:
                tenant = await self.storage.get_tenant(tenant_id)
                values = tenant.profile.prompt_variables() if isinstance(tenant, Tenant) else {}
                return render_prompt(template, values)
            logger.warning("Linked prompt template not found", agent_id=agent.id, template_id=agent.system_prompt_id)

        return DEFAULT_SYSTEM_PROMPT

    async def _search_knowledge(self, tenant_id: str, query: str) -> list[KnowledgeHit]:
        try:
            return await self.knowledge.search(tenant_id, query, limit=self.top_k)
        except Exception as e:
            logger.warning("Knowledge search failed", tenant_id=tenant_id, error=str(e))
            return []

    def _log_usage(
        self,
        agent: AgentConfig,
        tenant_id: str,
        conversation: Conversation,
        response: LLMResponse | None,
    ) -> None:
        log = AgentUsageLog(
            id=str(uuid4()),
            agent_id=agent.id,
            tenant_id=tenant_id,
            conversation_id=conversation.id,
            model=agent.model,
            prompt_tokens=response.tokens_input if response else 0,
            completion_tokens=response.tokens_output if response else 0,
            total_tokens=response.total_tokens if response else 0,
            cost_usd=response.cost_usd if response else 0.0,
            latency_ms=response.latency_ms if response else 0.0,
            fallback=response is None,
        )
        task = asyncio.create_task(self._write_usage(log))
        self._usage_tasks.add(task)
        task.add_done_callback(self._usage_tasks.discard)

    async def _write_usage(self, log: AgentUsageLog) -> None:
        try:
            await self.storage.save_usage_log(log)
        except Exception as e:
            logger.warning("Failed to write usage log", agent_id=log.agent_id, error=str(e))

    async def drain(self) -> None:
        """Wait for pending usage log writes."""
        if self._usage_tasks:
            await asyncio.gather(*list(self._usage_tasks), return_exceptions=True)
