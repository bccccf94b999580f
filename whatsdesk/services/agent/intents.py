"""Keyword classifiers and context extraction for user messages."""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ActionType(str, Enum):
    SCHEDULE_APPOINTMENT = "schedule_appointment"
    TRANSFER_HUMAN = "transfer_human"
    SEND_MENU = "send_menu"


@dataclass
class AgentAction:
    type: ActionType
    data: dict[str, Any] = field(default_factory=dict)


SCHEDULING_KEYWORDS = ("agendar", "marcar", "consulta", "horário")
TRANSFER_KEYWORDS = ("falar com", "atendente", "pessoa", "humano")
# The model is told to say it will transfer when it cannot help
REPLY_TRANSFER_MARKER = "transferir"
INTEREST_KEYWORDS = ("gostaria", "quero", "preciso")

NAME_PATTERN = re.compile(
    r"(?:nome é|me chamo|sou o|sou a|my name is)\s+([a-záàâãéèêíìîóòôõúùûç\s]+)",
    re.IGNORECASE,
)


def wants_scheduling(user_message: str) -> bool:
    text = user_message.lower()
    return any(keyword in text for keyword in SCHEDULING_KEYWORDS)


def wants_human(user_message: str, reply_text: str = "") -> bool:
    text = user_message.lower()
    return any(keyword in text for keyword in TRANSFER_KEYWORDS) or REPLY_TRANSFER_MARKER in reply_text.lower()


def detect_actions(user_message: str, reply_text: str) -> list[AgentAction]:
    """Run both classifiers; scheduling comes first when both fire."""
    actions = []
    if wants_scheduling(user_message):
        actions.append(AgentAction(ActionType.SCHEDULE_APPOINTMENT, {"trigger": "scheduling_request"}))
    if wants_human(user_message, reply_text):
        actions.append(AgentAction(ActionType.TRANSFER_HUMAN, {"reason": "customer_request"}))
    return actions


def extract_context(user_message: str) -> dict[str, Any]:
    """Best-effort patch with the contact's name and service interest."""
    patch: dict[str, Any] = {}

    match = NAME_PATTERN.search(user_message)
    if match:
        name = " ".join(match.group(1).split())
        if name:
            patch["customer_name"] = name

    if any(keyword in user_message.lower() for keyword in INTEREST_KEYWORDS):
        patch["service_interest"] = user_message

    return patch
