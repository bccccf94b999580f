"""Tests for the keyword classifiers and context extraction."""

import pytest

from whatsdesk.services.agent import ActionType, detect_actions, extract_context


@pytest.mark.parametrize(
    "message",
    ["Quero agendar uma consulta", "Posso MARCAR para amanhã?", "Qual o próximo horário livre?"],
)
def test_scheduling_keywords(message):
    actions = detect_actions(message, "Claro!")

    assert [a.type for a in actions] == [ActionType.SCHEDULE_APPOINTMENT]


@pytest.mark.parametrize(
    "message",
    ["Quero falar com alguém", "Preciso de um atendente", "Me passa para uma pessoa", "Quero um HUMANO"],
)
def test_transfer_keywords(message):
    actions = detect_actions(message, "Tudo bem.")

    assert [a.type for a in actions] == [ActionType.TRANSFER_HUMAN]
    assert actions[0].data == {"reason": "customer_request"}


def test_reply_mentioning_transfer_triggers_transfer():
    actions = detect_actions("Vocês aceitam convênio?", "Vou transferir você para nossa equipe.")

    assert [a.type for a in actions] == [ActionType.TRANSFER_HUMAN]


def test_both_classifiers_keep_insertion_order():
    actions = detect_actions("Quero marcar consulta, mas prefiro falar com um atendente", "Certo")

    assert [a.type for a in actions] == [ActionType.SCHEDULE_APPOINTMENT, ActionType.TRANSFER_HUMAN]


def test_no_keywords_no_actions():
    assert detect_actions("Bom dia!", "Bom dia! Como posso ajudar?") == []


def test_extracts_name():
    assert extract_context("Oi, meu nome é Ana Souza")["customer_name"] == "Ana Souza"
    assert extract_context("my name is John")["customer_name"] == "John"


def test_extracts_service_interest():
    patch = extract_context("Gostaria de saber o preço do clareamento")

    assert patch == {"service_interest": "Gostaria de saber o preço do clareamento"}


def test_nothing_to_extract():
    assert extract_context("ok") == {}
