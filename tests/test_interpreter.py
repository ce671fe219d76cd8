from __future__ import annotations

import asyncio

from fakes import FailingChatModel, extraction_json
from langchain_core.language_models.fake_chat_models import FakeListChatModel
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from diag_agent.conversation.models import EntityType, Environment, QueryCategory
from diag_agent.interpretation.interpreter import (
    ENTITY_TYPE_QUESTION,
    ENVIRONMENT_QUESTION,
    interpret_query,
)


def _state(text: str, **fields) -> dict:
    return {"messages": [SystemMessage(content="brief"), HumanMessage(content=text)], **fields}


def test_extracts_intent_and_maps_qa_to_staging() -> None:
    llm = FakeListChatModel(responses=[extraction_json(
        category="OFFER_PRICE",
        entity_ids=["offer-123"],
        entity_type="offer",
        environment="QA",
        initial_response="I'll check the price of offer-123 in staging.",
    )])

    patch = asyncio.run(interpret_query(llm, _state("price of offer-123 in QA looks wrong")))

    assert patch["query_category"] == QueryCategory.OFFER_PRICE
    assert patch["environment"] == Environment.STAGING
    assert patch["entity_type"] == EntityType.OFFER
    assert patch["entity_ids"] == ["offer-123"]
    assert patch["response"] == "I'll check the price of offer-123 in staging."
    assert isinstance(patch["messages"][0], AIMessage)


def test_accepts_fenced_json() -> None:
    fenced = "```json\n" + extraction_json(environment="production", entity_ids=["c-1"], entity_type="campaign") + "\n```"
    llm = FakeListChatModel(responses=[fenced])

    patch = asyncio.run(interpret_query(llm, _state("campaign c-1 in prod")))

    assert patch["environment"] == Environment.PRODUCTION
    assert patch["entity_ids"] == ["c-1"]


def test_appends_environment_question_when_unknown() -> None:
    llm = FakeListChatModel(responses=[extraction_json(initial_response="Sure, let me look.")])

    patch = asyncio.run(interpret_query(llm, _state("Check offer status")))

    assert patch["environment"] == Environment.UNKNOWN
    assert patch["response"] == "Sure, let me look." + ENVIRONMENT_QUESTION


def test_does_not_repeat_environment_question() -> None:
    llm = FakeListChatModel(responses=[extraction_json(
        initial_response="Which environment is this offer in?",
    )])

    patch = asyncio.run(interpret_query(llm, _state("Check offer status")))

    assert patch["response"] == "Which environment is this offer in?"


def test_words_containing_environment_names_still_get_the_question() -> None:
    llm = FakeListChatModel(responses=[extraction_json(
        entity_type="product",
        initial_response="I'll look into the product status on that device for you.",
    )])

    patch = asyncio.run(interpret_query(llm, _state("Check product status")))

    assert patch["response"].endswith(ENVIRONMENT_QUESTION)


def test_general_questions_get_no_follow_up() -> None:
    llm = FakeListChatModel(responses=[extraction_json(
        category="GENERAL_QUESTION",
        initial_response="Offers are sold through storefronts.",
    )])

    patch = asyncio.run(interpret_query(llm, _state("how are offers sold?")))

    assert patch["response"] == "Offers are sold through storefronts."


def test_asks_for_entity_type_when_ids_have_no_type() -> None:
    llm = FakeListChatModel(responses=[extraction_json(
        entity_ids=["abc-1"],
        environment="production",
        initial_response="Looking into abc-1.",
    )])

    patch = asyncio.run(interpret_query(llm, _state("abc-1 is broken in prod")))

    assert patch["response"] == "Looking into abc-1." + ENTITY_TYPE_QUESTION


def test_model_failure_falls_back_and_keeps_context() -> None:
    state = _state(
        "what about now?",
        entity_ids=["offer-9"],
        entity_type=EntityType.OFFER,
        environment=Environment.PRODUCTION,
        time_range="24h",
    )

    patch = asyncio.run(interpret_query(FailingChatModel(), state))

    assert patch["query_category"] == QueryCategory.UNKNOWN_CATEGORY
    assert patch["entity_ids"] == ["offer-9"]
    assert patch["environment"] == Environment.PRODUCTION
    assert patch["response"].startswith("I apologize, I had trouble understanding your request.")


def test_malformed_json_falls_back() -> None:
    llm = FakeListChatModel(responses=["this is not json"])

    patch = asyncio.run(interpret_query(llm, _state("??")))

    assert patch["query_category"] == QueryCategory.UNKNOWN_CATEGORY


def test_nothing_to_interpret_without_trailing_human_message() -> None:
    llm = FakeListChatModel(responses=[extraction_json()])
    state = {"messages": [HumanMessage(content="hi"), AIMessage(content="hello")]}

    assert asyncio.run(interpret_query(llm, state)) == {}
