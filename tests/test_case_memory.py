from __future__ import annotations

import asyncio
import re
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

from diag_agent.conversation.models import EntityType, Environment, FeedbackType, MessageFeedback, QueryCategory
from diag_agent.memory.models import DiagnosticCase, DiagnosticPattern, record_outcome
from diag_agent.memory.service import CaseMemory, new_case_id
from diag_agent.storage.cases import InMemoryCaseStore


def _case(case_id: str = "case_1_00000000", reward: float = 0.0, minutes_ago: int = 0, **fields) -> DiagnosticCase:
    base = dict(
        case_id=case_id,
        timestamp=datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
        category=QueryCategory.ENTITY_STATUS,
        entity_type=EntityType.OFFER,
        environment=Environment.STAGING,
        user_query="is o-1 live?",
        tools_used=["log_search"],
        final_summary="It is archived.",
        overall_rl_reward=reward,
    )
    base.update(fields)
    return DiagnosticCase(**base)


def _turn_state(**fields) -> dict:
    base = {
        "user_query": "is o-1 live?",
        "query_category": QueryCategory.ENTITY_STATUS,
        "entity_type": EntityType.OFFER,
        "entity_ids": ["o-1"],
        "environment": Environment.STAGING,
        "tools_used": ["entity_history", "log_search", "log_search"],
        "final_summary": "It is archived.",
    }
    base.update(fields)
    return base


def test_case_ids_have_expected_shape() -> None:
    assert re.fullmatch(r"case_\d{13}_[0-9a-f]{8}", new_case_id())


def test_pattern_recompute_running_mean() -> None:
    pattern = DiagnosticPattern(
        pattern_id="p",
        category=QueryCategory.ENTITY_STATUS,
        entity_type=EntityType.OFFER,
        environment=Environment.STAGING,
        common_tools=["log_search"],
        success_rate=0.5,
        usage_count=1,
    )

    updated = record_outcome(pattern, _case(tools_used=["entity_history"]), is_success=False)

    assert updated.success_rate == 0.25
    assert updated.usage_count == 2
    assert updated.common_tools == ["log_search", "entity_history"]


def test_first_case_creates_pattern() -> None:
    created = record_outcome(None, _case(), is_success=True)

    assert created.pattern_id == "ENTITY_STATUS_offer_staging"
    assert created.success_rate == 1.0
    assert created.usage_count == 1


def test_store_case_from_state_writes_case_and_pattern() -> None:
    store = InMemoryCaseStore()
    memory = CaseMemory(store)

    case_id = asyncio.run(memory.store_case_from_state(_turn_state()))

    case = store.cases[case_id]
    assert case.tools_used == ["entity_history", "log_search"]
    assert case.entity_ids == ["o-1"]
    pattern = store.patterns["ENTITY_STATUS_offer_staging"]
    assert pattern.usage_count == 1
    assert pattern.success_rate == 0.0


def test_store_is_skipped_without_category() -> None:
    store = InMemoryCaseStore()

    assert asyncio.run(CaseMemory(store).store_case_from_state(_turn_state(query_category=None))) is None
    assert store.cases == {}


def test_pattern_failure_keeps_the_case() -> None:
    class BrokenPatterns(InMemoryCaseStore):
        async def store_pattern(self, pattern):
            raise ConnectionError("pattern write failed")

    store = BrokenPatterns()

    case_id = asyncio.run(CaseMemory(store).store_case_from_state(_turn_state()))

    assert case_id in store.cases


def test_retrieval_is_exact_match_most_recent_first() -> None:
    store = InMemoryCaseStore()
    store.cases = {
        "old": _case("old", minutes_ago=30),
        "new": _case("new", minutes_ago=1),
        "prod": _case("prod", environment=Environment.PRODUCTION),
        "campaign": _case("campaign", entity_type=EntityType.CAMPAIGN),
    }

    found = asyncio.run(CaseMemory(store).retrieve_similar_cases(
        QueryCategory.ENTITY_STATUS, EntityType.OFFER, Environment.STAGING,
    ))

    assert [c.case_id for c in found] == ["new", "old"]


def test_semantic_index_hits_come_first_and_errors_fall_back() -> None:
    store = InMemoryCaseStore()
    store.cases = {"a": _case("a", minutes_ago=5), "b": _case("b", minutes_ago=1)}

    index = Mock()
    index.search.return_value = ["a"]
    memory = CaseMemory(store, index)
    found = asyncio.run(memory.retrieve_similar_cases(
        QueryCategory.ENTITY_STATUS, EntityType.OFFER, Environment.STAGING, query="is o-1 live?",
    ))
    assert [c.case_id for c in found] == ["a"]

    index.search.side_effect = RuntimeError("index offline")
    found = asyncio.run(memory.retrieve_similar_cases(
        QueryCategory.ENTITY_STATUS, EntityType.OFFER, Environment.STAGING, query="is o-1 live?",
    ))
    assert [c.case_id for c in found] == ["b", "a"]


def test_feedback_merges_per_key() -> None:
    store = InMemoryCaseStore()
    store.cases["c"] = _case("c", message_feedbacks={"f1": MessageFeedback(type=FeedbackType.POSITIVE)})
    memory = CaseMemory(store)

    ok = asyncio.run(memory.update_case_with_feedback(
        "c", {"f2": MessageFeedback(type=FeedbackType.NEGATIVE, comment="wrong offer")}, reward=-1.0,
    ))

    case = store.cases["c"]
    assert ok is True
    assert set(case.message_feedbacks) == {"f1", "f2"}
    assert case.overall_rl_reward == -1.0


def test_feedback_without_reward_keeps_reward() -> None:
    store = InMemoryCaseStore()
    store.cases["c"] = _case("c", reward=1.0)

    asyncio.run(CaseMemory(store).update_case_with_feedback("c", {"f": MessageFeedback(type="neutral")}))

    assert store.cases["c"].overall_rl_reward == 1.0


def test_feedback_for_missing_case_fails_softly() -> None:
    ok = asyncio.run(CaseMemory(InMemoryCaseStore()).update_case_with_feedback(
        "nope", {"f": MessageFeedback(type=FeedbackType.POSITIVE)},
    ))

    assert ok is False


def test_case_serializes_with_wire_field_names() -> None:
    payload = _case().model_dump(mode="json", by_alias=True)

    assert {"caseId", "entityType", "entityIds", "userQuery", "toolsUsed", "finalSummary",
            "overallRlReward", "messageFeedbacks"} <= set(payload)
    assert payload["category"] == "ENTITY_STATUS"
