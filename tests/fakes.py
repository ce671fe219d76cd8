"""Test doubles shared by the test modules."""

from __future__ import annotations

import json

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage
from langchain_core.outputs import ChatGeneration, ChatResult

from diag_agent.evidence.fetcher import EvidenceFetcher


class PartsChatModel(BaseChatModel):
    """Answers every call with a fixed list of content parts."""

    parts: list

    @property
    def _llm_type(self) -> str:
        return "fake-parts"

    def _generate(self, messages, stop=None, run_manager=None, **kwargs) -> ChatResult:
        return ChatResult(generations=[ChatGeneration(message=AIMessage(content=self.parts))])


class FailingChatModel(BaseChatModel):
    @property
    def _llm_type(self) -> str:
        return "fake-failing"

    def _generate(self, messages, stop=None, run_manager=None, **kwargs) -> ChatResult:
        raise RuntimeError("model unavailable")


def extraction_json(**fields) -> str:
    payload = {
        "category": "ENTITY_STATUS",
        "entity_ids": [],
        "entity_type": "unknown",
        "environment": "unknown",
        "time_range": None,
        "initial_response": "Okay, I'll look into this.",
    }
    payload.update(fields)
    return json.dumps(payload)


class FakeLogs:
    def __init__(self, records=None, error: Exception | None = None) -> None:
        self.records = records or []
        self.error = error
        self.calls = []

    async def search(self, entity_ids, time_range, query=""):
        self.calls.append((list(entity_ids), time_range, query))
        if self.error:
            raise self.error
        return self.records


class FakeHistory:
    def __init__(self, diffs=None, error: Exception | None = None) -> None:
        self.diffs = diffs or {}
        self.error = error
        self.calls = []

    async def fetch_history(self, entity_type, entity_id, environment, limit=None):
        self.calls.append((entity_type, entity_id, environment))
        if self.error:
            raise self.error
        return self.diffs.get(entity_id, [])


class FakeCatalog:
    def __init__(self, offers=None) -> None:
        self.offers = offers or {}
        self.calls = []

    async def fetch_offer(self, offer_id, environment):
        self.calls.append((offer_id, environment))
        return self.offers.get(offer_id)


class FakeOfferService:
    def __init__(self, offers=None) -> None:
        self.offers = offers or []
        self.calls = []

    async def fetch_offers(self, offer_ids, environment):
        self.calls.append((list(offer_ids), environment))
        return [o for o in self.offers if o.id in offer_ids]


class FakePricing:
    def __init__(self, prices=None) -> None:
        self.prices = prices or {}
        self.calls = []

    async def fetch_offer_price(self, offer_id, environment):
        self.calls.append((offer_id, environment))
        return self.prices[offer_id]


def make_fetcher(logs=None, history=None, catalog=None, offer_service=None, pricing=None, timeout=5.0):
    return EvidenceFetcher(
        logs or FakeLogs(),
        history or FakeHistory(),
        catalog or FakeCatalog(),
        offer_service or FakeOfferService(),
        pricing or FakePricing(),
        timeout=timeout,
    )
