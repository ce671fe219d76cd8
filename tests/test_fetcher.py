from __future__ import annotations

import asyncio

import pytest
from fakes import FakeCatalog, FakeHistory, FakeLogs, FakeOfferService, FakePricing, make_fetcher
from langchain_core.messages import HumanMessage, SystemMessage

from diag_agent.conversation.messages import status_message
from diag_agent.conversation.models import EntityType, Environment, QueryCategory
from diag_agent.errors import UnroutableEnvironmentError
from diag_agent.evidence.fetcher import FetchRequest, merge_patches
from diag_agent.evidence.models import CatalogOffer, FieldChange, LogRecord, OfferPrice, ServiceOffer, VersionDiff


def _state(**fields) -> dict:
    base = {
        "messages": [SystemMessage(content="brief"), HumanMessage(content="look at X")],
        "entity_ids": ["X"],
        "entity_type": EntityType.CAMPAIGN,
        "environment": Environment.PRODUCTION,
        "time_range": "24h",
        "query_category": QueryCategory.ENTITY_STATUS,
    }
    base.update(fields)
    return base


def _diff(entity_id: str) -> VersionDiff:
    return VersionDiff(
        entity_id=entity_id,
        author="alice",
        datetime="2024-06-01T10:00:00Z",
        differences=[FieldChange(field_name="status", old_value="active", new_value="archived")],
    )


def test_failing_log_search_does_not_hide_history() -> None:
    fetcher = make_fetcher(
        logs=FakeLogs(error=ConnectionError("log backend down")),
        history=FakeHistory(diffs={"X": [_diff("X")]}),
    )

    patch = asyncio.run(fetcher.fetch(_state()))

    assert len(patch["entity_history"]) == 1
    assert "logs" not in patch
    assert patch["fetch_status"]["logs"].startswith("Could not retrieve logs")
    assert "log backend down" in patch["fetch_status"]["logs"]
    assert any("Could not retrieve logs" in m.content for m in patch["messages"])


def test_slow_operation_times_out_without_blocking_others() -> None:
    class SlowLogs(FakeLogs):
        async def search(self, entity_ids, time_range, query=""):
            await asyncio.sleep(5)
            return []

    fetcher = make_fetcher(logs=SlowLogs(), history=FakeHistory(diffs={"X": [_diff("X")]}), timeout=0.05)

    patch = asyncio.run(fetcher.fetch(_state()))

    assert "timed out" in patch["fetch_status"]["logs"]
    assert patch["entity_history"]


def test_campaign_never_touches_offer_backends() -> None:
    catalog, offer_service, pricing = FakeCatalog(), FakeOfferService(), FakePricing()
    fetcher = make_fetcher(catalog=catalog, offer_service=offer_service, pricing=pricing)

    patch = asyncio.run(fetcher.fetch(_state(query_category=QueryCategory.OFFER_PRICE)))

    assert catalog.calls == [] and offer_service.calls == [] and pricing.calls == []
    assert patch["tools_used"] == ["entity_history", "log_search"]


def test_offer_price_query_selects_every_offer_operation() -> None:
    request = FetchRequest(
        entity_ids=("o1", "o2"),
        entity_type=EntityType.OFFER,
        environment=Environment.STAGING,
        query_category=QueryCategory.OFFER_PRICE,
        turn=1,
    )

    names = [op.status_key for op in make_fetcher().plan(request)]

    assert names == [
        "entity_history",
        "logs",
        "catalog_offer:o1",
        "catalog_offer:o2",
        "offer_service",
        "offer_price:o1",
        "offer_price:o2",
    ]


def test_offer_status_query_skips_pricing() -> None:
    request = FetchRequest(entity_ids=("o1",), entity_type=EntityType.OFFER, environment=Environment.STAGING,
                           query_category=QueryCategory.ENTITY_STATUS)

    names = [op.name for op in make_fetcher().plan(request)]

    assert "offer_price" not in names
    assert names.count("catalog_offer") == 1


def test_offer_evidence_is_concatenated() -> None:
    catalog = FakeCatalog(offers={"o1": CatalogOffer(id="o1", name="Basic"), "o2": CatalogOffer(id="o2", name="Ads")})
    offer_service = FakeOfferService(offers=[ServiceOffer(id="o1", name="Basic")])
    pricing = FakePricing(prices={"o1": OfferPrice(offer_id="o1"), "o2": OfferPrice(offer_id="o2")})
    fetcher = make_fetcher(catalog=catalog, offer_service=offer_service, pricing=pricing)

    patch = asyncio.run(fetcher.fetch(_state(
        entity_ids=["o1", "o2"],
        entity_type=EntityType.OFFER,
        environment=Environment.STAGING,
        query_category=QueryCategory.OFFER_PRICE,
    )))

    assert [o.id for o in patch["catalog_offers"]] == ["o1", "o2"]
    assert [o.id for o in patch["service_offers"]] == ["o1"]
    assert [p.offer_id for p in patch["offer_prices"]] == ["o1", "o2"]
    assert "No record for: o2" in patch["analysis_results"]["offer_service"]
    assert offer_service.calls == [(["o1", "o2"], Environment.STAGING)]


def test_repeated_fetch_does_not_duplicate_messages() -> None:
    fetcher = make_fetcher(logs=FakeLogs(records=[LogRecord(message="boom", status="error")]))
    state = _state()

    first = asyncio.run(fetcher.fetch(state))
    state["messages"] = state["messages"] + first["messages"]
    second = asyncio.run(fetcher.fetch(state))

    assert first["messages"]
    assert second["messages"] == []


def test_partial_history_failure_is_annotated() -> None:
    class PartialHistory(FakeHistory):
        async def fetch_history(self, entity_type, entity_id, environment, limit=None):
            if entity_id == "bad":
                raise RuntimeError("404 not found")
            return [_diff(entity_id)]

    fetcher = make_fetcher(history=PartialHistory())

    patch = asyncio.run(fetcher.fetch(_state(entity_ids=["good", "bad"])))

    assert [d.entity_id for d in patch["entity_history"]] == ["good"]
    assert "Could not retrieve entity history for `bad`" in patch["fetch_status"]["entity_history"]


def test_no_ids_fetches_nothing() -> None:
    logs = FakeLogs()
    fetcher = make_fetcher(logs=logs)

    patch = asyncio.run(fetcher.fetch(_state(entity_ids=[])))

    assert logs.calls == []
    assert "No entity ids" in patch["messages"][0].content


def test_unknown_environment_is_a_programming_error() -> None:
    with pytest.raises(UnroutableEnvironmentError):
        asyncio.run(make_fetcher().fetch(_state(environment=Environment.UNKNOWN)))


def test_merge_patches_rules() -> None:
    patches = [
        {"logs": [LogRecord(message="a")], "fetch_status": {"logs": "ok"}},
        {"logs": [LogRecord(message="b")], "catalog_offers": [CatalogOffer(id="1")]},
        {"catalog_offers": [CatalogOffer(id="2")], "analysis_results": {"k": "v"},
         "messages": [HumanMessage(content="echo"), status_message("done", "op:1:x")]},
    ]

    merged = merge_patches([], patches)

    assert [r.message for r in merged["logs"]] == ["b"]
    assert [o.id for o in merged["catalog_offers"]] == ["1", "2"]
    assert merged["fetch_status"] == {"logs": "ok"}
    assert merged["analysis_results"] == {"k": "v"}
    assert [m.content for m in merged["messages"]] == ["done"]


def test_merge_patches_rejects_unknown_fields() -> None:
    with pytest.raises(ValueError):
        merge_patches([], [{"final_summary": "nope"}])
