"""Offer catalog tools: GraphQL lookups against the authoring catalog and the offer service."""

from __future__ import annotations

import logging

import httpx

from diag_agent.config import settings
from diag_agent.conversation.models import Environment, backend_tier
from diag_agent.evidence.models import CatalogOffer, CatalogOfferProduct, ServiceOffer, ServicePrice

logger = logging.getLogger("diag_agent.evidence.tools")

CATALOG_OFFER_QUERY = """
query GetOffer($offerId: ID!) {
  offer(id: $offerId) {
    __typename
    id
    name
    status
    startDate
    endDate
    products { id name }
    ... on OfferD2C {
      initialPrice
      billingFrequency
      currency { code }
      offerProducts {
        productId
        price { offerProductPriceAmount }
        initialPhase { currency { code } product { name } }
      }
    }
    ... on OfferIAP {
      billingFrequency
    }
  }
}
"""

SERVICE_OFFERS_QUERY = """
query GetOffers($offerFilters: [OfferFilter!]!) {
  offers(offerFilters: $offerFilters) {
    id
    name
    labels
    products { product { id } }
    packages { id }
    pricing {
      amount
      billingPeriod
      currency
      reason
      discountedDuration { length unit }
    }
  }
}
"""


class GraphQLError(RuntimeError):
    """The GraphQL endpoint answered with an ``errors`` payload."""


async def _graphql(http: httpx.AsyncClient, url: str, query: str, variables: dict, headers: dict) -> dict:
    resp = await http.post(url, json={"query": query, "variables": variables}, headers=headers)
    resp.raise_for_status()
    body = resp.json()
    if body.get("errors"):
        messages = "; ".join(e.get("message", "unknown error") for e in body["errors"])
        raise GraphQLError(messages)
    return body.get("data") or {}


def parse_catalog_offer(raw: dict) -> CatalogOffer:
    offer_products = []
    for op in raw.get("offerProducts") or []:
        phase = op.get("initialPhase") or {}
        offer_products.append(CatalogOfferProduct(
            product_id=op.get("productId", ""),
            product_name=(phase.get("product") or {}).get("name"),
            price_amount=(op.get("price") or {}).get("offerProductPriceAmount"),
            currency=(phase.get("currency") or {}).get("code"),
        ))

    return CatalogOffer(
        id=raw["id"],
        name=raw.get("name") or "",
        offer_type=raw.get("__typename") or "",
        status=raw.get("status"),
        start_date=raw.get("startDate"),
        end_date=raw.get("endDate"),
        currency=(raw.get("currency") or {}).get("code"),
        initial_price=raw.get("initialPrice"),
        billing_frequency=raw.get("billingFrequency"),
        product_ids=[p["id"] for p in raw.get("products") or [] if p.get("id")],
        offer_products=offer_products,
    )


def parse_service_offer(raw: dict) -> ServiceOffer:
    pricing = []
    for price in raw.get("pricing") or []:
        duration = price.get("discountedDuration") or {}
        pricing.append(ServicePrice(
            amount=price.get("amount"),
            currency=price.get("currency"),
            billing_period=price.get("billingPeriod"),
            reason=price.get("reason"),
            discount_length=duration.get("length"),
            discount_unit=duration.get("unit"),
        ))

    return ServiceOffer(
        id=raw["id"],
        name=raw.get("name") or "",
        product_ids=[
            p["product"]["id"] for p in raw.get("products") or [] if (p.get("product") or {}).get("id")
        ],
        pricing=pricing,
        package_ids=[p["id"] for p in raw.get("packages") or [] if p.get("id")],
        labels=raw.get("labels") or [],
    )


class OfferCatalogClient:
    """Per-offer lookups in the authoring catalog."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._http = httpx.AsyncClient(timeout=settings.backend_http_timeout_seconds, transport=transport)

    async def close(self) -> None:
        await self._http.aclose()

    async def fetch_offer(self, offer_id: str, environment: Environment) -> CatalogOffer | None:
        url = settings.catalog_url_template.format(tier=backend_tier(environment))
        headers = {"x-caller-client-id": settings.caller_client_id}
        if settings.catalog_api_token:
            headers["Authorization"] = f"Bearer {settings.catalog_api_token}"

        data = await _graphql(self._http, url, CATALOG_OFFER_QUERY, {"offerId": offer_id}, headers)
        raw = data.get("offer")
        if raw is None:
            logger.info("Catalog has no offer %s", offer_id)
            return None
        return parse_catalog_offer(raw)


class OfferServiceClient:
    """Batched offer lookups in the storefront offer service."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._http = httpx.AsyncClient(timeout=settings.backend_http_timeout_seconds, transport=transport)

    async def close(self) -> None:
        await self._http.aclose()

    async def fetch_offers(self, offer_ids: list[str], environment: Environment) -> list[ServiceOffer]:
        url = settings.offer_service_url_template.format(tier=backend_tier(environment))
        variables = {"offerFilters": [{"offerId": oid} for oid in offer_ids]}
        headers = {"x-caller-client-id": settings.caller_client_id}

        data = await _graphql(self._http, url, SERVICE_OFFERS_QUERY, variables, headers)
        offers = [parse_service_offer(o) for o in data.get("offers") or []]
        logger.info("Offer service returned %d of %d offers", len(offers), len(offer_ids))
        return offers
