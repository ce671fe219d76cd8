"""Pricing tool: storefront price resolution for a single offer."""

from __future__ import annotations

import httpx

from diag_agent.config import settings
from diag_agent.conversation.models import Environment, backend_tier
from diag_agent.evidence.models import OfferPrice


class PricingClient:
    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._http = httpx.AsyncClient(timeout=settings.backend_http_timeout_seconds, transport=transport)

    async def close(self) -> None:
        await self._http.aclose()

    async def fetch_offer_price(self, offer_id: str, environment: Environment) -> OfferPrice:
        url = settings.pricing_url_template.format(tier=backend_tier(environment))
        resp = await self._http.get(
            url,
            params={"offerId": offer_id, "storeFrontCountry": settings.storefront_country},
            headers={"x-dss-caller-client-id": settings.caller_client_id},
        )
        resp.raise_for_status()

        body = resp.json()
        if body.get("errors"):
            raise RuntimeError("; ".join(e.get("message", "unknown error") for e in body["errors"]))
        return OfferPrice.model_validate({**body, "offerId": offer_id})
