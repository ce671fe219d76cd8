"""Entity history tool: version diffs from the data manager history API."""

from __future__ import annotations

import logging

import httpx

from diag_agent.config import settings
from diag_agent.conversation.models import EntityType, Environment, backend_tier
from diag_agent.evidence.models import VersionDiff

logger = logging.getLogger("diag_agent.evidence.tools")

_HISTORY_PATHS = {
    EntityType.CAMPAIGN: ("campaign", "campaignId"),
    EntityType.OFFER: ("offer", "offerId"),
    EntityType.SKU: ("sku", "skuId"),
}


class EntityHistoryClient:
    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._http = httpx.AsyncClient(timeout=settings.backend_http_timeout_seconds, transport=transport)

    async def close(self) -> None:
        await self._http.aclose()

    async def fetch_history(
        self,
        entity_type: EntityType,
        entity_id: str,
        environment: Environment,
        limit: int | None = None,
    ) -> list[VersionDiff]:
        """Fetch the most recent version diffs for one entity."""
        try:
            path, param = _HISTORY_PATHS[EntityType(entity_type)]
        except KeyError:
            raise ValueError(f"Entity history is not available for entity type {entity_type!r}") from None

        base = settings.history_url_template.format(tier=backend_tier(environment))
        resp = await self._http.get(f"{base}/{path}", params={param: entity_id})
        resp.raise_for_status()

        versions = resp.json().get("versions", [])
        diffs = [VersionDiff.model_validate({**v, "entityId": entity_id}) for v in versions]
        return diffs[: limit or settings.history_limit]
