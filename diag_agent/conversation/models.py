"""Domain enumerations and feedback records shared by every stage."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from diag_agent.errors import UnroutableEnvironmentError


class QueryCategory(str, Enum):
    ENTITY_STATUS = "ENTITY_STATUS"
    UI_ISSUE = "UI_ISSUE"
    DATA_INCONSISTENCY = "DATA_INCONSISTENCY"
    DATA_MAPPING = "DATA_MAPPING"
    ENTITY_CONFIGURATION = "ENTITY_CONFIGURATION"
    OFFER_PRICE = "OFFER_PRICE"
    SYSTEM_BEHAVIOR = "SYSTEM_BEHAVIOR"
    GENERAL_QUESTION = "GENERAL_QUESTION"
    UNKNOWN_CATEGORY = "UNKNOWN_CATEGORY"


class EntityType(str, Enum):
    CAMPAIGN = "campaign"
    OFFER = "offer"
    PRODUCT = "product"
    SKU = "sku"
    GENERAL = "general"
    UNKNOWN = "unknown"


class Environment(str, Enum):
    PRODUCTION = "production"
    STAGING = "staging"
    DEVELOPMENT = "development"
    UNKNOWN = "unknown"


_BACKEND_TIERS = {
    Environment.PRODUCTION: "prod",
    Environment.STAGING: "qa",
    Environment.DEVELOPMENT: "dev",
}


def backend_tier(environment: Environment | str | None) -> str:
    """Map an environment to the tier name backends are deployed under.

    ``unknown`` (or an unset environment) has no tier; routing it anywhere
    would silently query production, so it raises instead.
    """
    try:
        return _BACKEND_TIERS[Environment(environment)]
    except (KeyError, ValueError):
        raise UnroutableEnvironmentError(environment) from None


class FeedbackType(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class MessageFeedback(BaseModel):
    """A single feedback event attached to one assistant message."""

    model_config = ConfigDict(populate_by_name=True)

    type: FeedbackType
    comment: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    feedback_source: str | None = Field(alias="feedbackSource", default=None)
