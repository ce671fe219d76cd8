"""Evidence records returned by the backend clients."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class LogRecord(BaseModel):
    """One log event from the log search backend."""

    id: str = ""
    status: str = ""
    service: str = ""
    message: str = ""
    exception: str = ""
    timestamp: str = ""
    host: str = ""
    tags: list[str] = []
    attributes: dict = {}


class FieldChange(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    field_name: str = Field(alias="fieldName")
    old_value: str | None = Field(alias="oldValue", default=None)
    new_value: str | None = Field(alias="newValue", default=None)


class VersionDiff(BaseModel):
    """Field-level differences between two consecutive versions of an entity."""

    model_config = ConfigDict(populate_by_name=True)

    entity_id: str = Field(alias="entityId", default="")
    from_version: int | None = Field(alias="fromVersion", default=None)
    to_version: int | None = Field(alias="toVersion", default=None)
    author: str = "unknown"
    datetime: str = ""
    differences: list[FieldChange] = []


# ── Offer catalog (system A) ───────────────────────────────────────


class CatalogOfferProduct(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(alias="productId")
    product_name: str | None = Field(alias="productName", default=None)
    price_amount: int | None = Field(alias="priceAmount", default=None)
    currency: str | None = None


class CatalogOffer(BaseModel):
    """Offer as configured in the authoring catalog.

    Amounts are in minor currency units. ``offer_type`` is the GraphQL
    typename: ``OfferD2C`` for directly sold offers, ``Offer3PP`` and
    ``OfferIAP`` for partner and in-app offers priced elsewhere.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str = ""
    offer_type: str = Field(alias="offerType", default="")
    status: str | None = None
    start_date: str | None = Field(alias="startDate", default=None)
    end_date: str | None = Field(alias="endDate", default=None)
    currency: str | None = None
    initial_price: int | None = Field(alias="initialPrice", default=None)
    billing_frequency: str | None = Field(alias="billingFrequency", default=None)
    product_ids: list[str] = Field(alias="productIds", default=[])
    offer_products: list[CatalogOfferProduct] = Field(alias="offerProducts", default=[])

    @property
    def externally_priced(self) -> bool:
        return self.offer_type in ("Offer3PP", "OfferIAP")


# ── Offer service (system B) ───────────────────────────────────────


class ServicePrice(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount: float | None = None
    currency: str | None = None
    billing_period: str | None = Field(alias="billingPeriod", default=None)
    reason: str | None = None
    discount_length: int | None = Field(alias="discountLength", default=None)
    discount_unit: str | None = Field(alias="discountUnit", default=None)


class ServiceOffer(BaseModel):
    """Offer as served to storefronts by the offer service."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str = ""
    product_ids: list[str] = Field(alias="productIds", default=[])
    pricing: list[ServicePrice] = []
    package_ids: list[str] = Field(alias="packageIds", default=[])
    labels: list[str] = []


# ── Pricing ────────────────────────────────────────────────────────


class CurrencyAmount(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount: float | None = None
    iso_formatted_currency: str = Field(alias="isoFormattedCurrency", default="")
    billing_period: str | None = Field(alias="billingPeriod", default=None)


class PromotionalPrice(CurrencyAmount):
    phase_type: str | None = Field(alias="phaseType", default=None)
    billing_frequency: int | None = Field(alias="billingFrequency", default=None)


class PackagePrice(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    package_id: str = Field(alias="packageId", default="")
    retail_price: CurrencyAmount | None = Field(alias="retailPrice", default=None)
    promotional_prices: list[PromotionalPrice] = Field(alias="promotionalPrices", default=[])


class OfferPrice(BaseModel):
    """Storefront price resolution for one offer."""

    model_config = ConfigDict(populate_by_name=True)

    offer_id: str = Field(alias="offerId", default="")
    retail_price: CurrencyAmount | None = Field(alias="retailPrice", default=None)
    promotional_prices: list[PromotionalPrice] = Field(alias="promotionalPrices", default=[])
    package_prices: list[PackagePrice] = Field(alias="packagePrices", default=[])

    @property
    def has_any_price(self) -> bool:
        if self.retail_price and self.retail_price.amount is not None:
            return True
        if self.promotional_prices:
            return True
        return any(p.retail_price and p.retail_price.amount is not None for p in self.package_prices)
