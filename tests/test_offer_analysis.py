from __future__ import annotations

from diag_agent.analysis.offers import NO_PRICE_EVIDENCE, analyze_offer_prices, compare_offers
from diag_agent.evidence.models import CatalogOffer, CurrencyAmount, OfferPrice, ServiceOffer, ServicePrice


def test_missing_prices_are_flagged() -> None:
    text = analyze_offer_prices([OfferPrice(offer_id="o-1")])

    assert "Retail Price: Not available." in text
    assert "**Missing Price Information**" in text


def test_retail_price_is_reported() -> None:
    price = OfferPrice(
        offer_id="o-1",
        retail_price=CurrencyAmount(amount=9.99, iso_formatted_currency="USD", billing_period="MONTH"),
    )

    text = analyze_offer_prices([price])

    assert "Retail Price: 9.99 USD / MONTH" in text
    assert "Missing Price Information" not in text


def test_no_price_evidence() -> None:
    assert analyze_offer_prices([]) == NO_PRICE_EVIDENCE


def test_comparison_reports_name_and_product_discrepancies() -> None:
    service = ServiceOffer(id="o-1", name="Basic", product_ids=["p1", "p2"],
                           pricing=[ServicePrice(amount=9.99, currency="USD", billing_period="MONTH")])
    catalog = CatalogOffer(id="o-1", name="Basic Plan", offer_type="OfferD2C", product_ids=["p1", "p3"],
                           initial_price=999, currency="USD")

    text = compare_offers("o-1", service, catalog)

    assert 'Name Mismatch: offer service "Basic" vs catalog "Basic Plan"' in text
    assert "In offer service but NOT in catalog: p2" in text
    assert "In catalog but NOT in offer service: p3" in text
    assert "Catalog pricing: [Initial Price: 9.99 USD]" in text


def test_externally_priced_offers_are_not_compared() -> None:
    service = ServiceOffer(id="o-1", name="Partner", product_ids=["p1"])
    catalog = CatalogOffer(id="o-1", name="Partner", offer_type="Offer3PP", product_ids=["p1"])

    text = compare_offers("o-1", service, catalog)

    assert "not applicable for Offer3PP offers" in text
    assert "Product IDs are identical. Total: 1 products." in text


def test_missing_from_both_systems() -> None:
    assert "nothing to compare" in compare_offers("o-1", None, None)
