"""Offer analysis: storefront price checks and catalog vs offer-service comparison."""

from __future__ import annotations

from diag_agent.evidence.models import CatalogOffer, CurrencyAmount, OfferPrice, ServiceOffer

NO_PRICE_EVIDENCE = "Could not retrieve offer price details for analysis."


def _money(price: CurrencyAmount) -> str:
    text = f"{price.amount} {price.iso_formatted_currency}".strip()
    if price.billing_period:
        text += f" / {price.billing_period}"
    return text


def analyze_offer_prices(prices: list[OfferPrice]) -> str:
    if not prices:
        return NO_PRICE_EVIDENCE

    lines = ["Offer price analysis:"]
    for price in prices:
        lines.append(f"- Offer `{price.offer_id}`:")
        if price.retail_price and price.retail_price.amount is not None:
            lines.append(f"  Retail Price: {_money(price.retail_price)}")
        else:
            lines.append("  Retail Price: Not available.")

        if price.promotional_prices:
            lines.append("  Promotional Prices:")
            for promo in price.promotional_prices:
                phase = f" ({promo.phase_type})" if promo.phase_type else ""
                lines.append(f"    - {_money(promo)}{phase}")
        else:
            lines.append("  No promotional prices found.")

        if price.package_prices:
            lines.append("  Package Prices:")
            for pkg in price.package_prices:
                lines.append(f"    - Package ID: {pkg.package_id}")
                if pkg.retail_price:
                    lines.append(f"      Package Retail: {_money(pkg.retail_price)}")
                if pkg.promotional_prices:
                    promos = ", ".join(_money(p) for p in pkg.promotional_prices)
                    lines.append(f"      Package Promotions: {promos}")
        else:
            lines.append("  No package prices found.")

        if not price.has_any_price:
            lines.append(f"  Overall Status for {price.offer_id}: **Missing Price Information**")
    return "\n".join(lines)


def service_price_summary(offer: ServiceOffer) -> str:
    if not offer.pricing:
        return "No pricing information available."
    parts = []
    for price in offer.pricing:
        text = f"{price.amount} {price.currency}"
        if price.billing_period:
            text += f" / {price.billing_period}"
        if price.discount_length:
            text += f" for {price.discount_length} {price.discount_unit}"
        if price.reason:
            text += f" (Reason: {price.reason})"
        parts.append(text)
    return "; ".join(parts)


def catalog_price_summary(offer: CatalogOffer) -> str:
    if offer.offer_type == "Offer3PP":
        return "Third-party (3PP) offer; pricing is handled by the partner."
    if offer.offer_type == "OfferIAP":
        return f"In-app (IAP) offer. Billing Frequency: {offer.billing_frequency or 'N/A'}"

    parts = []
    if offer.initial_price is not None and offer.currency:
        head = f"Initial Price: {offer.initial_price / 100} {offer.currency}"
        if offer.billing_frequency:
            head += f" / {offer.billing_frequency}"
        parts.append(head)
    for product in offer.offer_products:
        amount = product.price_amount / 100 if product.price_amount is not None else "N/A"
        parts.append(f"{product.product_name or product.product_id}: {amount} {product.currency or 'N/A'}")
    return "; ".join(parts) or "No pricing information available."


def compare_offers(offer_id: str, service: ServiceOffer | None, catalog: CatalogOffer | None) -> str:
    """Report discrepancies between the two offer systems for one id."""
    if service is None and catalog is None:
        return f"No offer data found in either the catalog or the offer service for `{offer_id}`; nothing to compare."

    if catalog is None:
        return (
            f"Only offer service data found for `{offer_id}` (name: \"{service.name}\").\n"
            f"Offer service pricing: [{service_price_summary(service)}]\n"
            f"Offer service products: {', '.join(service.product_ids) or 'none'}"
        )
    if service is None:
        return (
            f"Only catalog data found for `{offer_id}` (name: \"{catalog.name}\").\n"
            f"Catalog pricing: [{catalog_price_summary(catalog)}]\n"
            f"Catalog products: {', '.join(catalog.product_ids) or 'none'}"
        )

    lines = [f"Comparison for offer `{offer_id}`:"]
    if service.name != catalog.name:
        lines.append(f"- Name Mismatch: offer service \"{service.name}\" vs catalog \"{catalog.name}\"")
    else:
        lines.append(f"- Names Match: \"{service.name}\"")

    service_price = service_price_summary(service)
    catalog_price = catalog_price_summary(catalog)
    if catalog.externally_priced:
        lines.append(f"- Pricing comparison is not applicable for {catalog.offer_type} offers; it is managed externally.")
        lines.append(f"  - Offer service pricing: [{service_price}]")
    else:
        lines.append(f"- Offer service pricing: [{service_price}]")
        lines.append(f"- Catalog pricing: [{catalog_price}]")

    missing_in_catalog = [p for p in service.product_ids if p not in set(catalog.product_ids)]
    missing_in_service = [p for p in catalog.product_ids if p not in set(service.product_ids)]
    if not missing_in_catalog and not missing_in_service:
        lines.append(f"- Product IDs are identical. Total: {len(set(service.product_ids))} products.")
    else:
        lines.append("- Product ID Discrepancies:")
        if missing_in_catalog:
            lines.append(f"  - In offer service but NOT in catalog: {', '.join(missing_in_catalog)}")
        if missing_in_service:
            lines.append(f"  - In catalog but NOT in offer service: {', '.join(missing_in_service)}")
    return "\n".join(lines)
