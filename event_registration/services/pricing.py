"""Ticket price quotes from an event's pricing settings."""

from __future__ import annotations

from datetime import datetime

from event_registration.domain.errors import ValidationError
from event_registration.domain.models import Event, PriceQuote


def quote_price(
    event: Event, now: datetime, is_member: bool = False, quantity: int = 1
) -> PriceQuote:
    """Price *quantity* tickets bought at *now*.

    Early-bird pricing applies up to and including the deadline. The member
    discount comes off the unit price, then the best group discount the
    quantity qualifies for comes off the total.
    """
    if quantity < 1:
        raise ValidationError.single("quantity", "Quantity must be at least 1")

    pricing = event.pricing
    if pricing.is_free:
        return PriceQuote(
            event_id=event.id,
            quantity=quantity,
            currency=pricing.currency,
            unit_price=0,
            total=0,
        )

    unit_price = pricing.base_price or 0
    early_bird = (
        pricing.early_bird_price is not None
        and pricing.early_bird_deadline is not None
        and now <= pricing.early_bird_deadline
    )
    if early_bird:
        unit_price = pricing.early_bird_price

    member_discount = (pricing.member_discount or 0) if is_member else 0
    unit_price = unit_price * (100 - member_discount) / 100

    qualifying = [g.discount_percent for g in pricing.group_discounts if g.min_quantity <= quantity]
    group_discount = max(qualifying, default=0)
    total = unit_price * quantity * (100 - group_discount) / 100

    return PriceQuote(
        event_id=event.id,
        quantity=quantity,
        currency=pricing.currency,
        unit_price=round(unit_price, 2),
        early_bird_applied=early_bird,
        member_discount_percent=member_discount,
        group_discount_percent=group_discount,
        total=round(total, 2),
    )
