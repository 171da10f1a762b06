"""Cylinder deposit lookup by capacity tier."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Mapping, Optional
import logging

from cylinderops.config import Settings, get_settings
from cylinderops.utils import quantize_money, to_decimal

if TYPE_CHECKING:
    from cylinderops.pricing.resolvers import DepositRateResolver


logger = logging.getLogger(__name__)


def nearest_capacity_tier(tiers: Mapping[Decimal, object], capacity: Decimal) -> Optional[Decimal]:
    """Exact tier if configured, else the numerically closest one.

    Ties go to the smaller tier.
    """
    candidates = [tier for tier in tiers if tier > 0]
    if not candidates:
        return None
    if capacity in tiers:
        return capacity
    return min(candidates, key=lambda tier: (abs(tier - capacity), tier))


def resolve_deposit_amount(
    resolver: "DepositRateResolver",
    capacity: Optional[Decimal],
    settings: Settings | None = None,
) -> Decimal:
    """Per-unit deposit for a cylinder of the given capacity.

    Falls back to the configured default-by-capacity table, then to the global
    default. Fallbacks are data-quality problems and are logged as warnings.
    """
    settings = settings or get_settings()
    capacity_value = to_decimal(capacity) if capacity is not None else None

    if capacity_value is not None and capacity_value > 0:
        quote = resolver.get_rate(capacity_value)
        if quote is not None:
            return quantize_money(quote.deposit_amount)

        defaults = {to_decimal(tier): to_decimal(amount) for tier, amount in settings.default_deposit_by_capacity.items()}
        if capacity_value in defaults:
            logger.warning(
                "Data quality: no deposit rate configured for capacity %s; using default table amount %s",
                capacity_value,
                defaults[capacity_value],
            )
            return quantize_money(defaults[capacity_value])

    logger.warning(
        "Data quality: no deposit rate or default for capacity %s; using global default %s",
        capacity_value,
        settings.global_default_deposit,
    )
    return quantize_money(settings.global_default_deposit)
