"""
Pricing Service for PrintHub

Computes print job cost from page count, copies, color mode, paper quality
and a shop's pricing rules.
"""

import math
import uuid
from dataclasses import dataclass, asdict
from typing import Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import delete
from sqlalchemy.future import select

from printhub.core.config import get_settings
from printhub.models import PricingRule
import logging

settings = get_settings()
logger = logging.getLogger(__name__)

PREMIUM_QUALITY_MULTIPLIER = 1.5


@dataclass
class PricingRuleData:
    service_type: str
    price_per_page: float
    color_multiplier: float
    minimum_charge: float
    bulk_discount_threshold: int
    bulk_discount_percentage: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class PrintJobDetails:
    pages: int
    copies: int
    color_type: str = "blackwhite"      # 'color' | 'blackwhite'
    paper_quality: str = "standard"     # 'standard' | 'premium'


def get_default_pricing_rules() -> List[PricingRuleData]:
    return [
        PricingRuleData(
            service_type="black_white",
            price_per_page=2.0,
            color_multiplier=1.0,
            minimum_charge=2.0,
            bulk_discount_threshold=100,
            bulk_discount_percentage=10.0,
        ),
        PricingRuleData(
            service_type="color",
            price_per_page=5.0,
            color_multiplier=2.0,
            minimum_charge=5.0,
            bulk_discount_threshold=50,
            bulk_discount_percentage=15.0,
        ),
    ]


def rule_from_row(row: PricingRule) -> PricingRuleData:
    """Convert a stored rule, filling nullable columns with neutral values."""
    return PricingRuleData(
        service_type=row.service_type,
        price_per_page=float(row.price_per_page or 0),
        color_multiplier=float(row.color_multiplier if row.color_multiplier is not None else 1.0),
        minimum_charge=float(row.minimum_charge or 0),
        bulk_discount_threshold=int(row.bulk_discount_threshold or 0),
        bulk_discount_percentage=float(row.bulk_discount_percentage or 0),
    )


def _round_currency(amount: float) -> float:
    # Half-up to the cent, matching what customers see on quotes
    return math.floor(amount * 100 + 0.5) / 100


def select_rule(color_type: str, rules: Iterable[PricingRuleData]) -> PricingRuleData:
    service_type = "color" if color_type == "color" else "black_white"
    for rule in rules:
        if rule.service_type == service_type:
            return rule

    defaults = get_default_pricing_rules()
    for rule in defaults:
        if rule.service_type == service_type:
            return rule
    return defaults[0]


def calculate_job_cost(details: PrintJobDetails, rules: Iterable[PricingRuleData]) -> float:
    """
    Calculate the cost of one print job.

    Pricing logic:
    - price per page = rule price × color multiplier (color only) × 1.5 (premium only)
    - total pages = pages × copies
    - bulk discount when total pages >= rule threshold
    - never below the rule's minimum charge

    Returns:
        Cost rounded to 2 decimals
    """
    rule = select_rule(details.color_type, rules)

    price_per_page = rule.price_per_page
    if details.color_type == "color":
        price_per_page *= rule.color_multiplier
    if details.paper_quality == "premium":
        price_per_page *= PREMIUM_QUALITY_MULTIPLIER

    total_pages = details.pages * details.copies
    total_cost = total_pages * price_per_page

    if total_pages >= rule.bulk_discount_threshold:
        total_cost -= total_cost * (rule.bulk_discount_percentage / 100)

    total_cost = max(total_cost, rule.minimum_charge)
    return _round_currency(total_cost)


def calculate_multiple_files_cost(
    files: Iterable[dict],
    details: PrintJobDetails,
    rules: Iterable[PricingRuleData]
) -> float:
    """Sum of per-file costs; each file is priced on its own page count."""
    rules = list(rules)
    total = 0.0
    for f in files:
        per_file = PrintJobDetails(
            pages=f.get("pages") or 1,
            copies=details.copies,
            color_type=details.color_type,
            paper_quality=details.paper_quality,
        )
        total += calculate_job_cost(per_file, rules)
    return _round_currency(total)


def format_currency(amount: float, symbol: Optional[str] = None) -> str:
    return f"{symbol or settings.CURRENCY_SYMBOL}{amount:.2f}"


async def get_pricing_rules(db: AsyncSession, shop_owner_id: uuid.UUID) -> List[PricingRuleData]:
    """
    Load a shop's pricing rules, falling back to defaults when the shop has
    none configured or the read fails.
    """
    try:
        result = await db.execute(
            select(PricingRule).where(PricingRule.shop_owner_id == shop_owner_id)
        )
        rows = result.scalars().all()
    except Exception as e:
        logger.error(f"Error fetching pricing rules for {shop_owner_id}: {e}")
        return get_default_pricing_rules()

    if not rows:
        return get_default_pricing_rules()
    return [rule_from_row(row) for row in rows]


async def replace_pricing_rules(
    db: AsyncSession,
    shop_owner_id: uuid.UUID,
    rules: List[dict]
) -> List[PricingRule]:
    """Delete the shop's rules and insert the submitted set."""
    await db.execute(delete(PricingRule).where(PricingRule.shop_owner_id == shop_owner_id))
    rows = [PricingRule(shop_owner_id=shop_owner_id, **rule) for rule in rules]
    db.add_all(rows)
    await db.commit()

    logger.info(f"Saved {len(rows)} pricing rules for shop {shop_owner_id}")
    return rows
