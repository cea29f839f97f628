"""Award sector vocabulary and judge expertise tags."""

from __future__ import annotations

from typing import Iterable

# purpose: single source of truth for sector names and the expertise tags judges declare
# status: active

FASHION = "Fashion"
INFORMATION_TECHNOLOGY = "Information Technology (IT)"
AGRIBUSINESS = "Agribusiness"
FOOD_BEVERAGE = "Food & Beverage"
LIGHT_MANUFACTURING = "Light Manufacturing"
CREATIVE_ENTERPRISE = "Creative Enterprise"
EMERGING_ENTERPRISE = "Emerging Enterprise Award"

SECTORS: tuple[str, ...] = (
    FASHION,
    INFORMATION_TECHNOLOGY,
    AGRIBUSINESS,
    FOOD_BEVERAGE,
    LIGHT_MANUFACTURING,
    CREATIVE_ENTERPRISE,
    EMERGING_ENTERPRISE,
)

EXPERTISE_TO_SECTOR: dict[str, str] = {
    "fashion": FASHION,
    "it": INFORMATION_TECHNOLOGY,
    "agribusiness": AGRIBUSINESS,
    "food_beverage": FOOD_BEVERAGE,
    "light_manufacturing": LIGHT_MANUFACTURING,
    "creative_enterprise": CREATIVE_ENTERPRISE,
    "nano_category": EMERGING_ENTERPRISE,
    "emerging_enterprise": EMERGING_ENTERPRISE,
}

WORKFLOW_STAGES: tuple[str, ...] = (
    "submitted",
    "pre_screening",
    "under_review",
    "shortlisted",
    "finalist",
    "winner",
    "rejected",
)

REVIEWABLE_STAGES = frozenset({"submitted", "under_review"})


def sectors_for_expertise(tags: Iterable[str]) -> frozenset[str]:
    """Resolve expertise tags to sector names.

    Tags that already name a sector are accepted as-is; unknown tags are dropped.
    """

    resolved: set[str] = set()
    for tag in tags or ():
        normalized = str(tag).strip()
        if normalized in SECTORS:
            resolved.add(normalized)
            continue
        sector = EXPERTISE_TO_SECTOR.get(normalized.lower())
        if sector:
            resolved.add(sector)
    return frozenset(resolved)
