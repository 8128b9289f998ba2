"""Closed set of fact categories and their refresh profiles."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict

logger = logging.getLogger(__name__)

MIN_CADENCE_MINUTES = 15
MAX_CADENCE_MINUTES = 525_600


class FactCategory(str, Enum):
    """Kinds of time-varying value a fact can hold."""

    CRYPTO = "crypto"
    STOCK = "stock"
    FINANCIAL = "financial"
    WEATHER = "weather"
    DATE = "date"
    POPULATION = "population"
    SPORTS = "sports"
    NEWS = "news"
    TECHNOLOGY = "technology"
    SOCIAL = "social"
    OTHER = "other"

    @classmethod
    def parse(cls, value: object) -> "FactCategory":
        """Return the category for *value*, falling back to OTHER for unknown labels."""

        if isinstance(value, cls):
            return value
        label = str(value or "").strip().lower()
        try:
            return cls(label)
        except ValueError:
            logger.warning("Unknown fact category %r; treating as 'other'", value)
            return cls.OTHER


class ResolutionRoute(str, Enum):
    """Which family of data source the value resolution service should use."""

    MARKET_DATA = "market_data"
    WEATHER = "weather"
    CALENDAR = "calendar"
    RESEARCH = "research"


@dataclass(frozen=True, slots=True)
class CategoryProfile:
    """Static behaviour attached to a category."""

    category: FactCategory
    display_name: str
    default_cadence_minutes: int
    route: ResolutionRoute


_PROFILES: Dict[FactCategory, CategoryProfile] = {
    FactCategory.CRYPTO: CategoryProfile(FactCategory.CRYPTO, "Crypto", 60, ResolutionRoute.MARKET_DATA),
    FactCategory.STOCK: CategoryProfile(FactCategory.STOCK, "Finance", 240, ResolutionRoute.MARKET_DATA),
    FactCategory.FINANCIAL: CategoryProfile(FactCategory.FINANCIAL, "Finance", 240, ResolutionRoute.MARKET_DATA),
    FactCategory.WEATHER: CategoryProfile(FactCategory.WEATHER, "Weather", 180, ResolutionRoute.WEATHER),
    FactCategory.DATE: CategoryProfile(FactCategory.DATE, "Temporal", 1440, ResolutionRoute.CALENDAR),
    FactCategory.POPULATION: CategoryProfile(FactCategory.POPULATION, "Demographics", 43_200, ResolutionRoute.RESEARCH),
    FactCategory.SPORTS: CategoryProfile(FactCategory.SPORTS, "Sports", 120, ResolutionRoute.RESEARCH),
    FactCategory.NEWS: CategoryProfile(FactCategory.NEWS, "News", 360, ResolutionRoute.RESEARCH),
    FactCategory.TECHNOLOGY: CategoryProfile(FactCategory.TECHNOLOGY, "Tech", 720, ResolutionRoute.RESEARCH),
    FactCategory.SOCIAL: CategoryProfile(FactCategory.SOCIAL, "Social", 360, ResolutionRoute.RESEARCH),
    FactCategory.OTHER: CategoryProfile(FactCategory.OTHER, "General", 360, ResolutionRoute.RESEARCH),
}


def profile_for(category: FactCategory) -> CategoryProfile:
    """Return the profile registered for *category*."""

    return _PROFILES[category]


def clamp_cadence(minutes: object, category: FactCategory) -> int:
    """Return a cadence in minutes within the supported range.

    Missing or non-numeric cadences use the category default.
    """

    try:
        value = int(float(minutes))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return profile_for(category).default_cadence_minutes
    if value <= 0:
        return profile_for(category).default_cadence_minutes
    return max(MIN_CADENCE_MINUTES, min(MAX_CADENCE_MINUTES, value))
