"""Public schema exports."""

from .auth import HealthLevel, HealthVerdict, ProbeResult, TokenInspection, TokenState
from .opportunity import (
    CrawlFilters,
    EnrichedOpportunity,
    Institution,
    Opportunity,
    OpportunityDetail,
    PageResult,
    ProductLine,
    Unit,
)

__all__ = [
    "CrawlFilters",
    "EnrichedOpportunity",
    "HealthLevel",
    "HealthVerdict",
    "Institution",
    "Opportunity",
    "OpportunityDetail",
    "PageResult",
    "ProbeResult",
    "ProductLine",
    "TokenInspection",
    "TokenState",
    "Unit",
]
