# planhub/services/vendor_filters.py
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from planhub.schemas.vendors import (
    AdvancedFilters,
    FilterResult,
    ScoredVendor,
    SortOption,
    UserProfile,
    VendorRecord,
)
from planhub.services.vendor_scoring import (
    channel_coverage,
    fits_tolerance,
    has_governance,
    integration_coverage,
    matches_segment,
    score_vendor,
)

logger = logging.getLogger(__name__)

COMPLEXITY_ORDER = {"light": 1, "medium": 2, "heavy": 3}

RELAXATION_MESSAGES = {
    1: "No vendors matched your search, so the search term was ignored.",
    2: "Some advanced filters were relaxed to show more options.",
    3: "Showing all vendors sorted by relevance. Try adjusting your filters.",
}


# =========================
# Hard filters
# =========================

def matches_search(vendor: VendorRecord, search: str) -> bool:
    term = search.strip().lower()
    if not term:
        return True
    if term in vendor.name.lower() or term in vendor.short_description.lower():
        return True
    if any(term in t.lower() for t in vendor.strength_tags):
        return True
    return any(term in i.lower() for i in vendor.integrations)


def matches_advanced(vendor: VendorRecord, advanced: AdvancedFilters) -> bool:
    # channels and integrations: at least one requested item must be offered
    if advanced.channels and channel_coverage(vendor, advanced.channels) == 0:
        return False
    if advanced.integrations and integration_coverage(vendor, advanced.integrations) == 0:
        return False
    if advanced.governance and not has_governance(vendor):
        return False
    return fits_tolerance(vendor, advanced.implementation_tolerance)


def _apply(
    vendors: Sequence[VendorRecord],
    profile: Optional[UserProfile],
    advanced: Optional[AdvancedFilters],
    search: Optional[str],
) -> List[VendorRecord]:
    out: List[VendorRecord] = []
    for v in vendors:
        if profile is not None and not matches_segment(v, profile):
            continue
        if advanced is not None and not matches_advanced(v, advanced):
            continue
        if search and not matches_search(v, search):
            continue
        out.append(v)
    return out


# =========================
# Filter with relaxation
# =========================

def filter_vendors(
    vendors: Sequence[VendorRecord],
    profile: UserProfile,
    advanced: Optional[AdvancedFilters] = None,
    search: Optional[str] = None,
) -> FilterResult:
    """
    Never returns an empty list for a non-empty catalog.

    Tiers: all filters -> without search -> without advanced filters ->
    whole catalog. The first tier with at least one vendor wins.
    """
    search = (search or "").strip() or None
    if advanced is not None and advanced.is_empty():
        advanced = None

    def scored(matched: List[VendorRecord]) -> List[ScoredVendor]:
        return [score_vendor(v, profile, advanced) for v in matched]

    matched = _apply(vendors, profile, advanced, search)
    if matched or not vendors:
        return FilterResult(vendors=scored(matched))

    dropped: List[str] = []
    tiers = (
        (1, "search", lambda: _apply(vendors, profile, advanced, None)),
        (2, "advanced_filters", lambda: _apply(vendors, profile, None, None)),
        (3, "company_size", lambda: list(vendors)),
    )
    active = {"search": search is not None, "advanced_filters": advanced is not None, "company_size": True}

    for level, criterion, run in tiers:
        if active[criterion]:
            dropped.append(criterion)
        matched = run()
        if matched:
            logger.info("Vendor filters relaxed to level %d (%s)", level, ", ".join(dropped))
            return FilterResult(
                vendors=scored(matched),
                relaxed=True,
                relaxation_level=level,
                relaxed_criteria=dropped,
                message=RELAXATION_MESSAGES[level],
            )

    # unreachable for a non-empty catalog
    return FilterResult(vendors=[])


# =========================
# Sort
# =========================

_SORT_KEYS: Dict[str, Callable[[ScoredVendor], Any]] = {
    "recommended": (lambda s: -s.score),
    "rating": (lambda s: -s.vendor.average_rating()),
    "name": (lambda s: s.vendor.name.casefold()),
    "complexity": (lambda s: COMPLEXITY_ORDER.get(s.vendor.complexity, 2)),
}


def sort_vendors(scored: Sequence[ScoredVendor], sort_option: SortOption = "recommended") -> List[ScoredVendor]:
    """Returns a new list; ties keep catalog order."""
    key = _SORT_KEYS.get(sort_option)
    if key is None:
        return list(scored)
    return sorted(scored, key=key)


def filter_and_sort(
    vendors: Sequence[VendorRecord],
    profile: UserProfile,
    advanced: Optional[AdvancedFilters] = None,
    search: Optional[str] = None,
    sort_option: SortOption = "recommended",
) -> FilterResult:
    result = filter_vendors(vendors, profile, advanced, search)
    return result.model_copy(update={"vendors": sort_vendors(result.vendors, sort_option)})


def filter_summary(profile: UserProfile, advanced: Optional[AdvancedFilters] = None) -> List[str]:
    summary = [f"Size: {profile.company_size}"]
    if profile.industry and profile.industry != "General":
        summary.append(f"Industry: {profile.industry}")
    summary.append(f"Goal: {profile.primary_goal}")

    if advanced is not None:
        if advanced.channels:
            summary.append(f"Channels: {', '.join(advanced.channels)}")
        if advanced.integrations:
            summary.append(f"Integrations: {', '.join(advanced.integrations)}")
        if advanced.governance:
            summary.append("Governance required")
        if advanced.implementation_tolerance:
            summary.append(f"Complexity: {advanced.implementation_tolerance}")
    return summary
