# planhub/services/vendor_scoring.py
"""
Fit score (0-100) for a vendor against a user profile.

Criteria, in evaluation order, with their weights:

    segment        25  always
    goal           20  always
    channels       15  when advanced.channels is set
    integrations   15  when advanced.integrations is set
    complexity     15  when advanced.implementation_tolerance is set
    governance     10  when advanced.governance is True

Only the criteria that apply enter the weighted average. Coverage criteria
(channels, integrations) earn partial credit for partial coverage.
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from planhub.schemas.vendors import AdvancedFilters, ScoredVendor, UserProfile, VendorRecord

WEIGHTS: Dict[str, int] = {
    "segment": 25,
    "goal": 20,
    "channels": 15,
    "integrations": 15,
    "complexity": 15,
    "governance": 10,
}

GOVERNANCE_TAGS = frozenset({"enterprise", "sso", "rbac", "governance", "compliance", "security"})

GOAL_STRENGTH_TAGS: Dict[str, Tuple[str, ...]] = {
    "Acquisition": ("lead-generation", "landing-pages", "forms", "ads", "social", "acquisition", "growth"),
    "Activation": ("onboarding", "welcome-series", "activation", "engagement", "behavioral", "triggers"),
    "Retention": ("loyalty", "retention", "churn", "lifecycle", "customer-success", "engagement"),
    "Omnichannel": ("omnichannel", "multi-channel", "email", "sms", "push", "whatsapp", "unified"),
    "CRM": ("crm", "sales", "pipeline", "contacts", "deals", "integration", "sync"),
}

TOLERATED_COMPLEXITY: Dict[str, Tuple[str, ...]] = {
    "low": ("light",),
    "medium": ("light", "medium"),
    "high": ("light", "medium", "heavy"),
}

_SEGMENT_LABELS = {
    "SMB": "small businesses",
    "MM": "mid-market companies",
    "ENT": "enterprises",
}

_GOAL_REASONS = {
    "Acquisition": "Strong lead generation and acquisition capabilities",
    "Activation": "Excellent onboarding and user activation features",
    "Retention": "Proven retention and loyalty program tools",
    "Omnichannel": "True omnichannel orchestration across all channels",
    "CRM": "Deep CRM integration and sales alignment",
}

_COMPLEXITY_REASONS = {
    "light": "Easy to set up and get started",
    "medium": "Balanced setup complexity with powerful features",
    "heavy": "Highly customizable for complex needs",
}


# =========================
# Criteria
# =========================

def _lower(values: Iterable[str]) -> List[str]:
    return [v.lower() for v in values if v]


def _covers(haystack: Sequence[str], needle: str) -> bool:
    n = needle.lower()
    return any(n in h for h in haystack)


def matches_segment(vendor: VendorRecord, profile: UserProfile) -> bool:
    return profile.company_size in vendor.target_segments


def matches_goal(vendor: VendorRecord, goal: str) -> bool:
    if goal.lower() in _lower(vendor.supported_goals):
        return True
    tags = _lower(vendor.strength_tags)
    return any(_covers(tags, t) for t in GOAL_STRENGTH_TAGS.get(goal, ()))


def channel_coverage(vendor: VendorRecord, channels: Sequence[str]) -> float:
    """Share of requested channels the vendor offers (channels or strength tags)."""
    if not channels:
        return 0.0
    offered = _lower(vendor.channels) + _lower(vendor.strength_tags)
    hits = sum(1 for c in channels if _covers(offered, c))
    return hits / len(channels)


def integration_coverage(vendor: VendorRecord, integrations: Sequence[str]) -> float:
    if not integrations:
        return 0.0
    offered = _lower(vendor.integrations)
    hits = sum(1 for i in integrations if _covers(offered, i))
    return hits / len(integrations)


def has_governance(vendor: VendorRecord) -> bool:
    if vendor.governance_features:
        return True
    return any(t in GOVERNANCE_TAGS for t in _lower(vendor.strength_tags))


def fits_tolerance(vendor: VendorRecord, tolerance: Optional[str]) -> bool:
    if not tolerance:
        return True
    return vendor.complexity in TOLERATED_COMPLEXITY.get(tolerance, ("light", "medium", "heavy"))


# =========================
# Score
# =========================

def score_vendor(
    vendor: VendorRecord,
    profile: UserProfile,
    advanced: Optional[AdvancedFilters] = None,
) -> ScoredVendor:
    earned = 0.0
    possible = 0
    reasons: List[str] = []

    possible += WEIGHTS["segment"]
    if matches_segment(vendor, profile):
        earned += WEIGHTS["segment"]
        reasons.append(f"Built specifically for {_SEGMENT_LABELS[profile.company_size]}")

    possible += WEIGHTS["goal"]
    if matches_goal(vendor, profile.primary_goal):
        earned += WEIGHTS["goal"]
        reasons.append(_GOAL_REASONS.get(profile.primary_goal, f"Aligned with your {profile.primary_goal} goals"))

    if advanced is not None:
        if advanced.channels:
            possible += WEIGHTS["channels"]
            coverage = channel_coverage(vendor, advanced.channels)
            earned += WEIGHTS["channels"] * coverage
            if coverage == 1:
                reasons.append("Covers all the channels you need")
            elif coverage > 0:
                reasons.append("Covers some of the channels you need")

        if advanced.integrations:
            possible += WEIGHTS["integrations"]
            coverage = integration_coverage(vendor, advanced.integrations)
            earned += WEIGHTS["integrations"] * coverage
            if coverage == 1:
                reasons.append("Has your required integrations")
            elif coverage > 0:
                reasons.append("Has some of your required integrations")

        if advanced.implementation_tolerance:
            possible += WEIGHTS["complexity"]
            if fits_tolerance(vendor, advanced.implementation_tolerance):
                earned += WEIGHTS["complexity"]
                reasons.append(_COMPLEXITY_REASONS[vendor.complexity])

        if advanced.governance:
            possible += WEIGHTS["governance"]
            if has_governance(vendor):
                earned += WEIGHTS["governance"]
                reasons.append("Enterprise-grade security & governance")

    score = int(round(100 * earned / possible)) if possible else 0
    return ScoredVendor(vendor=vendor, score=max(0, min(100, score)), reasons=reasons)


def score_vendors(
    vendors: Iterable[VendorRecord],
    profile: UserProfile,
    advanced: Optional[AdvancedFilters] = None,
) -> List[ScoredVendor]:
    return [score_vendor(v, profile, advanced) for v in vendors]
