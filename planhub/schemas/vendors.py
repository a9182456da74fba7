# planhub/schemas/vendors.py
from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

CompanySize = Literal["SMB", "MM", "ENT"]
Complexity = Literal["light", "medium", "heavy"]
Tolerance = Literal["low", "medium", "high"]
SortOption = Literal["recommended", "rating", "name", "complexity"]


class VendorRating(BaseModel):
    rating: float = 0.0
    review_count: int = 0


class VendorRecord(BaseModel):
    vendor_id: str
    name: str
    short_description: str = ""
    target_segments: List[CompanySize] = Field(default_factory=list)
    supported_goals: List[str] = Field(default_factory=list)
    complexity: Complexity = "medium"
    ratings: Dict[str, VendorRating] = Field(default_factory=dict)
    channels: List[str] = Field(default_factory=list)
    integrations: List[str] = Field(default_factory=list)
    governance_features: List[str] = Field(default_factory=list)
    strength_tags: List[str] = Field(default_factory=list)
    is_sponsor: bool = False

    class Config:
        frozen = True

    def average_rating(self) -> float:
        values = [r.rating for r in self.ratings.values() if r.rating > 0]
        if not values:
            return 0.0
        return sum(values) / len(values)


class UserProfile(BaseModel):
    company_size: CompanySize = "MM"
    industry: str = "General"
    primary_goal: str = "Retention"


class AdvancedFilters(BaseModel):
    channels: List[str] = Field(default_factory=list)
    integrations: List[str] = Field(default_factory=list)
    governance: bool = False
    implementation_tolerance: Optional[Tolerance] = None

    def is_empty(self) -> bool:
        return not (
            self.channels
            or self.integrations
            or self.governance
            or self.implementation_tolerance
        )


class ScoredVendor(BaseModel):
    vendor: VendorRecord
    score: int
    reasons: List[str] = Field(default_factory=list)


class FilterResult(BaseModel):
    vendors: List[ScoredVendor]
    relaxed: bool = False
    relaxation_level: int = 0
    relaxed_criteria: List[str] = Field(default_factory=list)
    message: Optional[str] = None


class VendorSearchIn(BaseModel):
    profile: UserProfile = Field(default_factory=UserProfile)
    advanced: Optional[AdvancedFilters] = None
    search: Optional[str] = None
    sort: SortOption = "recommended"


class VendorSearchOut(FilterResult):
    filter_summary: List[str] = Field(default_factory=list)
