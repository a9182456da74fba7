# planhub/schemas/analysis.py
from __future__ import annotations

from typing import Dict, Literal, Optional

from pydantic import BaseModel, Field

from planhub.schemas.marketing_plan import Industry, Language

PriceTier = Literal["Budget", "Mid-Range", "Luxury"]


class AnalysisIn(BaseModel):
    user_values: Dict[str, str] = Field(alias="userValues")
    price_tier: PriceTier = Field(alias="priceTier")
    industry: Industry
    language: Language = "en"

    class Config:
        populate_by_name = True


class AnalysisCreateOut(BaseModel):
    status: Literal["created"] = "created"
    job_id: str


class AnalysisPollOut(BaseModel):
    status: Literal["pending", "complete", "error"]
    job_id: str
    content: Optional[str] = None
    error: Optional[str] = None
