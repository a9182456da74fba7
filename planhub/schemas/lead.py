# planhub/schemas/lead.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

EmailError = Literal["invalid", "free"]
GateError = Literal["invalid", "free", "rejected"]


class LeadRecord(BaseModel):
    """
    Email captured by the lead gate.
    Created once on the first successful unlock and never modified afterwards.
    """
    email: str
    captured_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source_page: str = ""
    trigger_reason: str = ""
    context_tags: List[str] = Field(default_factory=list)

    class Config:
        frozen = True


class EmailCheck(BaseModel):
    is_valid: bool
    error: Optional[EmailError] = None


class GateResult(BaseModel):
    ok: bool
    error: Optional[GateError] = None
    lead: Optional[LeadRecord] = None
    notified: Optional[bool] = None


class LeadIn(BaseModel):
    """Payload posted by the lead capture form."""
    email: str
    language: Literal["en", "fr", "de", "es"] = "en"
    source_page: str = Field(default="", alias="sourcePage")
    trigger_reason: str = Field(default="", alias="triggerReason")
    context_tags: List[str] = Field(default_factory=list, alias="contextTags")
    user_agent: Optional[str] = Field(default=None, alias="userAgent")
    referrer: Optional[str] = None

    class Config:
        populate_by_name = True


class LeadOut(BaseModel):
    success: bool = True
    forwarded: bool = False
