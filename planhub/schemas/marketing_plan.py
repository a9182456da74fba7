# planhub/schemas/marketing_plan.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

Language = Literal["en", "fr", "de", "es"]
Industry = Literal[
    # B2C retail
    "Fashion", "Home", "Beauty", "Electronics", "Sports", "Family", "Food", "Luxury",
    # B2B
    "SaaS", "Services", "Manufacturing", "Wholesale",
]

NOT_SPECIFIED = "Not specified"


# =========================
# Plan (domain object)
# =========================

class CompanySummary(BaseModel):
    name: str
    website: str
    activities: str = NOT_SPECIFIED
    target: str = NOT_SPECIFIED
    industry: Optional[str] = None
    target_audience: Optional[str] = None
    nb_employees: Optional[str] = None
    business_model: Optional[str] = None
    customer_lifecycle_key_steps: Optional[Any] = None
    linkedin_scrape_status: Optional[str] = None


class ScenarioMessage(BaseModel):
    title: str
    description: Optional[str] = None
    content: Optional[str] = None


class ProgramScenario(BaseModel):
    scenario_target: str = ""
    scenario_objective: str = ""
    main_messages_ideas: str = ""
    message_sequence: List[ScenarioMessage] = Field(default_factory=list)


class MarketingProgram(BaseModel):
    program_name: str
    target: str = NOT_SPECIFIED
    objective: str = NOT_SPECIFIED
    kpi: str = ""
    description: str = ""
    scenarios: List[ProgramScenario] = Field(default_factory=list)


class BrevoHelpScenario(BaseModel):
    scenario_name: str = ""
    why_brevo_is_better: str = ""
    omnichannel_channels: Any = None
    setup_efficiency: str = ""


class PlanMetadata(BaseModel):
    conversation_id: Optional[str] = None
    raw_content_structure: Optional[Dict[str, Any]] = None


class MarketingPlan(BaseModel):
    company_summary: CompanySummary
    programs_list: List[MarketingProgram] = Field(default_factory=list)
    introduction: Optional[str] = None
    conclusion: Optional[str] = None
    tools_used: Optional[Any] = None
    how_brevo_helps_you: List[BrevoHelpScenario] = Field(default_factory=list)
    metadata: PlanMetadata = Field(default_factory=PlanMetadata)


class ValidationIssue(BaseModel):
    field: str
    message: str


class ParsedPlanResult(BaseModel):
    data: Optional[MarketingPlan] = None
    is_valid: bool
    errors: List[ValidationIssue] = Field(default_factory=list)


# =========================
# Generation
# =========================

class GenerationRequest(BaseModel):
    domain: str
    normalized_domain: str
    language: Language = "en"
    industry: Optional[str] = None
    force_regenerate: bool = False
    email: Optional[str] = None

    @classmethod
    def create(
        cls,
        domain: str,
        language: str = "en",
        industry: Optional[str] = None,
        force_regenerate: bool = False,
        email: Optional[str] = None,
    ) -> "GenerationRequest":
        from planhub.services.domain import normalize_domain

        return cls(
            domain=domain,
            normalized_domain=normalize_domain(domain),
            language=language,
            industry=industry,
            force_regenerate=force_regenerate,
            email=email,
        )

    @property
    def key(self) -> tuple:
        return (self.normalized_domain, self.language)


class JobHandle(BaseModel):
    job_id: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class JobStatus(BaseModel):
    state: Literal["pending", "complete", "error"]
    raw_status: Optional[str] = None
    result: Any = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


# =========================
# HTTP payloads
# =========================

class PlanCreateIn(BaseModel):
    domain: Optional[str] = Field(default=None, description="Company website, any format.")
    industry: Optional[str] = None
    language: Language = "en"
    force: bool = Field(default=False, description="Skip the stored plan and generate again.")
    email: Optional[str] = None


class PlanCreateOut(BaseModel):
    status: Literal["complete", "created"]
    source: Literal["db", "ai"]
    plan: Optional[MarketingPlan] = None
    job_id: Optional[str] = None


class PlanPollOut(BaseModel):
    status: Literal["pending", "complete", "error"]
    job_id: str
    plan: Optional[MarketingPlan] = None
    message: Optional[str] = None
    error: Optional[str] = None
    debug: Optional[Dict[str, Any]] = None
    saved: Optional[bool] = None


class PlanLookupOut(BaseModel):
    found: bool
    plan: Optional[MarketingPlan] = None


class ExternalPlanIn(BaseModel):
    domain: str = Field(min_length=1)
    language: Language = "en"
    industry: Optional[str] = None
    force: bool = False
    webhook_url: Optional[str] = None
    webhook_secret: Optional[str] = None


class ExternalPlanOut(BaseModel):
    status: Literal["complete", "processing"]
    domain: str
    language: Language
    plan: Optional[MarketingPlan] = None
    plan_url: Optional[str] = None
    job_id: Optional[str] = None
    poll_url: Optional[str] = None
    source: Optional[Literal["db", "ai"]] = None


class GatewayCallbackIn(BaseModel):
    """Completion callback sent by the AI gateway."""
    job_id: Optional[str] = Field(default=None, alias="jobId")
    status: str = "completed"
    result: Any = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        populate_by_name = True
