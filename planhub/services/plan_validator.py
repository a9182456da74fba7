# planhub/services/plan_validator.py
from __future__ import annotations

import logging
from typing import Any, List, Optional

from planhub.core.errors import PlanParseError
from planhub.schemas.marketing_plan import (
    NOT_SPECIFIED,
    MarketingPlan,
    ParsedPlanResult,
    ValidationIssue,
)
from planhub.services.plan_parser import parse_plan_data

logger = logging.getLogger(__name__)


def has_content(value: Optional[str]) -> bool:
    if not value or not isinstance(value, str):
        return False
    text = value.strip()
    return bool(text) and text != NOT_SPECIFIED


def check_plan(plan: MarketingPlan) -> List[ValidationIssue]:
    """Minimum content rules; every failing rule is reported."""
    summary = plan.company_summary
    errors: List[ValidationIssue] = []

    if not (has_content(summary.activities) or has_content(summary.industry)):
        errors.append(ValidationIssue(
            field="company_summary.activities",
            message="Missing required field: either activities or industry must be provided",
        ))

    if not (has_content(summary.target) or has_content(summary.target_audience)):
        errors.append(ValidationIssue(
            field="company_summary.target",
            message="Missing required field: either target or target_audience must be provided",
        ))

    return errors


def validate_plan_data(raw: Any, domain_hint: Optional[str] = None) -> ParsedPlanResult:
    if raw is None:
        return ParsedPlanResult(
            data=None,
            is_valid=False,
            errors=[ValidationIssue(field="parsing", message="Response data is null or undefined")],
        )

    try:
        plan = parse_plan_data(raw, domain_hint)
    except PlanParseError as e:
        logger.warning("Plan parsing failed for %s: %s", domain_hint, e)
        return ParsedPlanResult(
            data=None,
            is_valid=False,
            errors=[ValidationIssue(field="parsing", message=str(e))],
        )

    errors = check_plan(plan)
    if errors:
        logger.info("Plan for %s rejected: %s", domain_hint, [e.field for e in errors])
        return ParsedPlanResult(data=None, is_valid=False, errors=errors)

    return ParsedPlanResult(data=plan, is_valid=True, errors=[])
