# planhub/services/plan_store.py
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol, Tuple

from pydantic import ValidationError
from supabase import Client

from planhub.core.config import settings
from planhub.core.errors import PersistenceError
from planhub.schemas.marketing_plan import MarketingPlan
from planhub.services.domain import normalize_domain

logger = logging.getLogger(__name__)


class PlanStore(Protocol):
    async def lookup(self, domain: str, language: str) -> Optional[MarketingPlan]: ...

    async def upsert(self, domain: str, email: str, plan: MarketingPlan, language: str) -> None: ...


# =========================
# Supabase (marketing_plans)
# =========================

def get_plan_by_domain(
    supa: Client,
    domain: str,
    language: str,
    table: str = "marketing_plans",
) -> Optional[MarketingPlan]:
    rows = (
        supa.table(table)
        .select("id, form_data")
        .eq("company_domain", normalize_domain(domain))
        .eq("user_language", language)
        .limit(1)
        .execute()
    ).data or []

    if not rows or not rows[0].get("form_data"):
        return None

    try:
        return MarketingPlan.model_validate(rows[0]["form_data"])
    except ValidationError as e:
        # stored row from an older plan shape; treat as missing so it gets regenerated
        logger.warning("Stored plan for %s/%s is not readable: %s", domain, language, e)
        return None


def upsert_plan(
    supa: Client,
    domain: str,
    email: str,
    plan: MarketingPlan,
    language: str,
    table: str = "marketing_plans",
) -> str:
    """
    Manual SELECT + UPDATE/INSERT on (company_domain, user_language).
    The table is not guaranteed to carry a unique constraint on that pair.
    """
    normalized = normalize_domain(domain)
    payload: Dict[str, Any] = {
        "company_domain": normalized,
        "user_language": language,
        "email": email or settings.DEFAULT_PLAN_EMAIL,
        "form_data": plan.model_dump(mode="json"),
        "updated_at": datetime.now(timezone.utc).isoformat(),
    }

    existing = (
        supa.table(table)
        .select("id")
        .eq("company_domain", normalized)
        .eq("user_language", language)
        .limit(1)
        .execute()
    ).data or []

    if existing:
        plan_id = existing[0]["id"]
        supa.table(table).update(payload).eq("id", plan_id).execute()
        return plan_id

    inserted = supa.table(table).insert(payload).execute().data or []
    if not inserted:
        raise PersistenceError("Failed to insert marketing plan (empty response).")

    return inserted[0]["id"]


class SupabasePlanStore:
    def __init__(self, supa: Client, table: str = "") -> None:
        self.supa = supa
        self.table = table or settings.MARKETING_PLANS_TABLE

    async def lookup(self, domain: str, language: str) -> Optional[MarketingPlan]:
        try:
            return await asyncio.to_thread(get_plan_by_domain, self.supa, domain, language, self.table)
        except Exception as e:
            raise PersistenceError(f"Plan lookup failed: {e}") from e

    async def upsert(self, domain: str, email: str, plan: MarketingPlan, language: str) -> None:
        try:
            plan_id = await asyncio.to_thread(upsert_plan, self.supa, domain, email, plan, language, self.table)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Plan save failed: {e}") from e
        logger.info("Plan saved for %s/%s (id=%s)", domain, language, plan_id)


class MemoryPlanStore:
    """Process-local store used when Supabase is not configured."""

    def __init__(self) -> None:
        self.rows: Dict[Tuple[str, str], Dict[str, Any]] = {}

    async def lookup(self, domain: str, language: str) -> Optional[MarketingPlan]:
        row = self.rows.get((normalize_domain(domain), language))
        return row["plan"] if row else None

    async def upsert(self, domain: str, email: str, plan: MarketingPlan, language: str) -> None:
        self.rows[(normalize_domain(domain), language)] = {
            "email": email or settings.DEFAULT_PLAN_EMAIL,
            "plan": plan,
        }
