# planhub/core/config.py
from pydantic import BaseModel
from dotenv import load_dotenv
from typing import List
import os

load_dotenv()


def _as_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _as_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _as_list(name: str, fallback: str = "") -> List[str]:
    raw = os.getenv(name) or os.getenv(fallback or "", "") or ""
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings(BaseModel):
    APP_NAME: str = "Brevo Marketing Plan Backend"
    ENV: str = os.getenv("ENV", "dev")
    PUBLIC_BASE_URL: str = os.getenv("PUBLIC_BASE_URL", "http://localhost:3000")
    CORS_ORIGINS: List[str] = _as_list("CORS_ORIGINS") or ["http://localhost:3000"]

    # Supabase (persisted plans + API logs)
    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
    SUPABASE_SERVICE_ROLE_KEY: str = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
    MARKETING_PLANS_TABLE: str = os.getenv("MARKETING_PLANS_TABLE", "marketing_plans")
    API_LOGS_TABLE: str = os.getenv("API_LOGS_TABLE", "api_logs")
    DEFAULT_PLAN_EMAIL: str = os.getenv("DEFAULT_PLAN_EMAIL", "ai-generated@brevo.com")

    # AI gateway
    AI_GATEWAY_URL: str = os.getenv("AI_GATEWAY_URL", "")
    AI_GATEWAY_API_KEY: str = os.getenv("AI_GATEWAY_API_KEY", "")
    AI_AGENT_ALIAS: str = os.getenv("AI_AGENT_ALIAS", "marketing-plan-generator")
    AI_ANALYSIS_AGENT_ALIAS: str = os.getenv("AI_ANALYSIS_AGENT_ALIAS", "kpi-analysis")
    AI_CREATE_TIMEOUT_SECONDS: int = _as_int("AI_CREATE_TIMEOUT_SECONDS", 8)
    AI_STATUS_TIMEOUT_SECONDS: int = _as_int("AI_STATUS_TIMEOUT_SECONDS", 10)

    # Polling
    PLAN_POLL_INTERVAL_SECONDS: int = _as_int("PLAN_POLL_INTERVAL_SECONDS", 5)
    PLAN_POLL_MAX_ATTEMPTS: int = _as_int("PLAN_POLL_MAX_ATTEMPTS", 120)
    ANALYSIS_POLL_MAX_ATTEMPTS: int = _as_int("ANALYSIS_POLL_MAX_ATTEMPTS", 60)

    # External API (/v1)
    EXTERNAL_API_KEYS: List[str] = _as_list("EXTERNAL_API_KEYS", "EXTERNAL_API_KEY")
    WEBHOOK_SECRET: str = os.getenv("WEBHOOK_SECRET", "")
    WEBHOOK_TIMEOUT_SECONDS: int = _as_int("WEBHOOK_TIMEOUT_SECONDS", 10)

    # Lead capture
    LEAD_HUB_URL: str = os.getenv("LEAD_HUB_URL", "")
    LEAD_HUB_API_KEY: str = os.getenv("LEAD_HUB_API_KEY", "")
    LEAD_TIMEOUT_SECONDS: int = _as_int("LEAD_TIMEOUT_SECONDS", 5)
    LEAD_QUEUE_MAX: int = _as_int("LEAD_QUEUE_MAX", 10)
    LEAD_STORE_PATH: str = os.getenv("LEAD_STORE_PATH", ".planhub/leads.json")
    LEAD_BLOCK_FREE_EMAILS: bool = _as_bool("LEAD_BLOCK_FREE_EMAILS", True)

    # Rate limit (fixed window, per IP)
    RATE_LIMIT_MAX_REQUESTS: int = _as_int("RATE_LIMIT_MAX_REQUESTS", 10)
    RATE_LIMIT_WINDOW_SECONDS: int = _as_int("RATE_LIMIT_WINDOW_SECONDS", 60)

    # Logging (empty LOG_FILE: console only)
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_FILE: str = os.getenv("LOG_FILE", "logs/planhub.log")
    LOG_MAX_BYTES: int = _as_int("LOG_MAX_BYTES", 5 * 1024 * 1024)
    LOG_BACKUPS: int = _as_int("LOG_BACKUPS", 3)

    # Vendor catalog
    VENDOR_CATALOG_PATH: str = os.getenv("VENDOR_CATALOG_PATH", "")

    class Config:
        frozen = True  # avoid accidental mutation


settings = Settings()
