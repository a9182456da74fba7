# planhub/core/errors.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import HTTPException


class PlanError(Exception):
    """Base error; `user_message` is safe to show, `debug` is for operators."""

    user_message = "Something went wrong. Please try again."

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        debug: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message or self.user_message)
        self.debug = debug or {}

    @property
    def message(self) -> str:
        return str(self)


class InvalidInputError(PlanError):
    """Malformed or placeholder domain, malformed email, missing plan fields."""

    user_message = "Please check your input and try again."

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        reason: str = "invalid",
        field: Optional[str] = None,
        errors: Optional[List[Dict[str, str]]] = None,
        debug: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, debug=debug)
        self.reason = reason
        self.field = field
        self.errors = errors or []


class PlanParseError(InvalidInputError):
    def __init__(self, message: str, *, debug: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, reason="parsing", field="parsing", debug=debug)


class UpstreamError(PlanError):
    """AI gateway returned non-2xx, an error status, or a malformed job response."""

    user_message = "The generation service returned an error."

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        status_code: Optional[int] = None,
        debug: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, debug=debug)
        self.status_code = status_code


class GenerationTimeoutError(PlanError):
    user_message = "Generation took longer than expected. Please try again."


class PersistenceError(PlanError):
    user_message = "The plan could not be saved."


class LeadRejectedError(PlanError):
    """The lead collector refused the submission (4xx)."""

    user_message = "Your email could not be registered."

    def __init__(self, message: Optional[str] = None, *, status_code: int = 400) -> None:
        super().__init__(message)
        self.status_code = status_code


class ServiceNotConfiguredError(PlanError):
    user_message = "Service is not configured."


# =========================
# HTTP mapping (routers)
# =========================

def http_status_for(err: PlanError) -> int:
    if isinstance(err, (InvalidInputError, LeadRejectedError)):
        return 400
    if isinstance(err, ServiceNotConfiguredError):
        return 503
    if isinstance(err, GenerationTimeoutError):
        return 504
    if isinstance(err, UpstreamError):
        return err.status_code if err.status_code in (404, 502, 504) else 502
    return 500


def to_http_exception(err: PlanError, *, include_debug: bool = False) -> HTTPException:
    detail: Dict[str, Any] = {"error": err.message}
    if isinstance(err, InvalidInputError):
        detail["reason"] = err.reason
        if err.field:
            detail["field"] = err.field
        if err.errors:
            detail["errors"] = err.errors
    if include_debug and err.debug:
        detail["debug"] = err.debug
    return HTTPException(status_code=http_status_for(err), detail=detail)
