# planhub/services/domain.py
from __future__ import annotations

import re
from typing import Optional

from planhub.core.errors import InvalidInputError

_SCHEME_RE = re.compile(r"^https?://")
_PATH_RE = re.compile(r"[/?#]")

PLACEHOLDER_DOMAINS = frozenset({
    "example.com",
    "test.com",
    "domain.com",
    "yourcompany.com",
    "company.com",
    "website.com",
    "mysite.com",
    "localhost",
})

_REASON_MESSAGES = {
    "empty": "Please enter your company website.",
    "too_short": "This domain looks too short. Please enter a full domain like acme.com.",
    "missing_dot": "This does not look like a domain. Please include the extension (e.g. acme.com).",
    "placeholder": "Please enter your real company domain, not an example one.",
}


def normalize_domain(value: Optional[str]) -> str:
    """
    Lowercase, drop scheme, path/query/fragment and any leading `www.`.

    normalize_domain("HTTPS://WWW.EXAMPLE.COM/x?y=1") -> "example.com"
    """
    d = (value or "").strip().lower()
    d = _SCHEME_RE.sub("", d)
    d = _PATH_RE.split(d, 1)[0]

    while True:
        d = d.strip()
        if not d.startswith("www."):
            break
        d = d[4:]

    return d


def is_domain_likely_valid(domain: str) -> bool:
    return len(domain) >= 4 and "." in domain


def domain_rejection_reason(value: Optional[str]) -> Optional[str]:
    d = normalize_domain(value)
    if not d:
        return "empty"
    if d in PLACEHOLDER_DOMAINS:
        return "placeholder"
    if len(d) < 4:
        return "too_short"
    if "." not in d:
        return "missing_dot"
    return None


def validate_domain(value: Optional[str]) -> str:
    """Return the normalized domain or raise InvalidInputError with a reason."""
    reason = domain_rejection_reason(value)
    if reason:
        raise InvalidInputError(
            _REASON_MESSAGES[reason],
            reason=reason,
            field="domain",
        )
    return normalize_domain(value)


def extract_company_name(domain: Optional[str]) -> str:
    d = normalize_domain(domain)
    if not d:
        return "Unknown"
    head = d.split(".", 1)[0]
    return head[:1].upper() + head[1:] if head else "Unknown"
