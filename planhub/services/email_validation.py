# planhub/services/email_validation.py
from __future__ import annotations

import re
from typing import Iterable, Optional

from planhub.schemas.lead import EmailCheck

# RFC 5322 subset: dotted domain required ("user@domain" is rejected)
_EMAIL_RE = re.compile(
    r"^[a-z0-9!#$%&'*+/=?^_`{|}~-]+(?:\.[a-z0-9!#$%&'*+/=?^_`{|}~-]+)*"
    r"@(?:[a-z0-9](?:[a-z0-9-]*[a-z0-9])?\.)+[a-z0-9](?:[a-z0-9-]*[a-z0-9])?$"
)

EMAIL_MIN_LENGTH = 5
EMAIL_MAX_LENGTH = 254

FREE_EMAIL_DOMAINS = frozenset({
    # Google
    "gmail.com", "googlemail.com",
    # Yahoo
    "yahoo.com", "yahoo.fr", "yahoo.de", "yahoo.es", "yahoo.co.uk", "yahoo.it",
    "yahoo.ca", "ymail.com", "rocketmail.com",
    # Microsoft
    "hotmail.com", "hotmail.fr", "hotmail.de", "hotmail.es", "hotmail.co.uk",
    "hotmail.it", "outlook.com", "outlook.fr", "outlook.de", "outlook.es",
    "outlook.co.uk", "live.com", "live.fr", "live.de", "live.co.uk", "msn.com",
    # Apple
    "icloud.com", "me.com", "mac.com",
    # Other global webmail
    "aol.com", "protonmail.com", "proton.me", "tutanota.com", "tuta.io",
    "zoho.com", "yandex.com", "yandex.ru", "mail.com", "email.com", "gmx.com",
    "gmx.de", "gmx.fr", "gmx.net", "fastmail.com", "hushmail.com", "inbox.com",
    "mail.ru", "rediffmail.com",
    # France
    "orange.fr", "wanadoo.fr", "free.fr", "sfr.fr", "laposte.net", "bbox.fr",
    "numericable.fr", "neuf.fr", "aliceadsl.fr", "club-internet.fr",
    # Germany
    "web.de", "t-online.de", "freenet.de", "arcor.de", "1und1.de",
    # Spain
    "telefonica.es", "terra.es",
    # Italy
    "libero.it", "virgilio.it", "alice.it", "tin.it", "tiscali.it",
    # UK
    "btinternet.com", "virginmedia.com", "sky.com", "talktalk.net",
    # Netherlands
    "ziggo.nl", "kpnmail.nl",
    # Disposable
    "tempmail.com", "guerrillamail.com", "mailinator.com", "10minutemail.com",
    "throwaway.email", "temp-mail.org", "fakeinbox.com", "trashmail.com",
    "discard.email", "sharklasers.com", "yopmail.com", "getnada.com",
    "maildrop.cc",
})


def _clean(email: Optional[str]) -> str:
    if not isinstance(email, str):
        return ""
    return email.strip().lower()


def is_valid_email(email: Optional[str]) -> bool:
    e = _clean(email)
    if not (EMAIL_MIN_LENGTH <= len(e) <= EMAIL_MAX_LENGTH):
        return False
    return bool(_EMAIL_RE.match(e))


def get_email_domain(email: Optional[str]) -> str:
    e = _clean(email)
    at = e.rfind("@")
    if at == -1:
        return ""
    return e[at + 1:]


def is_free_email(email: Optional[str], custom_domains: Iterable[str] = ()) -> bool:
    domain = get_email_domain(email)
    if not domain:
        return False
    custom = {d.strip().lower() for d in custom_domains if d}
    return domain in FREE_EMAIL_DOMAINS or domain in custom


def validate_lead_email(
    email: Optional[str],
    block_free_emails: bool = True,
    custom_domains: Iterable[str] = (),
) -> EmailCheck:
    # format errors win over the free-provider check
    if not is_valid_email(email):
        return EmailCheck(is_valid=False, error="invalid")
    if block_free_emails and is_free_email(email, custom_domains):
        return EmailCheck(is_valid=False, error="free")
    return EmailCheck(is_valid=True)
