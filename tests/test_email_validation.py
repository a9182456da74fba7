import pytest

from planhub.services.email_validation import (
    get_email_domain,
    is_free_email,
    is_valid_email,
    validate_lead_email,
)


@pytest.mark.parametrize("email", ["a@b.co", "jane.doe@acme.io", "  Jane@Acme.IO  ", "x+tag@sub.acme.co.uk"])
def test_valid_emails(email):
    assert is_valid_email(email)


@pytest.mark.parametrize("email", ["", "not-an-email", "test@domain", "@acme.io", "jane@", "a@b", None])
def test_invalid_emails(email):
    assert not is_valid_email(email)


def test_too_long_email_is_invalid():
    assert not is_valid_email("a" * 250 + "@acme.io")


def test_get_email_domain_uses_last_at():
    assert get_email_domain("Jane@Acme.IO") == "acme.io"


@pytest.mark.parametrize("email", ["jane@gmail.com", "JANE@GMAIL.COM", "Jane@Hotmail.Fr", "bob@yahoo.com"])
def test_free_email_is_case_insensitive(email):
    assert is_free_email(email)


def test_custom_blocked_domains():
    assert not is_free_email("jane@acme.io")
    assert is_free_email("jane@acme.io", custom_domains=["ACME.IO"])


def test_malformed_is_invalid_never_free():
    check = validate_lead_email("not-an-email")
    assert not check.is_valid
    assert check.error == "invalid"

    check = validate_lead_email("gmail.com")
    assert check.error == "invalid"


def test_free_email_rejected_when_blocking():
    check = validate_lead_email("jane@gmail.com")
    assert check.is_valid is False
    assert check.error == "free"


def test_free_email_allowed_when_not_blocking():
    check = validate_lead_email("jane@gmail.com", block_free_emails=False)
    assert check.is_valid
    assert check.error is None


def test_professional_email_valid():
    check = validate_lead_email("a@b.co")
    assert check.is_valid
    assert check.error is None
