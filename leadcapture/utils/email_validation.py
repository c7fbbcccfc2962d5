"""
Email address check - a lead is only submitted with an address that passes,
and only a passing address earns completeness points.
"""
import re

MAX_EMAIL_LENGTH = 254

_LOCAL_PART = r"[A-Za-z0-9.!#$%&'*+/=?^_`{|}~-]+"
# Domain label: alphanumeric at both ends, at most 63 chars
_DOMAIN_LABEL = r"[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?"

EMAIL_PATTERN = re.compile(rf"^{_LOCAL_PART}@(?:{_DOMAIN_LABEL}\.)+[A-Za-z]{{2,}}$")


def is_valid_email_format(email: str) -> bool:
    """local@domain.tld with an alphabetic TLD of two or more letters."""
    value = (email or "").strip()
    if not value or len(value) > MAX_EMAIL_LENGTH:
        return False
    return EMAIL_PATTERN.match(value) is not None
