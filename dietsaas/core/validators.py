"""
Field validators for Turkish identity data, plus masking helpers used
whenever personal data ends up in a response or a log line.
"""
import re

_PHONE_CLEAN_RE = re.compile(r"[\s\-()]")
_PHONE_PATTERNS = [
    re.compile(r"^\+90[1-9]\d{9}$"),
    re.compile(r"^90[1-9]\d{9}$"),
    re.compile(r"^0[1-9]\d{9}$"),
    re.compile(r"^[1-9]\d{9}$"),
]

RESERVED_SUBDOMAINS = {"www", "api", "admin", "app", "mail", "ftp"}


def validate_national_id(value: str) -> bool:
    """Checksum validation for an 11-digit T.C. Kimlik No."""
    digits_str = re.sub(r"[\s-]", "", value)
    if not re.fullmatch(r"\d{11}", digits_str) or digits_str[0] == "0":
        return False

    digits = [int(c) for c in digits_str]

    if sum(digits[:10]) % 10 != digits[10]:
        return False

    odd_sum = (digits[0] + digits[2] + digits[4] + digits[6] + digits[8]) * 7
    even_sum = digits[1] + digits[3] + digits[5] + digits[7]
    return (odd_sum - even_sum) % 10 == digits[9]


def validate_phone(phone: str) -> bool:
    cleaned = _PHONE_CLEAN_RE.sub("", phone)
    return any(pattern.match(cleaned) for pattern in _PHONE_PATTERNS)


def format_phone(phone: str) -> str:
    """Normalise to +90XXXXXXXXXX."""
    cleaned = _PHONE_CLEAN_RE.sub("", phone)
    if _PHONE_PATTERNS[0].match(cleaned):
        return cleaned
    if cleaned.startswith("90"):
        cleaned = cleaned[2:]
    elif cleaned.startswith("0"):
        cleaned = cleaned[1:]
    return f"+90{cleaned}"


def validate_password_strength(password: str) -> str:
    """Raise ValueError unless the password has 8+ chars, upper, lower and a digit."""
    if len(password) < 8:
        raise ValueError("Password must be at least 8 characters")
    if not re.search(r"[A-Z]", password):
        raise ValueError("Password must contain an uppercase letter")
    if not re.search(r"[a-z]", password):
        raise ValueError("Password must contain a lowercase letter")
    if not re.search(r"[0-9]", password):
        raise ValueError("Password must contain a digit")
    return password


def mask_national_id(value: str) -> str:
    if len(value) != 11:
        return value
    return f"{value[:3]}****{value[9:]}"


def mask_email(email: str) -> str:
    username, sep, domain = email.partition("@")
    if not sep:
        return email
    if len(username) > 2:
        username = f"{username[:2]}****{username[-1]}"
    return f"{username}@{domain}"
