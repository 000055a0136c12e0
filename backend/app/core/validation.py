"""
Input validation and sanitization

Pure functions, no side effects:
- Email / length / date checks
- Password policy with every failing rule reported at once
- SQL-injection pattern detection (advisory: ORM parameter binding is the real defense)
- Markup stripping and HTML-safe encoding for free text
"""
import html
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from bs4 import BeautifulSoup, Comment
from email_validator import EmailNotValidError, validate_email as _validate_email_address


# =============================================================================
# PASSWORD POLICY
# =============================================================================

PASSWORD_MIN_LENGTH = 8

COMMON_PASSWORDS = {
    "password", "password123", "123456", "123456789", "qwerty",
    "abc123", "password1", "admin", "letmein", "welcome",
}

REASON_TOO_SHORT = f"at least {PASSWORD_MIN_LENGTH} characters"
REASON_NO_UPPERCASE = "one uppercase letter"
REASON_NO_LOWERCASE = "one lowercase letter"
REASON_NO_DIGIT = "one number"
REASON_NO_SPECIAL = "one special character"
REASON_COMMON = "Password is too common, please choose a stronger password"

# ASCII classes: accented letters count as special characters, not letters
UPPERCASE_RE = re.compile(r"[A-Z]")
LOWERCASE_RE = re.compile(r"[a-z]")
DIGIT_RE = re.compile(r"[0-9]")
SPECIAL_RE = re.compile(r"[^A-Za-z0-9]")


@dataclass(frozen=True)
class PasswordCheck:
    valid: bool
    reasons: List[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        """Single human-readable message covering every failed rule."""
        if self.valid:
            return ""
        requirements = [r for r in self.reasons if r != REASON_COMMON]
        parts = []
        if requirements:
            parts.append("Password must contain " + ", ".join(requirements) + ".")
        if REASON_COMMON in self.reasons:
            parts.append(REASON_COMMON + ".")
        return " ".join(parts)


def validate_password_detailed(password: str) -> PasswordCheck:
    reasons = []

    if len(password) < PASSWORD_MIN_LENGTH:
        reasons.append(REASON_TOO_SHORT)
    if not UPPERCASE_RE.search(password):
        reasons.append(REASON_NO_UPPERCASE)
    if not LOWERCASE_RE.search(password):
        reasons.append(REASON_NO_LOWERCASE)
    if not DIGIT_RE.search(password):
        reasons.append(REASON_NO_DIGIT)
    if not SPECIAL_RE.search(password):
        reasons.append(REASON_NO_SPECIAL)
    if password.lower() in COMMON_PASSWORDS:
        reasons.append(REASON_COMMON)

    return PasswordCheck(valid=not reasons, reasons=reasons)


def validate_password(password: str) -> bool:
    return validate_password_detailed(password).valid


def password_policy_message(password: str) -> Optional[str]:
    """Combined error message, or None if the password is acceptable."""
    check = validate_password_detailed(password)
    return None if check.valid else check.message


# =============================================================================
# SCALAR CHECKS
# =============================================================================

def validate_email(value: str) -> bool:
    """Syntax check only; no DNS/deliverability lookups."""
    if not value:
        return False
    try:
        _validate_email_address(value, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def validate_length(value: str, min_length: int = 1, max_length: int = 1000) -> bool:
    """Bounds check on code points, not bytes."""
    return min_length <= len(value) <= max_length


def is_valid_date(value: str, fmt: str = "%Y-%m-%d") -> bool:
    """Strict date check: the value must round-trip through the format unchanged."""
    try:
        return datetime.strptime(value, fmt).strftime(fmt) == value
    except (TypeError, ValueError):
        return False


# =============================================================================
# INJECTION SIGNALS
# =============================================================================

SUSPICIOUS_PATTERNS = [
    re.compile(r"\b(union|select|insert|update|delete|drop|create|alter|exec|execute)\b", re.IGNORECASE),
    re.compile(r"['\";]"),
    re.compile(r"--"),
    re.compile(r"/\*.*?\*/", re.DOTALL),
    re.compile(r"\b(or|and)\s+['\"]?\d+['\"]?\s*=\s*['\"]?\d+['\"]?", re.IGNORECASE),
]


def detect_suspicious_pattern(value: str) -> bool:
    return any(p.search(value) for p in SUSPICIOUS_PATTERNS)


# =============================================================================
# SANITIZATION
# =============================================================================

ALLOWED_TAGS = ("b", "i", "strong", "em", "p", "br")

_JS_PROTOCOL = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"on\w+\s*=", re.IGNORECASE)


def strip_tags(value: str, allowed: Iterable[str] = ()) -> str:
    """Remove markup, keeping the text content and any allowed tags."""
    allowed = set(allowed)
    soup = BeautifulSoup(value, "html.parser")

    for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
        comment.extract()

    if not allowed:
        return soup.get_text()

    for tag in soup.find_all(True):
        if tag.name not in allowed:
            tag.unwrap()

    # formatter=None: no entity substitution, encoding happens once in sanitize_input
    return soup.decode(formatter=None)


def sanitize_text(value: str) -> str:
    return strip_tags(value).strip()


def sanitize_input(value: str, allow_html: bool = False) -> str:
    """
    Make free text safe to echo into HTML.

    Strips tags (all, or all but ALLOWED_TAGS), entity-encodes what is left,
    then removes javascript: URLs and on*= handlers from the encoded text.
    """
    value = value.strip()
    value = strip_tags(value, ALLOWED_TAGS if allow_html else ())
    value = html.escape(value, quote=True)
    value = _JS_PROTOCOL.sub("", value)
    value = _EVENT_HANDLER.sub("", value)
    return value


def sanitize_html(value: str) -> str:
    return sanitize_input(value, allow_html=True)


def sanitize_mapping(data: Any, allow_html: bool = False) -> Any:
    """Recursively sanitize every string inside dicts and lists."""
    if isinstance(data, str):
        return sanitize_input(data, allow_html=allow_html)
    if isinstance(data, Mapping):
        return {k: sanitize_mapping(v, allow_html) for k, v in data.items()}
    if isinstance(data, list):
        return [sanitize_mapping(v, allow_html) for v in data]
    return data


# =============================================================================
# DECLARATIVE FIELD RULES
# =============================================================================

@dataclass(frozen=True)
class FieldRule:
    required: bool = False
    type: Optional[str] = None  # "email", "password", "string", "numeric", "date"
    min: Optional[int] = None
    max: Optional[int] = None


def validate_fields(data: Mapping[str, Any], rules: Mapping[str, FieldRule]) -> Dict[str, List[str]]:
    """
    Validate a payload against per-field rules.

    Returns:
        {field: [error, ...]} for every failing field; empty dict when valid
    """
    errors: Dict[str, List[str]] = {}

    for name, rule in rules.items():
        value = data.get(name)
        field_errors = []

        if value is None or (isinstance(value, str) and value.strip() == ""):
            if rule.required:
                errors[name] = [f"{name} is required"]
            continue

        if rule.type == "email":
            if not isinstance(value, str) or not validate_email(value):
                field_errors.append(f"{name} must be a valid email address")

        elif rule.type == "password":
            message = password_policy_message(value) if isinstance(value, str) else "Invalid password"
            if message:
                field_errors.append(message)

        elif rule.type == "string":
            if not isinstance(value, str):
                field_errors.append(f"{name} must be a string")
            else:
                lo = rule.min if rule.min is not None else 1
                hi = rule.max if rule.max is not None else 1000
                if not validate_length(value, lo, hi):
                    field_errors.append(f"{name} must be between {lo} and {hi} characters")

        elif rule.type == "numeric":
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                try:
                    float(str(value))
                except ValueError:
                    field_errors.append(f"{name} must be numeric")

        elif rule.type == "date":
            if not isinstance(value, str) or not is_valid_date(value):
                field_errors.append(f"{name} must be a valid date (YYYY-MM-DD)")

        if field_errors:
            errors[name] = field_errors

    return errors
