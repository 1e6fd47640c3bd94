"""
Validation helpers for the sign-up and sign-in forms.

Every check returns a ValidationResult instead of raising, so callers can show
the message inline. Rules are evaluated in order and only the first failure
is reported.
"""
import re

from parrot.models.validation import ValidationResult

PASSWORD_MIN_LENGTH = 8
EMAIL_MAX_LENGTH = 254
EMAIL_LOCAL_PART_MAX_LENGTH = 64

EMAIL_PATTERN = re.compile(r"[A-Za-z0-9._-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,6}")

PASSWORD_TOO_SHORT = f"Password must be at least {PASSWORD_MIN_LENGTH} characters"
PASSWORD_NEEDS_UPPERCASE = "Password must contain an uppercase letter"
PASSWORD_NEEDS_LOWERCASE = "Password must contain a lowercase letter"
PASSWORD_NEEDS_DIGIT = "Password must contain a number"

EMAIL_REQUIRED = "Email address is required"
EMAIL_INVALID_FORMAT = "Please enter a valid email address"
EMAIL_TOO_LONG = f"Email address must be at most {EMAIL_MAX_LENGTH} characters"
EMAIL_LOCAL_PART_TOO_LONG = (
    f"The part before @ must be at most {EMAIL_LOCAL_PART_MAX_LENGTH} characters"
)


def _invalid(message: str) -> ValidationResult:
    return ValidationResult(isValid=False, message=message)


def validate_password_strength(password: str) -> ValidationResult:
    """Check password length, then uppercase, lowercase and digit presence."""
    if len(password) < PASSWORD_MIN_LENGTH:
        return _invalid(PASSWORD_TOO_SHORT)
    if not re.search(r"[A-Z]", password):
        return _invalid(PASSWORD_NEEDS_UPPERCASE)
    if not re.search(r"[a-z]", password):
        return _invalid(PASSWORD_NEEDS_LOWERCASE)
    if not re.search(r"[0-9]", password):
        return _invalid(PASSWORD_NEEDS_DIGIT)
    return ValidationResult(isValid=True, message="")


def validate_email_format(email: str) -> ValidationResult:
    """Check that an email is present, well formed, and within length limits.

    The length limits are checked after the pattern, so an overlong address
    that is also malformed reports the format message.
    """
    if not email:
        return _invalid(EMAIL_REQUIRED)
    if not EMAIL_PATTERN.fullmatch(email):
        return _invalid(EMAIL_INVALID_FORMAT)
    if len(email) > EMAIL_MAX_LENGTH:
        return _invalid(EMAIL_TOO_LONG)
    local_part = email.split("@", 1)[0]
    if len(local_part) > EMAIL_LOCAL_PART_MAX_LENGTH:
        return _invalid(EMAIL_LOCAL_PART_TOO_LONG)
    return ValidationResult(isValid=True, message="")
