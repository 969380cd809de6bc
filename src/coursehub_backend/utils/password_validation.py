import re
from typing import List, Tuple

MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 128

_RULES = [
    (lambda p: len(p) >= MIN_PASSWORD_LENGTH, f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"),
    (lambda p: re.search(r"[A-Z]", p) is not None, "Password must contain at least one uppercase letter"),
    (lambda p: re.search(r"[a-z]", p) is not None, "Password must contain at least one lowercase letter"),
    (lambda p: re.search(r"[0-9]", p) is not None, "Password must contain at least one number"),
    (lambda p: re.search(r"[^A-Za-z0-9]", p) is not None, "Password must contain at least one special character"),
]


def validate_password(password: str) -> Tuple[bool, List[str]]:
    """
    Check a password against the strength rules.

    Returns:
        Tuple of (is_valid, list of error messages)
    """
    password = password or ""
    errors = [message for rule, message in _RULES if not rule(password)]
    if len(password) > MAX_PASSWORD_LENGTH:
        errors.append(f"Password must be at most {MAX_PASSWORD_LENGTH} characters long")
    return len(errors) == 0, errors


def password_strength(password: str) -> str:
    """Classify a password as weak, medium or strong by the number of rules it meets."""
    score = sum(1 for rule, _ in _RULES if rule(password or ""))
    if score == len(_RULES):
        return "strong"
    if score >= 3:
        return "medium"
    return "weak"
