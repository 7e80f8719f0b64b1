"""
Password Policy Validation

Requirements:
- 8 to 72 characters (bcrypt limit)
- At least 1 letter and 1 digit
- Not in common password blocklist
"""
import re
from typing import Tuple, List

COMMON_PASSWORDS = {
    "password", "password1", "password123", "12345678", "123456789", "1234567890",
    "qwerty123", "abc12345", "letmein1", "welcome1", "iloveyou1", "senha123",
    "mudar123", "admin123", "macrofit", "macrofit1", "macrofit123", "fitness1",
    "academia1", "treino123",
}


def validate_password(password: str) -> Tuple[bool, List[str]]:
    """
    Validate password against the policy.

    Returns:
        Tuple of (is_valid, list_of_error_messages)
    """
    errors = []

    if len(password) < 8:
        errors.append("Password must be at least 8 characters")

    if len(password) > 72:
        errors.append("Password must not exceed 72 characters (bcrypt limit)")

    if not re.search(r"[A-Za-z]", password):
        errors.append("Password must contain at least one letter")

    if not re.search(r"\d", password):
        errors.append("Password must contain at least one digit")

    if password.lower() in COMMON_PASSWORDS:
        errors.append("Password is too common, please choose a stronger password")

    return len(errors) == 0, errors
