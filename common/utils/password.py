"""
Password strength validation.

Configurable password validation. Checks run before any hashing so that
weak secrets are rejected without touching storage.

Example:
    from common.utils import validate_password

    is_valid, errors = validate_password("weakpass")
    if not is_valid:
        print("Password errors:", errors)

    # Relaxed requirements
    is_valid, errors = validate_password("longer passphrase 2024", require_uppercase=False)
"""

import re
from typing import FrozenSet, List, Optional, Tuple

SPECIAL_CHARS = r"!@#$%^&*(),.?\":{}|<>_\-+=~;'/\[\]\\`"

_COMMON_PASSWORDS: FrozenSet[str] = frozenset(
    {
        "123456",
        "password",
        "12345678",
        "qwerty",
        "123456789",
        "12345",
        "111111",
        "1234567",
        "dragon",
        "123123",
        "baseball",
        "iloveyou",
        "trustno1",
        "sunshine",
        "princess",
        "football",
        "welcome",
        "superman",
        "password1",
        "password123",
        "password1!",
        "admin",
        "letmein",
        "monkey",
        "abc123",
        "qwerty123",
        "passw0rd",
        "p@ssw0rd",
        "welcome1!",
    }
)


def check_common_passwords(
    password: str,
    common_passwords: Optional[FrozenSet[str]] = None,
) -> bool:
    """
    Check if password is in a list of common passwords.

    Args:
        password: The password to check
        common_passwords: Lower-cased passwords to reject. Uses the built-in list when None.

    Returns:
        True if password is common (should be rejected)
    """
    candidates = common_passwords if common_passwords is not None else _COMMON_PASSWORDS
    return password.lower() in candidates


def validate_password(
    password: str,
    min_length: int = 8,
    max_length: int = 128,
    require_uppercase: bool = True,
    require_lowercase: bool = True,
    require_digit: bool = True,
    require_special: bool = True,
) -> Tuple[bool, List[str]]:
    """
    Validate password strength.

    Args:
        password: The password to validate
        min_length: Minimum password length
        max_length: Maximum password length
        require_uppercase: Require at least one uppercase letter
        require_lowercase: Require at least one lowercase letter
        require_digit: Require at least one digit
        require_special: Require at least one special character

    Returns:
        Tuple of (is_valid: bool, errors: List[str])

    Examples:
        >>> validate_password("weak")[0]
        False
        >>> validate_password("Secr3t!9x")
        (True, [])
    """
    errors: List[str] = []

    if not isinstance(password, str) or not password:
        return False, ["Password is required"]

    if len(password) < min_length:
        errors.append(f"Password must be at least {min_length} characters")

    if len(password) > max_length:
        errors.append(f"Password must be no more than {max_length} characters")

    if require_uppercase and not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")

    if require_lowercase and not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")

    if require_digit and not re.search(r"\d", password):
        errors.append("Password must contain at least one digit")

    if require_special and not re.search(f"[{SPECIAL_CHARS}]", password):
        errors.append("Password must contain at least one special character")

    if check_common_passwords(password):
        errors.append("Password is too common")

    return len(errors) == 0, errors
