"""Password hashing and strength policy."""

import re
from typing import Callable, NamedTuple

import bcrypt
import structlog

logger = structlog.get_logger(__name__)

MIN_PASSWORD_LENGTH = 8
# bcrypt only looks at the first 72 bytes
MAX_PASSWORD_BYTES = 72
SPECIAL_CHARACTERS = re.compile(r"[!@#$%^&*(),.?\":{}|<>\-_=+\[\]\\/;'`~]")


class PasswordRule(NamedTuple):
    name: str
    check: Callable[[str], bool]
    message: str


PASSWORD_RULES: tuple[PasswordRule, ...] = (
    PasswordRule(
        "min_length",
        lambda p: len(p) >= MIN_PASSWORD_LENGTH,
        f"Password is too short (minimum {MIN_PASSWORD_LENGTH} characters)",
    ),
    PasswordRule(
        "max_length",
        lambda p: len(p.encode("utf-8")) <= MAX_PASSWORD_BYTES,
        f"Password is too long (maximum {MAX_PASSWORD_BYTES} bytes)",
    ),
    PasswordRule(
        "uppercase",
        lambda p: any(c.isupper() for c in p),
        "Password is missing an uppercase letter",
    ),
    PasswordRule(
        "lowercase",
        lambda p: any(c.islower() for c in p),
        "Password is missing a lowercase letter",
    ),
    PasswordRule(
        "digit",
        lambda p: any(c.isdigit() for c in p),
        "Password is missing a digit",
    ),
    PasswordRule(
        "special",
        lambda p: SPECIAL_CHARACTERS.search(p) is not None,
        "Password is missing a special character",
    ),
)


def check_password_strength(password: str) -> list[str]:
    """Run every policy rule independently.

    Args:
        password: Candidate password

    Returns:
        Messages of all violated rules; empty if the password is acceptable
    """
    return [rule.message for rule in PASSWORD_RULES if not rule.check(password)]


def hash_password(password: str, rounds: int = 12) -> str:
    """Hash a password using bcrypt.

    Args:
        password: Plain-text password to hash
        rounds: bcrypt cost factor

    Returns:
        Bcrypt hash string
    """
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against a bcrypt hash.

    Returns:
        True if the password matches, False otherwise (including for an
        unusable hash or an over-long password)
    """
    try:
        return bcrypt.checkpw(
            password.encode("utf-8"),
            password_hash.encode("utf-8"),
        )
    except ValueError as e:
        logger.warning("password_verify_failed", error=str(e))
        return False
