"""Identifier hashing for logs.

Patient and psychologist identifiers never appear raw in application logs.
Every log line that references a user carries a salted SHA-256 hash instead,
so log lines about the same user still correlate.
"""
import hashlib
import logging
from typing import Optional

logger = logging.getLogger(__name__)

MIN_SALT_LENGTH = 32

# Loaded from the environment (or Secrets Manager) at startup
_LOG_SALT: Optional[str] = None


def configure_log_salt(salt: str) -> None:
    """Configure the salt used by hash_identifier.

    Must be called during application startup before any user is logged.

    Args:
        salt: Secret salt value

    Raises:
        ValueError: If salt is empty or shorter than MIN_SALT_LENGTH
    """
    global _LOG_SALT
    if not salt or len(salt) < MIN_SALT_LENGTH:
        logger.critical(
            "LOG_SALT_CONFIGURATION_FAILED",
            extra={"reason": "Salt too short or empty", "min_length": MIN_SALT_LENGTH}
        )
        raise ValueError(f"Log salt must be at least {MIN_SALT_LENGTH} characters")

    _LOG_SALT = salt
    logger.info("LOG_SALT_CONFIGURED", extra={"salt_length": len(salt)})


def is_log_salt_configured() -> bool:
    return _LOG_SALT is not None


def hash_identifier(value: Optional[str]) -> Optional[str]:
    """Hash a user identifier for logging.

    Args:
        value: Patient, psychologist or user id; None passes through

    Returns:
        64-char hex digest, or None for None

    Raises:
        RuntimeError: If the salt has not been configured
    """
    if value is None:
        return None

    if _LOG_SALT is None:
        raise RuntimeError("Log salt not configured. Call configure_log_salt() first.")

    salted = f"{_LOG_SALT}{value}"
    return hashlib.sha256(salted.encode()).hexdigest()


def hash_for_error_log(value: Optional[str]) -> Optional[str]:
    """hash_identifier for failure paths that must not raise.

    Returns None instead of raising when the salt is not configured.
    """
    if _LOG_SALT is None:
        return None
    return hash_identifier(value)

def fingerprint_text(text: str) -> str:
    """Unsalted SHA-256 of message text, for matching without storing content."""
    return hashlib.sha256(text.encode()).hexdigest()
