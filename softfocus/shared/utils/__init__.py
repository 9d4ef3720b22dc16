"""Shared utilities for the SoftFocus crisis pipeline."""
from .pii import (
    configure_log_salt,
    fingerprint_text,
    hash_for_error_log,
    hash_identifier,
    is_log_salt_configured,
)
from .logging_config import configure_logging

__all__ = [
    "configure_log_salt",
    "fingerprint_text",
    "hash_for_error_log",
    "hash_identifier",
    "is_log_salt_configured",
    "configure_logging",
]
