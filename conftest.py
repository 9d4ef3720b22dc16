"""Shared pytest fixtures."""
import pytest

from softfocus.shared.utils import configure_log_salt

TEST_LOG_SALT = "test_salt_that_is_at_least_32_characters_long"


@pytest.fixture(autouse=True)
def log_salt():
    """Every test runs with identifier hashing configured."""
    configure_log_salt(TEST_LOG_SALT)
    yield TEST_LOG_SALT
