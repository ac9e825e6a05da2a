"""
Tests for identifier generation and validation

Also covers the error hierarchy's status codes, which the API maps
straight onto responses.
"""

import pytest

from database.id_generation import (
    GROUP_PREFIX,
    WEEK_PREFIX,
    generate_id,
    generate_invite_token,
    validate_id,
)
from exceptions import (
    DatabaseConnectionError,
    DataIntegrityError,
    ForbiddenError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
    ServiceError,
)


class TestGenerateId:
    """Prefixed random ids and invite tokens"""

    def test_prefixed_and_valid(self):
        """Generated id carries its prefix and validates"""
        week_id = generate_id(WEEK_PREFIX)
        assert week_id.startswith("wk_")
        assert validate_id(week_id, WEEK_PREFIX)

    def test_unique(self):
        """Ids do not repeat across many draws"""
        assert len({generate_id(GROUP_PREFIX) for _ in range(200)}) == 200

    def test_invite_token_is_url_safe(self):
        """Invite token is 8 URL-safe characters"""
        token = generate_invite_token()
        assert len(token) == 8
        assert all(c.isalnum() or c in "-_" for c in token)


class TestValidateId:
    """Id format validation"""

    @pytest.mark.parametrize("value", [
        "",
        "grp_123",
        "grp_3f9a0c1d2b4e5f6G",
        "grp-3f9a0c1d2b4e5f60",
        "wk_3f9a0c1d2b4e5f60",
    ])
    def test_rejects(self, value):
        """Wrong prefix, length, case or separator fails validation"""
        assert not validate_id(value, GROUP_PREFIX)

    def test_accepts(self):
        """Well-formed id passes"""
        assert validate_id("grp_3f9a0c1d2b4e5f60", GROUP_PREFIX)


class TestErrorHierarchy:
    """Service errors and their HTTP status codes"""

    @pytest.mark.parametrize("error,status", [
        (NotFoundError("Group not found", entity="group"), 404),
        (ForbiddenError("Admin access required"), 403),
        (InvalidStateError("Voting is closed"), 400),
        (InvalidInputError("Invalid verse range", field="start_verse", value=0), 422),
        (ServiceError("Conflict", status_code=409), 409),
    ])
    def test_status_codes(self, error, status):
        """Each error class carries its status code"""
        assert error.status_code == status

    def test_message_kept_separate_from_context(self):
        """Message stays clean; context shows only in str()"""
        error = InvalidInputError("Invalid verse range", field="start_verse", value=0)
        assert error.message == "Invalid verse range"
        assert "field=start_verse" in str(error)

    def test_retryable_only_for_connection_errors(self):
        """Only connection errors are retryable"""
        assert DatabaseConnectionError("pool down").is_retryable
        assert not DataIntegrityError("duplicate", table="votes").is_retryable
        assert not NotFoundError("Week not found").is_retryable
