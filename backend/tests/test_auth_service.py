# Overview: Pytest coverage for password handling and session tokens.

from datetime import timedelta

import pytest

from conftest import PASSWORD, TEST_BCRYPT_ROUNDS
from spbu.models import SessionToken
from spbu.permissions import roles
from spbu.services import auth_service, session_service
from spbu.services.auth_service import DuplicateUserError, PasswordValidationError
from spbu.validation import ValidationError


class TestPasswords:
    @pytest.mark.parametrize("password", ["Sh0rt!", "alllower1!", "ALLUPPER1!", "NoDigits!!", "NoSpecial123"])
    def test_weak_passwords_rejected(self, password):
        """Passwords missing a required character class are rejected."""
        with pytest.raises(PasswordValidationError):
            auth_service.hash_password(password, rounds=TEST_BCRYPT_ROUNDS)

    def test_hash_and_verify(self):
        """bcrypt hash verifies the right password only."""
        hashed = auth_service.hash_password(PASSWORD, rounds=TEST_BCRYPT_ROUNDS)
        assert hashed != PASSWORD
        assert auth_service.verify_password(PASSWORD, hashed)
        assert not auth_service.verify_password("Wrong123!", hashed)

    def test_malformed_hash_never_matches(self):
        """A malformed stored hash never verifies."""
        assert not auth_service.verify_password(PASSWORD, "not-a-bcrypt-hash")


class TestUsers:
    def test_duplicate_username(self, db_session, owner):
        """Usernames are unique."""
        with pytest.raises(DuplicateUserError):
            auth_service.create_user(
                db_session, username="owner", email="other@spbu.test", password=PASSWORD,
                role=roles.OWNER, rounds=TEST_BCRYPT_ROUNDS,
            )

    def test_staff_requires_owner(self, db_session):
        """Staff roles must name the owner they work for."""
        with pytest.raises(ValidationError):
            auth_service.create_user(
                db_session, username="lonely", email="lonely@spbu.test", password=PASSWORD,
                role=roles.MANAGER, rounds=TEST_BCRYPT_ROUNDS,
            )

    def test_authenticate(self, db_session, manager):
        """Username or email plus password resolves the user."""
        assert auth_service.authenticate(db_session, "manager", PASSWORD) == manager
        assert auth_service.authenticate(db_session, "manager@spbu.test", PASSWORD) == manager
        assert manager.last_login_at is not None
        assert auth_service.authenticate(db_session, "manager", "Wrong123!") is None
        assert auth_service.authenticate(db_session, "nobody", PASSWORD) is None

    def test_inactive_user_cannot_authenticate(self, db_session, manager):
        """Deactivated users cannot log in."""
        manager.is_active = False
        db_session.commit()
        assert auth_service.authenticate(db_session, "manager", PASSWORD) is None


class TestSessions:
    def test_token_is_hashed_at_rest(self, db_session, manager):
        """Only the SHA-256 of a token is stored."""
        record, token = session_service.create_session(db_session, manager, user_agent="pytest")
        assert len(token) == 64
        assert record.token_hash == session_service.hash_token(token)
        assert db_session.query(SessionToken).filter_by(token_hash=token).first() is None

    def test_validate_and_revoke(self, db_session, manager):
        """A revoked token no longer validates."""
        _, token = session_service.create_session(db_session, manager)
        assert session_service.validate_session(db_session, token) == manager

        assert session_service.revoke_session(db_session, token) is True
        assert session_service.validate_session(db_session, token) is None
        assert session_service.revoke_session(db_session, token) is False

    def test_idle_session_revoked(self, db_session, manager):
        """Idle sessions are revoked on validation."""
        record, token = session_service.create_session(db_session, manager)
        record.last_used_at = record.last_used_at - session_service.SESSION_IDLE_TIMEOUT - timedelta(minutes=1)
        db_session.commit()

        assert session_service.validate_session(db_session, token) is None
        db_session.refresh(record)
        assert record.is_revoked is True

    def test_expired_session(self, db_session, manager):
        """Sessions past their absolute expiry are refused."""
        record, token = session_service.create_session(db_session, manager)
        record.expires_at = record.created_at - timedelta(seconds=1)
        db_session.commit()
        assert session_service.validate_session(db_session, token) is None

    def test_deactivated_user_session_revoked(self, db_session, manager):
        """Deactivating a user revokes their session on next use."""
        record, token = session_service.create_session(db_session, manager)
        manager.is_active = False
        db_session.commit()

        assert session_service.validate_session(db_session, token) is None
        db_session.refresh(record)
        assert record.is_revoked is True
