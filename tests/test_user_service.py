import pytest

from codearena.core.exceptions import AccountLockedError, DuplicateUsernameError, InvalidCredentialsError
from codearena.core.security import decode_access_token
from codearena.schemas.user import UserCreate, UserRole
from codearena.services.user_service import user_service


def _register(db, username="Alice", password="password123", role=UserRole.PARTICIPANT):
    return user_service.create_user(db, UserCreate(username=username, password=password, role=role))


def test_create_user_lowercases_and_hashes(db):
    user = _register(db)

    assert user.username == "alice"
    assert user.password_hash != "password123"
    assert user.role == "participant"


def test_duplicate_username_is_rejected(db):
    _register(db)

    with pytest.raises(DuplicateUsernameError):
        _register(db, username="ALICE")


def test_authenticate_updates_last_login(db):
    _register(db)

    user = user_service.authenticate_user(db, " Alice ", "password123")

    assert user.last_login is not None
    assert user.failed_login_attempts == 0


def test_wrong_password_counts_failures_then_locks(db):
    _register(db)

    for _ in range(user_service.MAX_FAILED_ATTEMPTS - 1):
        with pytest.raises(InvalidCredentialsError):
            user_service.authenticate_user(db, "alice", "nope")

    with pytest.raises(AccountLockedError):
        user_service.authenticate_user(db, "alice", "nope")

    # Correct password is refused while locked.
    with pytest.raises(AccountLockedError):
        user_service.authenticate_user(db, "alice", "password123")


def test_unknown_and_disabled_users_look_identical(db):
    user = _register(db)
    user.is_active = False
    db.commit()

    with pytest.raises(InvalidCredentialsError):
        user_service.authenticate_user(db, "alice", "password123")
    with pytest.raises(InvalidCredentialsError):
        user_service.authenticate_user(db, "nobody", "password123")


def test_issued_token_carries_id_and_role(db):
    user = _register(db, username="root", role=UserRole.ADMIN)

    payload = decode_access_token(user_service.issue_access_token(user))

    assert payload["sub"] == str(user.id)
    assert payload["role"] == "admin"
