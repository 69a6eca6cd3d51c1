import pytest

from authsessions.config import settings
from authsessions.core.exceptions import InvalidCredentialsError, ValidationError
from authsessions.core.timeutil import utcnow
from authsessions.services.user_service import user_service

from conftest import PASSWORD


def test_authenticate_is_case_insensitive_on_email(db, user):
    assert user_service.authenticate_user(db, "Alice@Example.com", PASSWORD).id == user.id


def test_unknown_email_and_wrong_password_look_alike(db, user):
    with pytest.raises(InvalidCredentialsError) as unknown:
        user_service.authenticate_user(db, "nobody@example.com", PASSWORD)
    with pytest.raises(InvalidCredentialsError) as wrong:
        user_service.authenticate_user(db, user.email, "wrong-password")
    assert unknown.value.message == wrong.value.message


def test_inactive_user_cannot_authenticate(db):
    user_service.create_user(db, "off@example.com", PASSWORD, is_active=False)
    with pytest.raises(InvalidCredentialsError):
        user_service.authenticate_user(db, "off@example.com", PASSWORD)


def test_lockout_after_repeated_failures(db, user):
    for _ in range(settings.MAX_FAILED_LOGIN_ATTEMPTS):
        with pytest.raises(InvalidCredentialsError):
            user_service.authenticate_user(db, user.email, "wrong-password")

    db.refresh(user)
    assert user.locked_until is not None
    assert user.locked_until > utcnow()

    # Even the right password is refused while locked
    with pytest.raises(InvalidCredentialsError):
        user_service.authenticate_user(db, user.email, PASSWORD)


def test_locked_account_looks_like_unknown_email(db, user):
    for _ in range(settings.MAX_FAILED_LOGIN_ATTEMPTS):
        with pytest.raises(InvalidCredentialsError):
            user_service.authenticate_user(db, user.email, "wrong-password")

    with pytest.raises(InvalidCredentialsError) as locked:
        user_service.authenticate_user(db, user.email, "wrong-password")
    with pytest.raises(InvalidCredentialsError) as unknown:
        user_service.authenticate_user(db, "nobody@example.com", "wrong-password")

    assert locked.value.message == unknown.value.message
    assert locked.value.details == unknown.value.details == {}


def test_duplicate_email_is_rejected(db, user):
    with pytest.raises(ValidationError):
        user_service.create_user(db, "ALICE@example.com", "x")
