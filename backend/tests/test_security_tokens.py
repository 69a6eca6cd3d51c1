from datetime import timedelta

from jose import jwt

from authsessions.config import settings
from authsessions.core.security import (
    REFRESH_SECRET_BYTES,
    create_access_token,
    decode_access_token,
    generate_refresh_secret,
    hash_refresh_secret,
    refresh_lifetime,
    verify_access_token,
)


def test_access_token_round_trip():
    token, expires_in = create_access_token(7, "session-abc")
    payload = decode_access_token(token)
    assert payload is not None
    assert payload["sub"] == "7"
    assert payload["sid"] == "session-abc"
    assert payload["typ"] == "access"
    assert expires_in == settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60


def test_access_token_check_exposes_user_and_session():
    token, _ = create_access_token(42, "sid-42")
    check = verify_access_token(token)
    assert check.valid
    assert check.user_id == 42
    assert check.session_id == "sid-42"


def test_expired_access_token_is_reported_as_expired():
    token, _ = create_access_token(1, "sid", expires_delta=timedelta(seconds=-5))
    check = verify_access_token(token)
    assert not check.valid
    assert check.error == "expired"
    assert decode_access_token(token) is None


def test_tampered_signature_is_rejected():
    token, _ = create_access_token(1, "sid")
    forged = jwt.encode(jwt.get_unverified_claims(token), "some-other-key", algorithm=settings.ALGORITHM)
    check = verify_access_token(forged)
    assert check.error == "invalid_signature"


def test_garbage_token_is_malformed():
    assert verify_access_token("not-a-jwt").error == "malformed"


def test_access_token_rejects_other_typ():
    token = jwt.encode(
        {"sub": "1", "sid": "sid", "typ": "refresh"},
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
    )
    assert verify_access_token(token).error == "wrong_type"
    assert decode_access_token(token) is None


def test_access_token_without_session_claim_is_malformed():
    token = jwt.encode({"sub": "1", "typ": "access"}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    assert verify_access_token(token).error == "malformed"


def test_refresh_secret_is_opaque_and_hashed():
    raw, token_hash = generate_refresh_secret()
    assert len(raw) >= REFRESH_SECRET_BYTES
    assert token_hash == hash_refresh_secret(raw)
    assert raw not in token_hash
    assert len(token_hash) == 64


def test_refresh_secrets_are_unique():
    secrets_seen = {generate_refresh_secret()[0] for _ in range(50)}
    assert len(secrets_seen) == 50


def test_refresh_lifetime_depends_on_remember_me():
    assert refresh_lifetime(False) == timedelta(hours=settings.REFRESH_TOKEN_EXPIRE_HOURS)
    assert refresh_lifetime(True) == timedelta(days=settings.REMEMBER_ME_REFRESH_TOKEN_EXPIRE_DAYS)
    assert refresh_lifetime(True) > refresh_lifetime(False)
