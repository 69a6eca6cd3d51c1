import logging
from datetime import timedelta

from sqlalchemy import update

from authsessions.config import settings
from authsessions.core.security import generate_refresh_secret, verify_access_token
from authsessions.core.timeutil import utcnow
from authsessions.models.session import AuthSession, RevocationReason, SessionState
from authsessions.services.request_context import RequestContext
from authsessions.services.rotation_engine import RotationEngine, RotationOutcome
from authsessions.services.session_store import SessionStore


def _start_lineage(db, user_id, expires_in=timedelta(hours=1)):
    now = utcnow()
    raw, token_hash = generate_refresh_secret()
    session = SessionStore.create_session(
        db,
        user_id=user_id,
        token_hash=token_hash,
        remember_me=False,
        expires_at=now + expires_in,
        context=RequestContext(),
        now=now,
    )
    session_id = session.id
    db.commit()
    return session_id, raw


def _state(db, session_id):
    db.expire_all()
    return db.get(AuthSession, session_id)


def _last_used(db, session_id, ago):
    db.execute(update(AuthSession).where(AuthSession.id == session_id).values(last_activity_at=utcnow() - ago))
    db.commit()


def test_rotation_issues_new_secret_and_keeps_lineage(db, user):
    session_id, raw = _start_lineage(db, user.id)
    engine = RotationEngine(store=SessionStore())

    result = engine.rotate(db, raw, RequestContext(ip_address="192.0.2.7"))

    assert result.ok
    assert result.outcome is RotationOutcome.ROTATED
    assert result.session_id == session_id
    assert result.refresh_token != raw
    check = verify_access_token(result.access_token)
    assert check.session_id == session_id
    assert check.user_id == user.id

    session = _state(db, session_id)
    assert session.state == SessionState.ACTIVE.value
    assert session.ip_address == "192.0.2.7"
    assert len(SessionStore.live_entries(db, session_id)) == 1


def test_chained_rotations_stay_on_one_lineage(db, user):
    session_id, raw = _start_lineage(db, user.id)
    engine = RotationEngine(store=SessionStore())

    for _ in range(3):
        result = engine.rotate(db, raw)
        assert result.ok
        assert result.session_id == session_id
        raw = result.refresh_token

    assert len(_state(db, session_id).token_history) == 4


def test_unknown_secret_is_invalid(db, user):
    _start_lineage(db, user.id)
    result = RotationEngine(store=SessionStore()).rotate(db, "never-issued")
    assert result.outcome is RotationOutcome.INVALID
    assert result.session_id is None


def test_reuse_revokes_the_whole_lineage(db, user, caplog):
    session_id, first = _start_lineage(db, user.id)
    engine = RotationEngine(store=SessionStore())

    second = engine.rotate(db, first).refresh_token

    with caplog.at_level(logging.WARNING, logger="authsessions.security"):
        reused = engine.rotate(db, first)

    assert reused.outcome is RotationOutcome.REUSE_DETECTED
    assert reused.session_id == session_id
    assert any("reuse detected" in r.getMessage() for r in caplog.records)

    session = _state(db, session_id)
    assert session.state == SessionState.REVOKED.value
    assert session.revoked_reason == RevocationReason.REUSE_DETECTED.value
    assert SessionStore.live_entries(db, session_id) == []

    # The legitimate holder's newest secret is dead too
    assert engine.rotate(db, second).outcome is RotationOutcome.REUSE_DETECTED


def test_reuse_leaves_other_lineages_alone(db, user):
    victim_id, victim_raw = _start_lineage(db, user.id)
    other_id, other_raw = _start_lineage(db, user.id)
    engine = RotationEngine(store=SessionStore())

    engine.rotate(db, victim_raw)
    assert engine.rotate(db, victim_raw).outcome is RotationOutcome.REUSE_DETECTED

    assert _state(db, other_id).is_active
    assert engine.rotate(db, other_raw).ok
    assert not _state(db, victim_id).is_active


def test_secret_of_terminated_session_cannot_rotate(db, user):
    session_id, raw = _start_lineage(db, user.id)
    SessionStore.revoke_session(db, session_id, reason="terminated", now=utcnow())
    db.commit()

    result = RotationEngine(store=SessionStore()).rotate(db, raw)

    assert result.outcome is RotationOutcome.REUSE_DETECTED
    # Terminal state keeps its original reason
    assert _state(db, session_id).revoked_reason == "terminated"


def test_expired_lineage_is_revoked(db, user):
    session_id, raw = _start_lineage(db, user.id, expires_in=timedelta(seconds=-1))

    result = RotationEngine(store=SessionStore()).rotate(db, raw)

    assert result.outcome is RotationOutcome.EXPIRED
    session = _state(db, session_id)
    assert session.state == SessionState.REVOKED.value
    assert session.revoked_reason == RevocationReason.EXPIRED.value


def test_idle_lineage_is_revoked(db, user, monkeypatch):
    monkeypatch.setattr(settings, "SESSION_IDLE_TIMEOUT_MINUTES", 30)
    session_id, raw = _start_lineage(db, user.id)
    _last_used(db, session_id, timedelta(minutes=31))

    result = RotationEngine(store=SessionStore()).rotate(db, raw)

    assert result.outcome is RotationOutcome.IDLE_TIMEOUT
    assert result.session_id == session_id
    session = _state(db, session_id)
    assert session.state == SessionState.REVOKED.value
    assert session.revoked_reason == RevocationReason.IDLE_TIMEOUT.value
    assert SessionStore.live_entries(db, session_id) == []


def test_rotation_resets_the_idle_clock(db, user, monkeypatch):
    monkeypatch.setattr(settings, "SESSION_IDLE_TIMEOUT_MINUTES", 30)
    session_id, raw = _start_lineage(db, user.id)
    _last_used(db, session_id, timedelta(minutes=29))
    engine = RotationEngine(store=SessionStore())

    result = engine.rotate(db, raw)
    assert result.ok
    _last_used(db, session_id, timedelta(minutes=29))

    assert engine.rotate(db, result.refresh_token).ok


def test_zero_idle_timeout_disables_the_check(db, user, monkeypatch):
    monkeypatch.setattr(settings, "SESSION_IDLE_TIMEOUT_MINUTES", 0)
    session_id, raw = _start_lineage(db, user.id)
    _last_used(db, session_id, timedelta(days=365))

    assert RotationEngine(store=SessionStore()).rotate(db, raw).ok


def test_inactive_user_cannot_rotate(db, user):
    session_id, raw = _start_lineage(db, user.id)
    user.is_active = False
    db.commit()

    result = RotationEngine(store=SessionStore()).rotate(db, raw)

    assert result.outcome is RotationOutcome.INVALID
    assert _state(db, session_id).revoked_reason == RevocationReason.USER_INACTIVE.value


def test_concurrent_rotation_has_exactly_one_winner(db, session_factory, user, monkeypatch):
    session_id, raw = _start_lineage(db, user.id)
    store = SessionStore()
    engine = RotationEngine(store=store, max_attempts=3)
    competitor = []

    def advance_after_competitor(db_, **kwargs):
        # Another instance rotates the same secret between our read and our write
        if not competitor:
            other_db = session_factory()
            try:
                competitor.append(RotationEngine(store=SessionStore()).rotate(other_db, raw))
            finally:
                other_db.close()
        return SessionStore.advance_lineage(db_, **kwargs)

    monkeypatch.setattr(store, "advance_lineage", advance_after_competitor)

    loser = engine.rotate(db, raw)
    winner = competitor[0]

    assert winner.outcome is RotationOutcome.ROTATED
    assert loser.outcome is RotationOutcome.REUSE_DETECTED
    assert not _state(db, session_id).is_active


def test_gives_up_after_repeated_contention(db, user, monkeypatch):
    session_id, raw = _start_lineage(db, user.id)
    store = SessionStore()
    calls = {"advance": 0}

    def always_lose(db_, **kwargs):
        calls["advance"] += 1
        return False

    monkeypatch.setattr(store, "advance_lineage", always_lose)

    result = RotationEngine(store=store, max_attempts=2).rotate(db, raw)

    assert result.outcome is RotationOutcome.INVALID
    assert calls["advance"] == 2
    # Nothing was revoked; the secret is still live
    assert _state(db, session_id).is_active
    assert len(SessionStore.live_entries(db, session_id)) == 1


def test_termination_during_rotation_wins(db, session_factory, user, monkeypatch):
    session_id, raw = _start_lineage(db, user.id)
    store = SessionStore()

    def advance_after_termination(db_, **kwargs):
        other_db = session_factory()
        try:
            SessionStore.revoke_session(other_db, session_id, reason="terminated", now=utcnow())
            other_db.commit()
        finally:
            other_db.close()
        return SessionStore.advance_lineage(db_, **kwargs)

    monkeypatch.setattr(store, "advance_lineage", advance_after_termination)

    result = RotationEngine(store=store).rotate(db, raw)

    assert not result.ok
    session = _state(db, session_id)
    assert session.state == SessionState.REVOKED.value
    assert session.revoked_reason == "terminated"
