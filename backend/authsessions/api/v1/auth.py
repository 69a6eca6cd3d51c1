"""Authentication and session-management routes"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import Optional

from authsessions.core.database import get_db
from authsessions.core.exceptions import AuthenticationError
from authsessions.schemas.audit import AuditDetails
from authsessions.schemas.auth import (
    AllSessionsTerminatedResponse,
    LoginRequest,
    LoginResponse,
    LogoutRequest,
    MessageResponse,
    RefreshTokenRequest,
    SessionItem,
    SessionsListResponse,
    TerminateAllSessionsRequest,
    TokenRefreshResponse,
    UserResponse,
)
from authsessions.services.audit_service import audit_service
from authsessions.services.request_context import RequestContext
from authsessions.services.session_issuer import session_issuer
from authsessions.services.session_registry import session_registry
from authsessions.services.user_service import user_service
from authsessions.api.deps import (
    AuthenticatedCaller,
    enforce_login_rate_limit,
    enforce_refresh_rate_limit,
    get_current_caller,
    get_current_user,
    get_request_context,
)
from authsessions.models.user import User

router = APIRouter()


@router.post(
    "/login",
    response_model=LoginResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(enforce_login_rate_limit)],
)
def login(
    credentials: LoginRequest,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """
    Login endpoint - verify credentials and start a new session lineage

    Args:
        credentials: Email, password and rememberMe flag
        context: Client metadata for the session list
        db: Database session

    Returns:
        Access token, refresh token and user info
    """
    try:
        user = user_service.authenticate_user(db, credentials.email, credentials.password)
    except AuthenticationError as exc:
        audit_service.log_event(
            db,
            user_id=None,
            action="login_failed",
            ip_address=context.ip_address,
            details=AuditDetails(email=credentials.email, reason=exc.message),
        )
        raise

    bundle = session_issuer.login(db, user, context, remember_me=credentials.remember_me)

    return LoginResponse(
        access_token=bundle.access_token,
        refresh_token=bundle.refresh_token,
        token_type="Bearer",
        expires_in=bundle.expires_in,
        user=UserResponse.model_validate(user),
    )


@router.post(
    "/refresh",
    response_model=TokenRefreshResponse,
    dependencies=[Depends(enforce_refresh_rate_limit)],
)
def refresh_token(
    req: RefreshTokenRequest,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """
    Exchange a refresh token for a new access token and a new refresh token

    The presented refresh token is consumed. Presenting it again revokes the
    whole session.
    """
    bundle = session_issuer.refresh(db, req.refresh_token, context)

    return TokenRefreshResponse(
        access_token=bundle.access_token,
        refresh_token=bundle.refresh_token,
        token_type="Bearer",
        expires_in=bundle.expires_in,
    )


@router.post("/logout", response_model=MessageResponse)
def logout(
    body: Optional[LogoutRequest] = None,
    caller: AuthenticatedCaller = Depends(get_current_caller),
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """Logout endpoint - revoke the presented refresh token's session, or the current one"""
    session_issuer.logout(
        db,
        caller.user.id,
        refresh_token=body.refresh_token if body else None,
        current_session_id=caller.session_id,
        context=context,
    )
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserResponse)
def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Get current user information"""
    return UserResponse.model_validate(current_user)


@router.get("/sessions", response_model=SessionsListResponse)
def list_sessions(
    caller: AuthenticatedCaller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    """
    List the caller's active sessions

    The session the access token was issued for is marked ``current``.
    """
    summaries = session_registry.list_sessions(db, caller.user.id, caller.session_id)
    return SessionsListResponse(
        sessions=[
            SessionItem(
                id=summary.id,
                device=summary.device,
                browser=summary.browser,
                ip=summary.ip,
                last_activity=summary.last_activity,
                created_at=summary.created_at,
                current=summary.current,
            )
            for summary in summaries
        ]
    )


# Registered before /sessions/{session_id} so "all" is not taken as an id
@router.delete("/sessions/all", response_model=AllSessionsTerminatedResponse)
def terminate_all_sessions(
    body: Optional[TerminateAllSessionsRequest] = None,
    caller: AuthenticatedCaller = Depends(get_current_caller),
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """
    Terminate all of the caller's sessions

    With ``keepCurrent`` the caller's own session survives. It is identified
    by ``refresh_token`` when supplied, otherwise by the access token.
    """
    keep_session_id = None
    if body is not None and body.keep_current:
        keep_session_id = session_registry.resolve_current_session_id(
            db,
            caller.user.id,
            refresh_token=body.refresh_token,
            fallback_session_id=caller.session_id,
        )

    count = session_registry.terminate_all(db, caller.user.id, keep_session_id=keep_session_id)

    audit_service.log_event(
        db,
        user_id=caller.user.id,
        action="all_sessions_terminated",
        ip_address=context.ip_address,
        details=AuditDetails(count=count, preserved_current=keep_session_id is not None),
    )
    return AllSessionsTerminatedResponse(message="All sessions terminated", count=count)


@router.delete("/sessions/{session_id}", response_model=MessageResponse)
def terminate_session(
    session_id: str,
    caller: AuthenticatedCaller = Depends(get_current_caller),
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """Terminate one of the caller's sessions; anything else answers 403"""
    session_registry.terminate(db, caller.user.id, session_id)

    audit_service.log_event(
        db,
        user_id=caller.user.id,
        action="session_terminated",
        ip_address=context.ip_address,
        details=AuditDetails(session_id=session_id),
    )
    return MessageResponse(message="Session terminated")
