"""
Session-token gate for every /api route except health.

Tokens are issued by the login service into ``auth_sessions``; this API only
checks them. No token -> 401, unknown/expired/revoked token -> 403.
"""
from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request
from sqlmodel import Session, select

from ricemill.core.config import settings
from ricemill.core.database import get_session
from ricemill.core.errors import AuthError
from ricemill.models.common import as_utc, utcnow
from ricemill.models.ledger import AuthSession


def extract_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return request.cookies.get(settings.AUTH_COOKIE_NAME) or None


def require_auth(request: Request, session: Session = Depends(get_session)) -> Optional[AuthSession]:
    """FastAPI dependency: the caller's session, or None when auth is disabled."""
    if not settings.AUTH_ENABLED:
        return None

    token = extract_token(request)
    if not token:
        raise AuthError("Authentication required", status_code=401)

    auth = session.exec(select(AuthSession).where(AuthSession.token == token)).first()
    if auth is None or auth.revoked or as_utc(auth.expires_at) <= utcnow():
        raise AuthError("Invalid or expired session", status_code=403)
    request.state.user = auth.username
    return auth
