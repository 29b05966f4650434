"""
Token helpers shared by the WebSocket bridge and the access gate,
where FastAPI's bearer dependency is not available.
"""
from typing import Optional
from starlette.requests import HTTPConnection
from config import settings
from models.profile import Profile
from utils.security import decode_access_token


def verify_token(token: Optional[str]) -> Optional[dict]:
    """
    Verify and decode an access token.
    Returns the token payload if valid, None otherwise.

    The payload contains:
    - sub: profile e-mail
    - user_id: profile database ID
    - role: admin, driver or client
    - type: token type (access, refresh)
    - exp: expiration timestamp
    """
    if not token:
        return None
    payload = decode_access_token(token)
    if not payload or "user_id" not in payload:
        return None
    return payload


def extract_token(connection: HTTPConnection) -> Optional[str]:
    """Read the access token from the Authorization header, then the session cookie"""
    authorization = connection.headers.get("Authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return connection.cookies.get(settings.access_token_cookie)


def load_active_profile(session_factory, user_id: int) -> Optional[Profile]:
    """
    Fetch an active profile in a session that is closed before returning.
    Long-lived connections (WebSockets, middleware) must not hold a pooled
    connection, so they call this through run_in_threadpool.
    """
    if session_factory is None:
        return None
    db = session_factory()
    try:
        profile = db.query(Profile).filter(Profile.id == user_id).first()
        if profile is None or not profile.is_active:
            return None
        db.expunge(profile)
        return profile
    finally:
        db.close()
