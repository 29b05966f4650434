"""
Role-based routing gate for the dashboard pages.

- No identity on /dashboard/*          -> /login
- Signed in on /login or /signup       -> own home (/dashboard/<role>)
- Signed in on another role's subtree  -> own home
- Signed in but profile not resolvable -> /dashboard/* denied (-> /login)

Everything else passes through untouched; the API routes enforce their
own role dependencies.
"""
from typing import Optional
import logging
from fastapi import Request
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from models.profile import UserRole
from utils.auth import extract_token, load_active_profile, verify_token

logger = logging.getLogger(__name__)

LOGIN_PATH = "/login"
AUTH_PAGES = ("/login", "/signup")
PROTECTED_PREFIX = "/dashboard"

def is_protected(path: str) -> bool:
    return path == PROTECTED_PREFIX or path.startswith(PROTECTED_PREFIX + "/")

def resolve_route(path: str, authenticated: bool, role: Optional[UserRole]) -> Optional[str]:
    """Redirect target for path, or None to let the request through"""
    if not authenticated or role is None:
        return LOGIN_PATH if is_protected(path) else None

    home = role.home_path
    if path in AUTH_PAGES:
        return home
    if is_protected(path) and not (path == home or path.startswith(home + "/")):
        return home
    return None

def resolve_role(session_factory, user_id: int) -> Optional[UserRole]:
    """Look up the caller's role, None when the profile is missing, inactive or unreadable"""
    try:
        profile = load_active_profile(session_factory, user_id)
    except SQLAlchemyError as e:
        logger.error(f"Access gate could not resolve role for user {user_id}: {e}")
        return None
    return profile.role if profile is not None else None

class AccessGateMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if not (is_protected(path) or path in AUTH_PAGES):
            return await call_next(request)

        payload = verify_token(extract_token(request))
        role = None
        if payload is not None:
            session_factory = getattr(request.app.state, "session_factory", None)
            role = await run_in_threadpool(resolve_role, session_factory, payload["user_id"])

        target = resolve_route(path, payload is not None, role)
        if target is not None:
            return RedirectResponse(url=target, status_code=307)
        return await call_next(request)
