from dataclasses import dataclass
from typing import Optional
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from config import settings
from database import get_db
from models.profile import Profile, UserRole
from utils.security import decode_token

security = HTTPBearer(auto_error=False)

def _unauthorized(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )

async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> Profile:
    token = credentials.credentials if credentials else request.cookies.get(settings.access_token_cookie)
    if not token:
        raise _unauthorized("Not authenticated")

    payload = decode_token(token)
    if payload is None:
        raise _unauthorized()

    user_id = payload.get("user_id")
    if not isinstance(user_id, int):
        raise _unauthorized()

    user = db.query(Profile).filter(Profile.id == user_id).first()
    if user is None:
        raise _unauthorized("User not found")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is deactivated")

    return user

@dataclass
class SessionContext:
    """Per-request view of who is calling, passed explicitly into services"""
    user: Profile

    @property
    def user_id(self) -> int:
        return self.user.id

    @property
    def role(self) -> UserRole:
        return self.user.role

    @property
    def is_admin(self) -> bool:
        return self.user.role == UserRole.ADMIN

    @property
    def is_driver(self) -> bool:
        return self.user.role == UserRole.DRIVER

    @property
    def is_client(self) -> bool:
        return self.user.role == UserRole.CLIENT

async def get_session_context(current_user: Profile = Depends(get_current_user)) -> SessionContext:
    return SessionContext(user=current_user)

async def get_current_admin(current_user: Profile = Depends(get_current_user)) -> Profile:
    if current_user.role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return current_user

async def get_current_driver(current_user: Profile = Depends(get_current_user)) -> Profile:
    if current_user.role != UserRole.DRIVER:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Driver access required"
        )
    return current_user

async def get_current_client(current_user: Profile = Depends(get_current_user)) -> Profile:
    if current_user.role != UserRole.CLIENT:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Client access required"
        )
    return current_user
