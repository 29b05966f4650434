from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, EmailStr, validator, Field
from typing import Optional
from database import get_db
from config import settings
from services.auth_service import AuthService
from services.change_feed import ChangeFeed, get_change_feed
from services.presence_service import PresenceService
from models.log import LogCategory
from models.profile import Profile, UserRole, VehicleType
from utils.auth_dependency import get_current_user
from utils.logger import DatabaseLogger, log_info
import re

router = APIRouter(prefix="/api/auth", tags=["Authentication"])

class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=100)

class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=100, description="Password (minimum 8 characters)")
    full_name: str = Field(..., min_length=2, max_length=100, description="Full name (2-100 characters)")
    phone: Optional[str] = Field(None, max_length=20)
    role: UserRole = UserRole.CLIENT
    vehicle_type: Optional[VehicleType] = None

    @validator('full_name')
    def validate_name(cls, v):
        v = ' '.join(v.split())
        if len(v) < 2:
            raise ValueError('Name must be at least 2 characters')
        # Basic XSS prevention
        if re.search(r'<\s*script|<\s*iframe|javascript:', v, re.IGNORECASE):
            raise ValueError('Invalid characters in name')
        return v

    @validator('phone')
    def validate_phone(cls, v):
        if v is not None:
            v = v.strip().replace(' ', '')
            if not re.match(r'^\+?[0-9]{7,15}$', v):
                raise ValueError('Invalid phone number format')
        return v

    @validator('password')
    def validate_password(cls, v):
        is_valid, message = AuthService.verify_password_strength(v)
        if not is_valid:
            raise ValueError(message)
        return v

    @validator('role')
    def validate_role(cls, v):
        # Admin accounts are seeded, never self-registered
        if v == UserRole.ADMIN:
            raise ValueError('Cannot sign up as admin')
        return v

class RefreshTokenRequest(BaseModel):
    refresh_token: str = Field(..., min_length=20, description="Refresh token to exchange for new access token")

class TokenResponse(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    user_id: int
    full_name: str
    role: str
    home_path: str
    expires_in: int

class UserResponse(BaseModel):
    id: int
    email: str
    full_name: str
    phone: Optional[str] = None
    role: UserRole
    vehicle_type: Optional[VehicleType] = None
    is_online: bool

    class Config:
        from_attributes = True

def _token_response(response: Response, user: Profile, tokens: dict) -> TokenResponse:
    """Mirror the access token into the cookie read by the access gate"""
    max_age = settings.access_token_expire_minutes * 60
    response.set_cookie(
        settings.access_token_cookie,
        tokens["access_token"],
        max_age=max_age,
        httponly=True,
        samesite="lax",
    )
    return TokenResponse(
        access_token=tokens["access_token"],
        refresh_token=tokens["refresh_token"],
        user_id=user.id,
        full_name=user.full_name,
        role=user.role.value,
        home_path=user.role.home_path,
        expires_in=max_age,
    )

@router.post("/signup", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def signup(request: SignupRequest, response: Response, db: Session = Depends(get_db)):
    if request.role == UserRole.DRIVER and request.vehicle_type is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Drivers must choose a vehicle type")

    user = AuthService.create_user(
        db=db,
        email=request.email,
        password=request.password,
        full_name=request.full_name,
        role=request.role,
        phone=request.phone,
        vehicle_type=request.vehicle_type,
    )
    if not user:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="E-mail already registered"
        )

    return _token_response(response, user, AuthService.generate_tokens(user))

@router.post("/login", response_model=TokenResponse)
def login(request: LoginRequest, response: Response, db: Session = Depends(get_db)):
    user = AuthService.authenticate_user(db, request.email, request.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect e-mail or password"
        )
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is deactivated")

    DatabaseLogger.log_user_activity(user_id=user.id, action="login", db=db)
    return _token_response(response, user, AuthService.generate_tokens(user))

@router.post("/refresh", response_model=TokenResponse)
def refresh_token(request: RefreshTokenRequest, response: Response, db: Session = Depends(get_db)):
    """Exchange refresh token for new access token"""
    result = AuthService.refresh_access_token(db, request.refresh_token)
    if not result:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token"
        )
    user, tokens = result
    return _token_response(response, user, tokens)

@router.post("/logout")
def logout(
    response: Response,
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
    current_user: Profile = Depends(get_current_user)
):
    """
    Sign out. Drivers are taken offline first so they stop receiving offers,
    then the session cookie is cleared.
    """
    if current_user.role == UserRole.DRIVER:
        PresenceService(db, feed).stop_tracking(current_user)

    log_info(f"User {current_user.id} signed out", category=LogCategory.AUTHENTICATION, user_id=current_user.id, db=db)
    response.delete_cookie(settings.access_token_cookie)
    return {"message": "Signed out"}

@router.get("/me", response_model=UserResponse)
def me(current_user: Profile = Depends(get_current_user)):
    return current_user
