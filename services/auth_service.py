from sqlalchemy.orm import Session
from models.profile import Profile, UserRole, VehicleType
from models.log import LogCategory
from utils.security import (
    verify_password, get_password_hash, create_access_token,
    create_refresh_token, decode_refresh_token, validate_password_strength
)
from utils.logger import log_info
from datetime import timedelta
from config import settings
from typing import Optional, Tuple, Dict
import logging

logger = logging.getLogger(__name__)

class AuthService:
    @staticmethod
    def normalize_email(email: str) -> str:
        return email.strip().lower()

    @staticmethod
    def authenticate_user(db: Session, email: str, password: str) -> Optional[Profile]:
        """Authenticate a profile with e-mail and password"""
        email = AuthService.normalize_email(email)
        user = db.query(Profile).filter(Profile.email == email).first()
        if not user:
            logger.warning(f"Login attempt with unknown e-mail: {email[:3]}****")
            return None
        if not verify_password(password, user.password_hash):
            logger.warning(f"Failed login attempt for user: {user.id}")
            return None
        logger.info(f"Successful login for user: {user.id}")
        return user

    @staticmethod
    def create_user(
        db: Session,
        email: str,
        password: str,
        full_name: str,
        role: UserRole = UserRole.CLIENT,
        phone: Optional[str] = None,
        vehicle_type: Optional[VehicleType] = None
    ) -> Optional[Profile]:
        """Create a profile, None when the e-mail is already registered"""
        email = AuthService.normalize_email(email)
        existing_user = db.query(Profile).filter(Profile.email == email).first()
        if existing_user:
            return None

        user = Profile(
            email=email,
            password_hash=get_password_hash(password),
            full_name=full_name,
            phone=phone,
            role=role,
            vehicle_type=vehicle_type if role == UserRole.DRIVER else None,
        )
        db.add(user)
        db.commit()
        db.refresh(user)

        log_info(
            f"New profile created: {user.id} with role: {role.value}",
            category=LogCategory.AUTHENTICATION,
            user_id=user.id,
            db=db,
        )
        return user

    @staticmethod
    def generate_tokens(user: Profile) -> Dict[str, str]:
        """Generate both access and refresh tokens"""
        token_data = {
            "sub": user.email,
            "role": user.role.value,
            "user_id": user.id
        }

        access_token_expires = timedelta(minutes=settings.access_token_expire_minutes)
        access_token = create_access_token(data=token_data, expires_delta=access_token_expires)
        refresh_token = create_refresh_token(data=token_data)

        return {
            "access_token": access_token,
            "refresh_token": refresh_token
        }

    @staticmethod
    def refresh_access_token(db: Session, refresh_token: str) -> Optional[Tuple[Profile, Dict[str, str]]]:
        """Exchange a refresh token for a fresh token pair"""
        payload = decode_refresh_token(refresh_token)
        if not payload:
            logger.warning("Invalid refresh token attempted")
            return None

        user = db.query(Profile).filter(Profile.id == payload.get("user_id")).first()
        if not user or not user.is_active:
            logger.warning(f"Refresh token for missing or inactive user: {payload.get('user_id')}")
            return None

        return user, AuthService.generate_tokens(user)

    @staticmethod
    def verify_password_strength(password: str) -> Tuple[bool, str]:
        """Validate password meets security requirements"""
        return validate_password_strength(password)
