from datetime import datetime, timedelta
from typing import Optional, Tuple
from jose import JWTError, jwt
from argon2 import PasswordHasher
from argon2.exceptions import VerifyMismatchError, InvalidHashError, VerificationError
from config import settings
import re
import secrets

ph = PasswordHasher(
    time_cost=3,
    memory_cost=65536,
    parallelism=4,
    hash_len=32,
    salt_len=16
)

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its Argon2 hash (peppered)"""
    if not plain_password or not hashed_password:
        return False

    try:
        return ph.verify(hashed_password, plain_password + settings.password_pepper)
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False

def get_password_hash(password: str) -> str:
    """Hash a password using Argon2id with pepper"""
    return ph.hash(password + settings.password_pepper)

def validate_password_strength(password: str) -> Tuple[bool, str]:
    """Validate password meets security requirements"""
    if len(password) < settings.min_password_length:
        return False, f"Password must be at least {settings.min_password_length} characters"

    if not re.search(r'[A-Za-z]', password):
        return False, "Password must contain at least one letter"

    if not re.search(r'\d', password):
        return False, "Password must contain at least one number"

    return True, "Password is strong"

def _encode(data: dict, token_type: str, expire: datetime, secret: str) -> str:
    to_encode = data.copy()
    to_encode.update({
        "exp": expire,
        "iat": datetime.utcnow(),
        "type": token_type,
        "jti": secrets.token_urlsafe(16)
    })
    return jwt.encode(to_encode, secret, algorithm=settings.algorithm)

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a short-lived access token"""
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    return _encode(data, "access", expire, settings.secret_key)

def create_refresh_token(data: dict) -> str:
    """Create a long-lived refresh token"""
    expire = datetime.utcnow() + timedelta(days=settings.refresh_token_expire_days)
    return _encode(data, "refresh", expire, settings.refresh_secret_key)

def decode_token(token: str, token_type: str = "access") -> Optional[dict]:
    """Decode and validate a token, None when invalid, expired or of the wrong type"""
    try:
        secret = settings.secret_key if token_type == "access" else settings.refresh_secret_key
        payload = jwt.decode(token, secret, algorithms=[settings.algorithm])
    except JWTError:
        return None

    if payload.get("type") != token_type:
        return None

    return payload

def decode_access_token(token: str) -> Optional[dict]:
    return decode_token(token, "access")

def decode_refresh_token(token: str) -> Optional[dict]:
    return decode_token(token, "refresh")
