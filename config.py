import os
from pydantic_settings import BaseSettings
import hashlib

def _derive_key(base_secret: str, purpose: str) -> str:
    """Derive a deterministic key from base secret for specific purpose"""
    return hashlib.sha256(f"{base_secret}:{purpose}".encode()).hexdigest()

class Settings(BaseSettings):
    database_url: str = os.getenv("DATABASE_URL", "")
    _base_secret: str = os.getenv("SESSION_SECRET", "default-dev-secret-change-in-production")

    @property
    def secret_key(self) -> str:
        """JWT access token signing key"""
        return self._base_secret

    @property
    def refresh_secret_key(self) -> str:
        """JWT refresh token signing key - derived from base secret"""
        return _derive_key(self._base_secret, "refresh_token")

    @property
    def password_pepper(self) -> str:
        """Password pepper - derived from base secret"""
        return _derive_key(self._base_secret, "password_pepper")[:32]

    algorithm: str = "HS256"
    access_token_expire_minutes: int = 720  # 12 hours, one driver shift
    refresh_token_expire_days: int = 30
    access_token_cookie: str = "access_token"

    min_password_length: int = 8

    # Seeded on first start when no admin exists
    admin_email: str = "admin@vdeliveries.com"
    admin_password: str = "Admin@12345"

    cors_origins: list = ["*"]

    rate_limit_requests: int = 100
    rate_limit_window_seconds: int = 60
    auth_rate_limit_requests: int = 10
    auth_rate_limit_window_seconds: int = 60
    max_request_bytes: int = 1024 * 1024

    # Geocoding: Mapbox when a token is configured, Nominatim otherwise
    mapbox_access_token: str = ""
    geocoding_bbox: str = "28.1,-15.5,28.5,-15.2"  # min_lon,min_lat,max_lon,max_lat (Lusaka)
    geocoding_result_limit: int = 5
    geocoding_timeout_seconds: float = 10.0
    nominatim_user_agent: str = "VDeliveries/1.0 (contact@vdeliveries.com)"

    # Routing distance for pricing, Haversine is used when disabled or on failure
    use_road_distance: bool = False
    routing_timeout_seconds: float = 5.0

    # Pricing fallbacks used until an admin saves system settings
    default_base_delivery_fee: float = 25.0
    default_km_rate: float = 5.5

    class Config:
        env_file = ".env"

settings = Settings()
