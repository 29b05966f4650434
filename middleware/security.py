from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from collections import defaultdict
from config import settings
import time

# Simple in-memory rate limiter (per process)
class RateLimiter:
    def __init__(self):
        self.requests = defaultdict(list)
        self.cleanup_interval = 60  # Clean up every 60 seconds
        self.last_cleanup = time.time()

    def is_allowed(self, key: str, max_requests: int = 100, window_seconds: int = 60) -> bool:
        """
        Check if request is allowed based on rate limit
        Args:
            key: Unique identifier (IP address, user ID, etc.)
            max_requests: Maximum requests allowed in the time window
            window_seconds: Time window in seconds
        """
        current_time = time.time()

        if current_time - self.last_cleanup > self.cleanup_interval:
            self.cleanup()
            self.last_cleanup = current_time

        cutoff_time = current_time - window_seconds
        self.requests[key] = [req_time for req_time in self.requests[key] if req_time > cutoff_time]

        if len(self.requests[key]) >= max_requests:
            return False

        self.requests[key].append(current_time)
        return True

    def cleanup(self):
        """Remove old entries"""
        cutoff_time = time.time() - 300  # Keep last 5 minutes

        for key in list(self.requests.keys()):
            self.requests[key] = [req_time for req_time in self.requests[key] if req_time > cutoff_time]
            if not self.requests[key]:
                del self.requests[key]

    def reset(self):
        self.requests.clear()

# Global rate limiter instance
rate_limiter = RateLimiter()

# Map tiles and geocoding are fetched straight from the browser
MAP_CONNECT_SOURCES = "https://api.mapbox.com https://events.mapbox.com https://nominatim.openstreetmap.org"

class SecurityMiddleware(BaseHTTPMiddleware):
    """
    Security middleware for:
    - Rate limiting (stricter on /api/auth/)
    - Security headers
    - Request size limits
    """

    async def dispatch(self, request: Request, call_next):
        client_ip = request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
        if not client_ip and request.client:
            client_ip = request.client.host
        if not client_ip:
            client_ip = "unknown"

        if not rate_limiter.is_allowed(client_ip, settings.rate_limit_requests, settings.rate_limit_window_seconds):
            return Response(
                content="Rate limit exceeded. Please try again later.",
                status_code=429,
                headers={"Retry-After": str(settings.rate_limit_window_seconds)}
            )

        if request.url.path.startswith("/api/auth/"):
            if not rate_limiter.is_allowed(f"{client_ip}:auth", settings.auth_rate_limit_requests, settings.auth_rate_limit_window_seconds):
                return Response(
                    content="Too many authentication attempts. Please try again later.",
                    status_code=429,
                    headers={"Retry-After": str(settings.auth_rate_limit_window_seconds)}
                )

        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > settings.max_request_bytes:
            return Response(
                content="Request body too large",
                status_code=413
            )

        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # Drivers share their position from the browser
        response.headers["Permissions-Policy"] = "geolocation=(self), microphone=(), camera=()"

        if request.url.path in ["/docs", "/redoc"] or request.url.path.startswith("/openapi"):
            # Relaxed CSP for FastAPI documentation (Swagger UI/ReDoc)
            response.headers["Content-Security-Policy"] = (
                "default-src 'self'; "
                "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
                "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
                "img-src 'self' data: https:; "
                "font-src 'self' data: https://cdn.jsdelivr.net; "
                "connect-src 'self'; "
                "frame-ancestors 'none';"
            )
        else:
            response.headers["Content-Security-Policy"] = (
                "default-src 'self'; "
                "script-src 'self'; "
                "style-src 'self'; "
                "img-src 'self' data: https:; "
                "font-src 'self' data:; "
                f"connect-src 'self' wss: {MAP_CONNECT_SOURCES}; "
                "frame-ancestors 'none'; "
                "base-uri 'self'; "
                "form-action 'self';"
            )

        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response
