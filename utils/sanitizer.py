"""
Data sanitization utilities for logging sensitive information
"""
import re
from typing import Optional, Dict, Any

class DataSanitizer:
    """Sanitize sensitive data before it reaches the log tables"""

    # Field names whose values are never logged
    SENSITIVE_FIELDS = {
        'password', 'token', 'secret', 'api_key', 'access_token',
        'refresh_token', 'authorization', 'jwt', 'bearer', 'pepper',
    }

    # Personal fields that are partially masked instead of dropped
    MASKED_FIELDS = {'email', 'phone', 'receiver_phone'}

    SENSITIVE_PATTERNS = [
        (r'Bearer\s+[\w\-\.]+', 'Bearer [REDACTED]'),
        (r'"password"\s*:\s*"[^"]*"', '"password":"[REDACTED]"'),
        (r'"token"\s*:\s*"[^"]*"', '"token":"[REDACTED]"'),
        (r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b', '[EMAIL_REDACTED]'),
        (r'\+?\d[\d\s\-]{8,}\d', '[PHONE_REDACTED]'),
    ]

    MAX_BODY_SIZE = 10000

    @staticmethod
    def mask(value: Any, visible_chars: int = 3) -> str:
        text = str(value)
        if len(text) <= visible_chars:
            return '*' * len(text)
        return text[:visible_chars] + '*' * (len(text) - visible_chars)

    @staticmethod
    def sanitize_dict(data: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively sanitize dictionary data"""
        if not isinstance(data, dict):
            return data

        sanitized = {}
        for key, value in data.items():
            lowered = key.lower()
            if any(sensitive in lowered for sensitive in DataSanitizer.SENSITIVE_FIELDS):
                sanitized[key] = "[REDACTED]"
            elif lowered in DataSanitizer.MASKED_FIELDS and value is not None:
                sanitized[key] = DataSanitizer.mask(value)
            elif isinstance(value, dict):
                sanitized[key] = DataSanitizer.sanitize_dict(value)
            elif isinstance(value, list):
                sanitized[key] = [
                    DataSanitizer.sanitize_dict(item) if isinstance(item, dict) else item
                    for item in value
                ]
            else:
                sanitized[key] = value

        return sanitized

    @staticmethod
    def sanitize_string(text: Optional[str]) -> Optional[str]:
        """Strip sensitive patterns from free text"""
        if not text:
            return text

        if len(text) > DataSanitizer.MAX_BODY_SIZE:
            text = text[:DataSanitizer.MAX_BODY_SIZE] + "...[TRUNCATED]"

        sanitized = text
        for pattern, replacement in DataSanitizer.SENSITIVE_PATTERNS:
            sanitized = re.sub(pattern, replacement, sanitized, flags=re.IGNORECASE)

        return sanitized

