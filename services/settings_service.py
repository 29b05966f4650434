from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Dict, Mapping, Optional
import logging
import re

from sqlalchemy.orm import Session

from config import settings as app_settings
from models.log import LogCategory
from models.system_setting import SystemSetting
from services.change_feed import ChangeEvent, ChangeFeed, ChangeType
from services.exceptions import SettingsValidationError
from utils.logger import DatabaseLogger, log_info, log_warning

logger = logging.getLogger(__name__)

BASE_DELIVERY_FEE = "base_delivery_fee"
KM_RATE = "km_rate"
SERVICE_TAX = "service_tax"
MIN_PAYOUT = "min_payout"
MAINTENANCE_MODE = "maintenance_mode"
MIN_APP_VERSION = "min_app_version"

NUMERIC_KEYS = (BASE_DELIVERY_FEE, KM_RATE, SERVICE_TAX, MIN_PAYOUT)

DEFAULT_SETTINGS: Dict[str, str] = {
    BASE_DELIVERY_FEE: f"{app_settings.default_base_delivery_fee:.2f}",
    KM_RATE: f"{app_settings.default_km_rate:.2f}",
    SERVICE_TAX: "16",
    MIN_PAYOUT: "100.00",
    MAINTENANCE_MODE: "false",
    MIN_APP_VERSION: "1.0.0",
}

VERSION_PATTERN = re.compile(r"^\d+\.\d+\.\d+$")


@dataclass
class PricingSettings:
    base_fee: float
    per_km_rate: float


def _parse_number(key: str, value: str) -> Decimal:
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise SettingsValidationError(f"{key} must be a number")
    if not number.is_finite() or number < 0:
        raise SettingsValidationError(f"{key} must be a non-negative number")
    return number


def _version_tuple(version: str):
    return tuple(int(part) for part in version.split("."))


class SettingsService:
    """Key/value operational parameters (pricing, payouts, maintenance, app version)"""

    def __init__(self, db: Session, feed: Optional[ChangeFeed] = None):
        self.db = db
        self.feed = feed

    def get_all(self) -> Dict[str, str]:
        values = dict(DEFAULT_SETTINGS)
        for row in self.db.query(SystemSetting).all():
            values[row.key] = row.value
        return values

    def get(self, key: str) -> str:
        row = self.db.query(SystemSetting).filter(SystemSetting.key == key).first()
        if row is not None:
            return row.value
        return DEFAULT_SETTINGS.get(key, "")

    def get_pricing(self) -> PricingSettings:
        values = self.get_all()
        return PricingSettings(
            base_fee=self._float_or_default(values, BASE_DELIVERY_FEE, app_settings.default_base_delivery_fee),
            per_km_rate=self._float_or_default(values, KM_RATE, app_settings.default_km_rate),
        )

    @staticmethod
    def _float_or_default(values: Mapping[str, str], key: str, default: float) -> float:
        try:
            return float(_parse_number(key, values[key]))
        except (KeyError, SettingsValidationError):
            logger.warning(f"Invalid stored value for {key}, using default {default}")
            return default

    def is_maintenance_mode(self) -> bool:
        return self.get(MAINTENANCE_MODE).strip().lower() == "true"

    def update(self, updates: Mapping[str, str], updated_by: Optional[int] = None) -> Dict[str, str]:
        """Validate then upsert every given key in one commit"""
        normalized: Dict[str, str] = {}
        for key, value in updates.items():
            if key in NUMERIC_KEYS:
                normalized[key] = str(_parse_number(key, value))
            elif key == MAINTENANCE_MODE:
                normalized[key] = self._normalize_flag(value)
            elif key == MIN_APP_VERSION:
                normalized[key] = self._normalize_version(value)
            else:
                raise SettingsValidationError(f"Unknown setting: {key}")

        if not normalized:
            raise SettingsValidationError("No settings to update")

        now = datetime.utcnow()
        for key, value in normalized.items():
            row = self.db.query(SystemSetting).filter(SystemSetting.key == key).first()
            if row is None:
                self.db.add(SystemSetting(key=key, value=value, updated_at=now, updated_by=updated_by))
            else:
                row.value = value
                row.updated_at = now
                row.updated_by = updated_by
        self.db.commit()

        log_info(
            f"System settings updated: {', '.join(sorted(normalized))}",
            category=LogCategory.SETTINGS,
            details=normalized,
            user_id=updated_by,
            db=self.db,
        )
        if updated_by is not None:
            DatabaseLogger.log_user_activity(
                user_id=updated_by,
                action="update_settings",
                description=", ".join(f"{k}={v}" for k, v in sorted(normalized.items())),
                entity_type="system_setting",
                db=self.db,
            )

        self._publish(normalized)
        return self.get_all()

    def set_maintenance_mode(self, enabled: bool, updated_by: Optional[int] = None) -> Dict[str, str]:
        result = self.update({MAINTENANCE_MODE: "true" if enabled else "false"}, updated_by=updated_by)
        if enabled:
            log_warning("Maintenance mode enabled", category=LogCategory.SETTINGS, user_id=updated_by, db=self.db)
        return result

    def force_app_update(self, min_version: str, updated_by: Optional[int] = None) -> Dict[str, str]:
        """Raise the minimum supported app version so older clients are told to update"""
        current = self.get(MIN_APP_VERSION)
        version = self._normalize_version(min_version)
        if VERSION_PATTERN.match(current) and _version_tuple(version) <= _version_tuple(current):
            raise SettingsValidationError(f"Minimum app version must be greater than {current}")
        return self.update({MIN_APP_VERSION: version}, updated_by=updated_by)

    @staticmethod
    def _normalize_flag(value) -> str:
        text = str(value).strip().lower()
        if text not in ("true", "false"):
            raise SettingsValidationError("maintenance_mode must be true or false")
        return text

    @staticmethod
    def _normalize_version(value) -> str:
        text = str(value).strip()
        if not VERSION_PATTERN.match(text):
            raise SettingsValidationError("Version must look like MAJOR.MINOR.PATCH")
        return text

    def _publish(self, changed: Mapping[str, str]):
        if self.feed is None:
            return
        for key, value in changed.items():
            self.feed.publish(ChangeEvent(
                table="system_settings",
                event_type=ChangeType.UPDATE,
                new={"id": key, "key": key, "value": value},
            ))
