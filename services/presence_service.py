"""
Driver presence: online flag plus last reported position.

Positions are only accepted between start_tracking and stop_tracking, so an
offline driver never looks available to dispatch.
"""
from datetime import datetime
from typing import List, Optional
import logging

from sqlalchemy.orm import Session

from models.log import LogCategory
from models.profile import Profile, UserRole
from services.change_feed import ChangeEvent, ChangeFeed, ChangeType
from services.exceptions import PermissionDeniedError, PresenceConflictError
from utils.logger import DatabaseLogger, log_info

logger = logging.getLogger(__name__)


class PresenceService:
    def __init__(self, db: Session, feed: Optional[ChangeFeed] = None):
        self.db = db
        self.feed = feed

    @staticmethod
    def _require_driver(profile: Profile):
        if profile.role != UserRole.DRIVER:
            raise PermissionDeniedError("Only drivers report presence")

    def start_tracking(self, driver: Profile, lat: Optional[float] = None, lng: Optional[float] = None) -> Profile:
        self._require_driver(driver)
        old = driver.to_row()

        driver.is_online = True
        driver.last_seen_at = datetime.utcnow()
        if lat is not None and lng is not None:
            driver.last_lat = lat
            driver.last_lng = lng
        self.db.commit()
        self.db.refresh(driver)

        log_info(f"Driver {driver.id} went online", category=LogCategory.PRESENCE, user_id=driver.id, db=self.db)
        self._publish(driver, old)
        return driver

    def update_location(self, driver: Profile, lat: float, lng: float) -> Profile:
        self._require_driver(driver)
        if not driver.is_online:
            raise PresenceConflictError("Start tracking before sending locations")

        old = driver.to_row()
        driver.last_lat = lat
        driver.last_lng = lng
        driver.last_seen_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(driver)

        self._publish(driver, old)
        return driver

    def stop_tracking(self, driver: Profile) -> Profile:
        """Go offline; safe to call when already offline"""
        self._require_driver(driver)
        if not driver.is_online:
            return driver

        old = driver.to_row()
        driver.is_online = False
        self.db.commit()
        self.db.refresh(driver)

        log_info(f"Driver {driver.id} went offline", category=LogCategory.PRESENCE, user_id=driver.id, db=self.db)
        DatabaseLogger.log_user_activity(user_id=driver.id, action="stop_tracking", entity_type="profile", entity_id=driver.id, db=self.db)
        self._publish(driver, old)
        return driver

    def online_drivers(self) -> List[Profile]:
        return (
            self.db.query(Profile)
            .filter(Profile.role == UserRole.DRIVER, Profile.is_online == True, Profile.is_active == True)  # noqa: E712
            .order_by(Profile.full_name)
            .all()
        )

    def _publish(self, driver: Profile, old: dict):
        if self.feed is None:
            return
        self.feed.publish(ChangeEvent(table="profiles", event_type=ChangeType.UPDATE, new=driver.to_row(), old=old))
