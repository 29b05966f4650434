"""
Database audit logging.

Every write goes through a session the caller owns (or a short-lived one
when no session is given) and never raises: a failed audit write must not
fail the dispatch operation that triggered it.
"""
from sqlalchemy.orm import Session
from models.log import SystemLog, ErrorLog, UserActivityLog, LogLevel, LogCategory
from database import SessionLocal
from utils.sanitizer import DataSanitizer
from sqlalchemy.exc import SQLAlchemyError
import json
import logging
from typing import Optional, Dict, Any, Union

logger = logging.getLogger(__name__)

class DatabaseLogger:
    """Centralized database logger for audit and error events"""

    @staticmethod
    def _open(db: Optional[Session]):
        if db is not None:
            return db, False
        if SessionLocal is None:
            return None, False
        return SessionLocal(), True

    @staticmethod
    def log_system(
        level: LogLevel,
        category: LogCategory,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        user_id: Optional[int] = None,
        db: Optional[Session] = None
    ):
        """Log system events with sensitive data sanitization"""
        db, should_close = DatabaseLogger._open(db)
        if db is None:
            logger.log(logging.getLevelName(level.value.upper()), message)
            return

        try:
            sanitized_details = DataSanitizer.sanitize_dict(details) if details else None
            db.add(SystemLog(
                level=level,
                category=category,
                message=DataSanitizer.sanitize_string(message),
                details=json.dumps(sanitized_details, default=str) if sanitized_details else None,
                user_id=user_id,
            ))
            db.commit()
        except SQLAlchemyError as e:
            logger.warning(f"Failed to write system log: {e}")
            db.rollback()
        finally:
            if should_close:
                db.close()

    @staticmethod
    def log_error(
        error_type: str,
        error_message: str,
        endpoint: Optional[str] = None,
        user_id: Optional[int] = None,
        request_data: Optional[Dict[str, Any]] = None,
        severity: LogLevel = LogLevel.ERROR,
        db: Optional[Session] = None
    ):
        """Log errors and upstream failures"""
        db, should_close = DatabaseLogger._open(db)
        if db is None:
            logger.error(f"{error_type}: {error_message}")
            return

        try:
            sanitized_request_data = DataSanitizer.sanitize_dict(request_data) if request_data else None
            db.add(ErrorLog(
                error_type=error_type,
                error_message=DataSanitizer.sanitize_string(error_message),
                endpoint=endpoint,
                user_id=user_id,
                request_data=json.dumps(sanitized_request_data, default=str) if sanitized_request_data else None,
                severity=severity,
            ))
            db.commit()
        except SQLAlchemyError as e:
            logger.warning(f"Failed to write error log: {e}")
            db.rollback()
        finally:
            if should_close:
                db.close()

    @staticmethod
    def log_user_activity(
        user_id: int,
        action: str,
        description: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[Union[int, str]] = None,
        db: Optional[Session] = None
    ):
        """Log a user action for the admin audit trail"""
        db, should_close = DatabaseLogger._open(db)
        if db is None:
            logger.info(f"user={user_id} action={action}")
            return

        try:
            db.add(UserActivityLog(
                user_id=user_id,
                action=action,
                description=DataSanitizer.sanitize_string(description) if description else None,
                entity_type=entity_type,
                entity_id=str(entity_id) if entity_id is not None else None,
            ))
            db.commit()
        except SQLAlchemyError as e:
            logger.warning(f"Failed to write user activity log: {e}")
            db.rollback()
        finally:
            if should_close:
                db.close()

def log_info(message: str, category: LogCategory = LogCategory.SYSTEM, **kwargs):
    DatabaseLogger.log_system(LogLevel.INFO, category, message, **kwargs)

def log_warning(message: str, category: LogCategory = LogCategory.SYSTEM, **kwargs):
    DatabaseLogger.log_system(LogLevel.WARNING, category, message, **kwargs)
