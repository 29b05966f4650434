from sqlalchemy.orm import Session
from database import engine, Base, SessionLocal
from config import settings
from models.profile import Profile, UserRole
from models.system_setting import SystemSetting
from services.auth_service import AuthService
from services.settings_service import DEFAULT_SETTINGS
import logging

logger = logging.getLogger(__name__)

def seed_admin(db: Session):
    existing_admin = db.query(Profile).filter(Profile.role == UserRole.ADMIN).first()
    if existing_admin:
        logger.info("Admin user already exists")
        return existing_admin

    admin = AuthService.create_user(
        db=db,
        email=settings.admin_email,
        password=settings.admin_password,
        full_name="Admin",
        role=UserRole.ADMIN
    )
    if admin:
        logger.info(f"Admin user created: {admin.email}")
    return admin

def seed_settings(db: Session):
    """Insert any missing system_settings rows with their defaults"""
    existing = {key for (key,) in db.query(SystemSetting.key).all()}
    missing = [key for key in DEFAULT_SETTINGS if key not in existing]
    for key in missing:
        db.add(SystemSetting(key=key, value=DEFAULT_SETTINGS[key]))
    db.commit()
    if missing:
        logger.info(f"Seeded default settings: {', '.join(missing)}")

def seed(db: Session):
    seed_admin(db)
    seed_settings(db)

def init_database():
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully!")

    db = SessionLocal()
    try:
        seed(db)
    finally:
        db.close()

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_database()
