from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from database import engine, Base, SessionLocal, verify_db_connection
from routers import auth, orders, presence, settings as settings_router, pricing, geocoding, realtime
from routers import dashboard, logs, profile
from middleware.security import SecurityMiddleware
from middleware.access_gate import AccessGateMiddleware
from services.exceptions import DispatchError, StaleStateError, InvalidTransitionError
from config import settings
from init_db import seed
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="VDeliveries Dispatch API",
    description="Backend API for the VDeliveries client, driver and admin apps",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

# Sessions for code outside the request dependency graph (middleware, websockets)
app.state.session_factory = SessionLocal

@app.exception_handler(DispatchError)
async def dispatch_exception_handler(request: Request, exc: DispatchError):
    """Domain errors carry their own HTTP status"""
    content = {"detail": exc.message}
    if isinstance(exc, (StaleStateError, InvalidTransitionError)) and exc.current_status:
        content["current_status"] = exc.current_status
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    else:
        logger.info(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=content)

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler to prevent information leakage"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "An internal error occurred. Please try again later."}
    )

app.add_middleware(AccessGateMiddleware)

app.add_middleware(SecurityMiddleware)

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=["*"]
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
    max_age=600,
)

app.include_router(auth.router)
app.include_router(orders.router)
app.include_router(presence.router)
app.include_router(settings_router.router)
app.include_router(pricing.router)
app.include_router(geocoding.router)
app.include_router(realtime.router)
app.include_router(dashboard.router)
app.include_router(logs.router)
app.include_router(profile.router)

@app.on_event("startup")
async def startup_event():
    """Create tables, seed the admin account and default settings"""
    if engine is None:
        logger.error("DATABASE_URL not configured - database features disabled")
        return

    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created/verified")

        db = SessionLocal()
        try:
            seed(db)
        finally:
            db.close()
    except Exception as e:
        logger.error(f"Startup error: {e}")

@app.get("/")
def root():
    return {
        "message": "VDeliveries Dispatch API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health"
    }

@app.get("/health")
def health_check():
    """Health check endpoint - always returns healthy so the platform keeps the dyno up"""
    db_status = "connected" if verify_db_connection() else "not connected"
    return {
        "status": "healthy",
        "database": db_status
    }
