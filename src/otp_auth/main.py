"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from otp_auth.api.routes import auth_error_handler
from otp_auth.api.routes import router as auth_router
from otp_auth.config import settings
from otp_auth.database.engine import async_session_factory, init_db
from otp_auth.errors import AuthError
from otp_auth.services.cleanup import OtpSweeper

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle hook."""
    logger.info("Starting %s …", settings.app_name)
    await init_db()
    logger.info("Database initialised")
    sweeper = OtpSweeper(async_session_factory, settings.otp_sweep_interval_seconds)
    sweeper.start()
    yield
    await sweeper.stop()
    logger.info("Shutting down %s …", settings.app_name)


app = FastAPI(
    title=settings.app_name,
    description="Phone-number registration, OTP verification and password login",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(auth_router)
app.add_exception_handler(AuthError, auth_error_handler)


@app.get("/health")
async def health_check():
    """Simple liveness probe."""
    return {"status": "healthy", "app": settings.app_name}


def run() -> None:
    """Serve the app with uvicorn (``otp-auth`` console script)."""
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="debug" if settings.debug else "info")
