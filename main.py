"""
Lawyer booking authentication service - FastAPI application.

This is the main entry point. ``create_app`` builds the database handle, the
stores and the services once and attaches them to ``app.state``; route
dependencies read them from there.
"""
import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from booking_auth import __version__
from booking_auth.accounts import SqlAccountStore
from booking_auth.api import router as auth_router
from booking_auth.auth import IdentityService
from booking_auth.config import Settings, get_settings
from booking_auth.database import Database, describe_url
from booking_auth.dependencies import RequestAuthenticator
from booking_auth.errors import AuthError
from booking_auth.notifications import EmailService, NotificationDispatcher
from booking_auth.security import PasswordManager, PasswordValidator
from booking_auth.store import OneTimeTokenStore, RefreshTokenStore
from booking_auth.token import TokenCodec

logger = logging.getLogger("booking_auth")

_logging_configured = False


def configure_logging(settings: Settings) -> None:
    """Configure root logging from the settings, once per process."""
    global _logging_configured
    if _logging_configured:
        return
    _logging_configured = True

    handlers = [logging.StreamHandler()]
    if settings.LOG_FILE:
        handlers.append(logging.FileHandler(settings.LOG_FILE))
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format=settings.LOG_FORMAT,
        handlers=handlers,
    )


# PUBLIC_INTERFACE
def create_app(
    settings: Optional[Settings] = None,
    mailer: Optional[EmailService] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings to use, defaults to the environment.
        mailer: Email sender, defaults to SMTP from the settings.

    Returns:
        The configured application.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.APP_NAME,
        description=settings.APP_DESCRIPTION,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        debug=settings.DEBUG,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    database = Database(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
    accounts = SqlAccountStore(database)
    codec = TokenCodec.from_settings(settings)
    dispatcher = NotificationDispatcher(max_workers=settings.NOTIFICATION_WORKERS)

    app.state.settings = settings
    app.state.database = database
    app.state.dispatcher = dispatcher
    app.state.identity_service = IdentityService(
        settings=settings,
        accounts=accounts,
        refresh_tokens=RefreshTokenStore(database),
        one_time_tokens=OneTimeTokenStore(database),
        codec=codec,
        passwords=PasswordManager(rounds=settings.BCRYPT_ROUNDS),
        validator=PasswordValidator.from_settings(settings),
        mailer=mailer or EmailService.from_settings(settings),
        dispatcher=dispatcher,
    )
    app.state.authenticator = RequestAuthenticator(codec, accounts)

    # Exception handlers
    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError):
        """Render taxonomy errors with their own status code."""
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == status.HTTP_401_UNAUTHORIZED else None
        if exc.status_code >= 500:
            logger.error(f"{exc.__class__.__name__} on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "code": exc.code},
            headers=headers,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle general exceptions."""
        logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error", "code": "INTERNAL_ERROR"},
        )

    @app.get("/health", tags=["health"], summary="Health check")
    async def health_check():
        """Health check endpoint."""
        return {"status": "ok", "version": __version__}

    app.include_router(auth_router, prefix=f"{settings.API_PREFIX}/auth")

    @app.on_event("startup")
    async def startup_event():
        """Initialize the application on startup."""
        logger.info(f"Initializing {settings.APP_NAME} ({settings.APP_ENV}) on {describe_url(database)}")
        database.create_all()

    @app.on_event("shutdown")
    async def shutdown_event():
        """Clean up resources on shutdown."""
        logger.info(f"Shutting down {settings.APP_NAME}")
        dispatcher.shutdown(wait=True)
        database.dispose()

    return app


if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "main:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.RELOAD,
        log_level=settings.LOG_LEVEL.lower(),
    )
