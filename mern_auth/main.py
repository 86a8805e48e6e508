"""
FastAPI Main Application
MERN Auth API Service
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import structlog

from mern_auth.api.v1.endpoints.health import SERVICE_NAME, SERVICE_VERSION
from mern_auth.api.v1.router import build_api_router
from mern_auth.core.authenticator import build_authenticator
from mern_auth.core.config import Settings, settings
from mern_auth.core.database import AsyncSessionLocal, close_database, init_database
from mern_auth.core.errors import AuthError
from mern_auth.core.logging import setup_logging
from mern_auth.middleware.logging import RequestLoggingMiddleware
from mern_auth.middleware.security import SecurityHeadersMiddleware
from mern_auth.services.credential_store import CredentialStore, DatabaseCredentialStore
from mern_auth.services.keycloak import KeycloakClient
from mern_auth.services.user import UserManagementService
from mern_auth.services.user_directory import KeycloakUserDirectory, LocalUserDirectory

logger = structlog.get_logger()


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    message = str(errors[0].get("msg", "Invalid request"))
    return message.removeprefix("Value error, ")


def _register_exception_handlers(app: FastAPI) -> None:
    """Every error leaves the service as ``{"message": ...}``"""

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": exc.message},
            headers=exc.headers,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        message = _validation_message(exc)
        logger.info("Request validation failed", path=request.url.path, error=message)
        return JSONResponse(status_code=400, content={"message": message})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=True
        )
        return JSONResponse(status_code=500, content={"message": "Server error"})


def create_app(
    app_settings: Settings = settings,
    *,
    credential_store: Optional[CredentialStore] = None,
    keycloak_client: Optional[KeycloakClient] = None,
) -> FastAPI:
    """
    Build the API for the configured authentication scheme

    Args:
        app_settings: Settings to run with
        credential_store: Local user records; defaults to the SQL database
        keycloak_client: Identity provider client; built from settings when omitted

    Returns:
        Configured FastAPI application
    """
    setup_logging(app_settings.LOG_LEVEL, app_settings.ENVIRONMENT)

    owns_database = False
    owns_keycloak_client = False

    if app_settings.AUTH_SCHEME == "keycloak":
        if keycloak_client is None:
            keycloak_client = KeycloakClient(
                base_url=app_settings.KEYCLOAK_BASE_URL,
                realm=app_settings.KEYCLOAK_REALM,
                client_id=app_settings.KEYCLOAK_CLIENT_ID,
                client_secret=app_settings.KEYCLOAK_CLIENT_SECRET,
                timeout=app_settings.KEYCLOAK_TIMEOUT_SECONDS,
                admin_token_leeway=app_settings.KEYCLOAK_ADMIN_TOKEN_LEEWAY_SECONDS,
            )
            owns_keycloak_client = True
        directory = KeycloakUserDirectory(keycloak_client)
        credential_store = None
    else:
        if credential_store is None:
            credential_store = DatabaseCredentialStore(AsyncSessionLocal)
            owns_database = True
        directory = LocalUserDirectory(credential_store)

    authenticator = build_authenticator(
        app_settings,
        credential_store=credential_store,
        keycloak_client=keycloak_client,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting MERN Auth API Service", version=SERVICE_VERSION, auth_scheme=authenticator.scheme)
        if owns_database:
            await init_database()

        yield

        logger.info("Shutting down MERN Auth API Service")
        if owns_keycloak_client:
            await keycloak_client.aclose()
        if owns_database:
            await close_database()

    development = app_settings.ENVIRONMENT == "development"
    app = FastAPI(
        title="MERN Auth API",
        description="Token verification and role-based access control",
        version=SERVICE_VERSION,
        docs_url="/docs" if development else None,
        redoc_url="/redoc" if development else None,
        lifespan=lifespan
    )

    app.state.settings = app_settings
    app.state.authenticator = authenticator
    app.state.credential_store = credential_store
    app.state.user_service = UserManagementService(directory)
    app.state.owns_database = owns_database

    app.add_middleware(SecurityHeadersMiddleware, hsts=app_settings.ENVIRONMENT == "production")
    app.add_middleware(RequestLoggingMiddleware)
    # Added last so it runs first and answers preflight requests
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
        max_age=600,
    )

    _register_exception_handlers(app)

    app.include_router(
        build_api_router(include_local_auth=app_settings.AUTH_SCHEME == "local"),
        prefix="/api/v1",
    )

    @app.get("/")
    async def root():
        return {
            "message": "MERN Auth API is running!",
            "version": SERVICE_VERSION,
            "auth_scheme": app_settings.AUTH_SCHEME,
            "docs": "/docs" if development else "disabled",
            "health": "/health",
        }

    @app.get("/health")
    async def liveness():
        """Liveness probe for containers and load balancers"""
        return {"status": "healthy", "service": SERVICE_NAME, "version": SERVICE_VERSION}

    logger.info("Application configured", auth_scheme=authenticator.scheme, cors_origins=app_settings.CORS_ORIGINS)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "mern_auth.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.ENVIRONMENT == "development",
        log_level=settings.LOG_LEVEL.lower()
    )
