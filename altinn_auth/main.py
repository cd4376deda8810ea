"""
FastAPI Application Factory
===========================

Entry point for the Altinn authentication demo service: a browser-facing
OAuth 2.0 / OpenID Connect client for ID-porten and Ansattporten that relays
the resulting access token to Altinn APIs.

Architecture:
    Browser → This service → ID-porten / Ansattporten (login)
                           → Altinn Platform / App APIs (access token relay)

Routers:
    - /auth/*       : Login, callback and logout
    - /api/user     : Current session projection and organizations
    - /api/platform, /api/app, /api/altinn : Altinn API relay (session required)
    - /api/logs     : In-memory request log
    - /api/health   : Health check endpoint

Environment Variables:
    - CLIENT_ID / CLIENT_SECRET: Client registration at the identity provider
    - BASE_URL: Public URL of this service (redirect URI is BASE_URL/auth/callback)
    - IDPORTEN_DISCOVERY_URL: OpenID Connect discovery document
    - OAUTH_SCOPES: Requested scopes
    - RAR_AUTHORIZATION_DETAILS: Optional JSON for Rich Authorization Requests
    - ALTINN_PLATFORM_URL, ALTINN_ORG, ALTINN_APP_NAME: Downstream APIs
    - ENVIRONMENT: 'production' marks the session cookie Secure
    - LOG_LEVEL: Logging level (default: INFO)

Running the Service:
    Development:
        uvicorn altinn_auth.main:app --reload --port 3000

    With custom log level:
        LOG_LEVEL=DEBUG uvicorn altinn_auth.main:app --reload
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from altinn_auth.auth import auth_router, user_router
from altinn_auth.auth.discovery import DiscoveryService
from altinn_auth.auth.events import EventEmitter, log_auth_event
from altinn_auth.auth.exceptions import AuthFlowError, UpstreamError
from altinn_auth.auth.flow import AuthFlow
from altinn_auth.config import Settings, get_settings, validate_configuration
from altinn_auth.logs import LoggedHttpClient, RequestLog, logs_router
from altinn_auth.models import ErrorResponse, HealthResponse
from altinn_auth.proxy import proxy_router

logger = logging.getLogger("altinn_auth.main")


# Configure structured JSON logging
def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


class AppState:
    """
    Application state container.

    Holds the shared resources: settings, request log, outbound HTTP client,
    discovery cache and the login flow. Routers reach it through
    request.app.state.app_state.
    """

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self.request_log = RequestLog(max_entries=settings.MAX_LOGS)
        self.http = LoggedHttpClient(
            http_client or httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS),
            self.request_log,
        )
        self.discovery = DiscoveryService(settings.IDPORTEN_DISCOVERY_URL, self.http)

        self.events = EventEmitter()
        self.events.subscribe(log_auth_event)
        self.flow = AuthFlow(settings, self.discovery, self.http, self.events)

        self.prewarm_task: Optional[asyncio.Task] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup tasks:
        - Log the configuration report
        - Fetch the discovery document in the background

    Shutdown tasks:
        - Cancel a still-running discovery fetch
        - Close the outbound HTTP client
    """
    state: AppState = app.state.app_state
    settings = state.settings

    report = validate_configuration(settings)
    logger.info(
        "Starting Altinn authentication service",
        extra={
            "discovery_url": report["discovery_url"],
            "redirect_uri": report["redirect_uri"],
            "client_id_set": settings.CLIENT_ID != "demo-client-id",
            "rar_configured": settings.rar_authorization_details is not None,
            "app_api_url": settings.app_api_url,
        }
    )
    for warning in report["warnings"]:
        logger.warning(f"Configuration: {warning}")
    for error in report["errors"]:
        logger.error(f"Configuration: {error}")

    if settings.DISCOVERY_PREWARM:
        state.prewarm_task = asyncio.create_task(state.discovery.prewarm())

    yield

    # Shutdown
    logger.info("Shutting down Altinn authentication service")

    if state.prewarm_task and not state.prewarm_task.done():
        state.prewarm_task.cancel()

    await state.http.aclose()
    logger.info("Closed outbound HTTP client")


def create_app(
    settings: Optional[Settings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Application factory function.

    Creates and configures the FastAPI application instance with:
        - Shared state (request log, HTTP client, discovery cache, login flow)
        - Lifespan management
        - CORS middleware when ALLOWED_ORIGINS is set
        - Route handlers
        - Exception handlers

    Args:
        settings: Settings to use; defaults to get_settings()
        http_client: Outbound client to use; a new httpx.AsyncClient otherwise

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title="Altinn Authentication Service",
        description="ID-porten / Ansattporten login with PKCE and RAR, relaying tokens to Altinn APIs",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    # Make state accessible to routers via app.state
    app.state.app_state = AppState(settings, http_client)

    # Configure CORS
    origins = settings.allowed_origins_list
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["*"],
        )

    # Mount routers
    app.include_router(auth_router)
    app.include_router(user_router)
    app.include_router(proxy_router)
    app.include_router(logs_router)

    # Health check endpoint
    @app.get("/api/health", response_model=HealthResponse, tags=["System"])
    async def health_check() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.exception_handler(AuthFlowError)
    async def auth_flow_error_handler(request: Request, exc: AuthFlowError) -> JSONResponse:
        """Render flow and proxy errors as {"error": ...} with their status."""
        content = exc.body if isinstance(exc, UpstreamError) else exc.message
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=content).model_dump(),
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler for unhandled errors.

        Logs the error and returns a standardized error response.
        """
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=True
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": "An unexpected error occurred",
                "detail": str(exc) if settings.LOG_LEVEL == "DEBUG" else None
            }
        )

    return app


# Create app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    settings = get_settings()

    uvicorn.run(
        "altinn_auth.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=not settings.is_production,
        log_level=settings.LOG_LEVEL.lower()
    )
