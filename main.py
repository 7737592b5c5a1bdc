"""Dreik API - account and fitness tracking backend."""

import logging
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from dreik import __version__
from dreik.config import Settings, get_settings
from dreik.database import create_db_engine, create_session_factory
from dreik.errors import INVALID_REQUEST_BODY, AppError, InternalError
from dreik.logging_config import request_id_var, setup_logging
from dreik.rate_limit import limiter
from dreik.routers import account_router, auth_router, workouts_router
from dreik.services.account import AccountService
from dreik.services.auth import AuthService
from dreik.services.jwt import TokenManager
from dreik.services.mailer import Mailer, MailQueue, build_mailer
from dreik.services.password import get_password_hasher
from dreik.services.workout import WorkoutService
from dreik.stores.cache import TokenCache, build_token_cache

logger = logging.getLogger("dreik")

REQUEST_ID_HEADER = "X-Request-ID"


# --- Request id middleware ---
class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


# --- Request log middleware ---
class RequestLogMiddleware(BaseHTTPMiddleware):
    SKIP_PREFIXES = ("/api/docs", "/api/openapi.json")

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.time()
        response = await call_next(request)
        duration_ms = (time.time() - start) * 1000

        path = request.url.path
        if request.method == "OPTIONS" or path.startswith(self.SKIP_PREFIXES):
            return response

        logger.info(
            "request completed %s %s -> %d (%.0fms) from %s ua=%s",
            request.method,
            path,
            response.status_code,
            duration_ms,
            request.client.host if request.client else "unknown",
            request.headers.get("user-agent", "-"),
        )
        return response


# --- Security headers middleware ---
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


# --- Request size limit middleware ---
class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, max_body_size: int) -> None:
        super().__init__(app)
        self.max_body_size = max_body_size

    async def dispatch(self, request: Request, call_next) -> Response:
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > self.max_body_size:
            return JSONResponse(status_code=400, content={"message": "request body too large"})
        return await call_next(request)


def register_exception_handlers(app: FastAPI) -> None:
    """Render every failure as {"message": ...}."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"message": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.debug("can't decode request body: %s", exc.errors())
        return JSONResponse(status_code=400, content={"message": INVALID_REQUEST_BODY})

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        message = exc.detail if isinstance(exc.detail, str) else "request failed"
        return JSONResponse(status_code=exc.status_code, content={"message": message.lower()}, headers=exc.headers)

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        return JSONResponse(status_code=429, content={"message": "rate limit exceeded, try again later"})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled error %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"message": InternalError().message})


def create_app(
    settings: Settings | None = None,
    mailer: Mailer | None = None,
    cache: TokenCache | None = None,
) -> FastAPI:
    """Build the application and its collaborators from settings."""
    settings = settings or get_settings()
    setup_logging(settings.ENV, settings.LOG_LEVEL)
    for warning in settings.validate():
        logger.warning(warning)

    engine = create_db_engine(settings.DATABASE_URL, echo=settings.DEBUG)
    mail_queue = MailQueue(
        mailer or build_mailer(settings),
        maxsize=settings.MAIL_QUEUE_SIZE,
        retries=settings.MAIL_RETRIES,
        backoff=settings.MAIL_RETRY_BACKOFF,
    )
    token_manager = TokenManager(settings.TOKEN_SECRET, settings.JWT_ALGORITHM, settings.JWT_EXPIRE_MINUTES)
    auth_service = AuthService(
        settings,
        token_manager,
        get_password_hasher(settings.PASSWORD_HASHER),
        mail_queue,
        cache if cache is not None else build_token_cache(settings.REDIS_URL),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        Path(settings.AVATAR_DIR).mkdir(parents=True, exist_ok=True)
        mail_queue.start()
        logger.info("API server started env=%s", settings.ENV)
        yield
        mail_queue.stop()
        engine.dispose()
        logger.info("API server stopped")

    app = FastAPI(
        title="Dreik API",
        version=__version__,
        lifespan=lifespan,
        docs_url="/api/docs" if settings.docs_enabled else None,
        openapi_url="/api/openapi.json" if settings.docs_enabled else None,
        redoc_url=None,
    )
    app.state.settings = settings
    app.state.limiter = limiter
    app.state.session_factory = create_session_factory(engine)
    app.state.token_manager = token_manager
    app.state.mail_queue = mail_queue
    app.state.auth_service = auth_service
    app.state.account_service = AccountService(settings, auth_service)
    app.state.workout_service = WorkoutService()

    # Outermost last: request ids must be set before anything logs
    app.add_middleware(RequestLogMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestSizeLimitMiddleware, max_body_size=settings.MAX_AVATAR_SIZE_BYTES + 1024 * 1024)
    if settings.docs_enabled:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
            allow_headers=["*"],
        )
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(auth_router)
    app.include_router(account_router)
    app.include_router(workouts_router)

    @app.get("/api/healthcheck", tags=["status"])
    def healthcheck() -> dict:
        """Check that the server is up."""
        return {"status": "ok"}

    app.mount("/api/avatar", StaticFiles(directory=settings.AVATAR_DIR, check_dir=False), name="avatar")
    return app


app = create_app()


if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "main:app",
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        timeout_keep_alive=settings.SERVER_IDLE_TIMEOUT,
        timeout_graceful_shutdown=settings.SERVER_TIMEOUT,
        log_level="debug" if settings.DEBUG else "info",
    )
