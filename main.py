import time
from fastapi import FastAPI, Request, status, HTTPException
from fastapi.exceptions import RequestValidationError
from routers import auth
from contextlib import asynccontextmanager

# Import all models so the tables are registered on Base.metadata
import models  # noqa: F401

from core.logging_config import setup_logging, get_logger
from core.config import settings
from core.database import Base, engine
from core.exceptions import StoreUnavailable, TokenExpired, TokenInvalid, SessionNotFound, RateLimited
from core.redis_store import RedisStore
from middleware import RequestIDMiddleware, get_request_id
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

setup_logging(
    log_level=settings.LOG_LEVEL,
    log_dir=settings.LOG_DIR
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)

    # Tests install their own store before the app starts
    owns_store = getattr(app.state, "store", None) is None
    if owns_store:
        app.state.store = RedisStore.from_url(settings.REDIS_URL)

    if await app.state.store.ping():
        logger.info("Redis connection established", extra={"event": "startup"})
    else:
        logger.warning("Redis not reachable at startup", extra={"event": "startup"})

    logger.info("Application startup complete", extra={"event": "startup"})
    yield

    if owns_store:
        await app.state.store.close()
        app.state.store = None
    logger.info("Application shutting down", extra={"event": "shutdown"})


app = FastAPI(
    title="Issue Tracker Auth API",
    description="Authentication, session and rate-limit core of the issue tracker",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Access log: method, path, status code and duration of every request.
    """
    start_time = time.time()

    response = await call_next(request)

    duration = (time.time() - start_time) * 1000

    client_ip = request.client.host if request.client else "unknown"

    logger.info(
        f'{client_ip} - "{request.method} {request.url.path} HTTP/1.1" {response.status_code}',
        extra={
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": round(duration, 2),
            "client_ip": client_ip
        }
    )

    return response


app.add_middleware(RequestIDMiddleware)


@app.get("/health")
async def health_check(request: Request):
    redis_info = await request.app.state.store.info()
    logger.debug("Health check requested")
    return {
        "status": "Healthy" if redis_info["connected"] else "Degraded",
        "redis": redis_info
    }


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
    """
    The key-value store is down. Auth decisions cannot be made, so the
    request is refused rather than let through.
    """
    logger.error(
        f"Store unavailable: {exc.message}",
        extra={
            "path": request.url.path,
            "method": request.method
        }
    )

    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Service temporarily unavailable", "request_id": get_request_id(request)}
    )


@app.exception_handler(TokenExpired)
@app.exception_handler(TokenInvalid)
async def token_error_handler(request: Request, exc: TokenExpired | TokenInvalid):
    # Expired and forged tokens look the same to the client
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"detail": "Invalid or expired token"},
        headers={"WWW-Authenticate": "Bearer"}
    )


@app.exception_handler(RateLimited)
async def rate_limited_handler(request: Request, exc: RateLimited):
    logger.warning(
        "Rate limit exceeded",
        extra={"path": request.url.path, "retry_after": exc.retry_after}
    )

    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"detail": exc.message, "retry_after": exc.retry_after},
        headers=exc.headers
    )


@app.exception_handler(SessionNotFound)
async def session_not_found_handler(request: Request, exc: SessionNotFound):
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"detail": "Session not found"}
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Catch all unhandled exceptions, log them with a stack trace and return
    a generic 500 that does not expose internals.
    """
    if isinstance(exc, (HTTPException, RequestValidationError)):
        raise

    logger.error(
        f"Unhandled exception: {str(exc)}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__
        },
        exc_info=True
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error", "request_id": get_request_id(request)}
    )


app.include_router(auth.router)
