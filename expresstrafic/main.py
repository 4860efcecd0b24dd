import logging
import uuid

import sentry_sdk
from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from redis.exceptions import RedisError
from sentry_sdk.integrations.asgi import SentryAsgiMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from expresstrafic.config import settings
from expresstrafic.errors import STATUS_CODE_MAP, ErrorCode, error_body
from expresstrafic.logging_setup import TRACE_ID_CTX, setup_logging
from expresstrafic.modules.auth.router import router as auth_router
from expresstrafic.modules.contact.router import router as contact_router
from expresstrafic.modules.email.router import router as email_router
from expresstrafic.modules.reservations.router import router as reservations_router
from expresstrafic.modules.trips.router import router as trips_router
from expresstrafic.redis_client import redis_client
from expresstrafic.services.notification_service import build_notification_service

logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME)

# initialize logging and Sentry
setup_logging(logging.DEBUG if settings.DEBUG else logging.INFO)
if settings.SENTRY_DSN:
    sentry_sdk.init(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT)
    app.add_middleware(SentryAsgiMiddleware)

# transports are chosen once, here
app.state.notification_service = build_notification_service(settings)


@app.middleware("http")
async def add_trace_id(request: Request, call_next):
    trace_id = request.headers.get("x-trace-id") or str(uuid.uuid4())
    TRACE_ID_CTX.set(trace_id)
    response = await call_next(request)
    response.headers["X-Trace-Id"] = trace_id
    return response


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if isinstance(exc.detail, dict):
        content = exc.detail
    else:
        content = error_body(
            str(exc.detail) if exc.detail else "Error",
            code=STATUS_CODE_MAP.get(exc.status_code, ErrorCode.BAD_REQUEST),
        )
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_handler(request: Request, exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        errors.append({"field": ".".join(loc) or None, "message": err.get("msg")})
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("Invalid data", code=ErrorCode.VALIDATION_ERROR, errors=errors),
    )


@app.exception_handler(SQLAlchemyError)
async def sa_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Server error", code=ErrorCode.DATABASE_ERROR),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Server error", code=ErrorCode.INTERNAL_ERROR),
    )


ROUTERS = [
    (auth_router, "/auth"),
    (trips_router, "/public/trajets"),
    (reservations_router, "/reservations"),
    (email_router, "/email"),
    (contact_router, "/contact"),
]

for router, prefix in ROUTERS:
    app.include_router(router, prefix=prefix)


@app.get("/")
async def root():
    return {"app": settings.APP_NAME, "status": "ok"}


@app.get("/metrics")
async def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/ready")
async def ready():
    try:
        await redis_client.ping()
    except RedisError:
        logger.warning("Readiness check failed: redis unavailable")
        return JSONResponse(status_code=503, content=error_body("redis unavailable", code=ErrorCode.INTERNAL_ERROR))
    return {"status": "ready"}
