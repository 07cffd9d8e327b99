from contextlib import asynccontextmanager
import logging
import time
from uuid import uuid4

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from arq import create_pool
from arq.connections import RedisSettings
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from .config import settings
from .database import SessionLocal, get_db
from .errors import AppError
from .limiter import limiter
from .metrics import observe_request, refresh_business_metrics, render_latest
from .routers import (
    admin,
    ai,
    analytics,
    auth,
    cards,
    circles,
    health,
    lunar,
    numerology,
    payments,
    readings,
    spreads,
    tasks as tasks_router,
    users,
)
from .tarot_engine import seed_cards


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    force=True,
)
logger = logging.getLogger("mistika.api")


def _route_label(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


def _user_label(request: Request) -> str:
    if request.headers.get("x-tg-user-id"):
        return request.headers["x-tg-user-id"]
    if request.headers.get("authorization"):
        return "jwt"
    if request.headers.get("x-telegram-init-data"):
        return "telegram"
    return "-"


class ApiAuditMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        request_id = uuid4().hex[:8]
        started_at = time.perf_counter()
        method = request.method
        path = request.url.path
        query = request.url.query
        full_path = f"{path}?{query}" if query else path

        try:
            response = await call_next(request)
        except Exception:
            elapsed = time.perf_counter() - started_at
            observe_request(method, _route_label(request), 500, elapsed)
            logger.exception(
                "API %s %s | status=500 | user=%s | t=%.1fms | req_id=%s",
                method, full_path, _user_label(request), elapsed * 1000, request_id,
            )
            raise

        elapsed = time.perf_counter() - started_at
        observe_request(method, _route_label(request), response.status_code, elapsed)
        logger.info(
            "API %s %s | status=%s | user=%s | t=%.1fms | req_id=%s",
            method, full_path, response.status_code, _user_label(request), elapsed * 1000, request_id,
        )
        response.headers["X-Request-ID"] = request_id
        return response


logging.getLogger("uvicorn.access").disabled = True
logging.getLogger("httpx").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    db = SessionLocal()
    try:
        seed_cards(db)
    finally:
        db.close()

    # ARQ connection pool for background interpretation jobs
    try:
        arq_pool = await create_pool(RedisSettings.from_dsn(settings.redis_url))
        app.state.arq_pool = arq_pool
        logger.info("ARQ pool connected to %s", settings.redis_url)
    except Exception as exc:
        logger.warning("ARQ pool unavailable (Redis down?): %s | AI endpoints will run synchronously", exc)
        app.state.arq_pool = None

    yield

    if getattr(app.state, "arq_pool", None) is not None:
        await app.state.arq_pool.close()


app = FastAPI(title="MISTIKA API", version=settings.app_version, lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("AppError on %s %s | code=%s | detail=%s", request.method, request.url.path, exc.code, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail, "error": exc.code})


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning("IntegrityError on %s %s: %s", request.method, request.url.path, exc.orig)
    return JSONResponse(status_code=409, content={"detail": "Resource already exists", "error": "conflict"})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


app.add_middleware(SlowAPIMiddleware)
app.add_middleware(ApiAuditMiddleware)

if settings.cors_origins():
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-TG-User-Id", "X-Telegram-Init-Data", "X-Internal-Api-Key"],
    )


@app.get("/metrics", include_in_schema=False)
def metrics(db: Session = Depends(get_db)):
    refresh_business_metrics(db)
    body, content_type = render_latest()
    return Response(content=body, media_type=content_type)


app.include_router(health.router)
app.include_router(auth.router)
app.include_router(users.router)
app.include_router(cards.router)
app.include_router(spreads.router)
app.include_router(readings.router)
app.include_router(ai.router)
app.include_router(tasks_router.router)
app.include_router(numerology.router)
app.include_router(lunar.router)
app.include_router(payments.router)
app.include_router(circles.router)
app.include_router(analytics.router)
app.include_router(admin.router)
