from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Gauge, Histogram, generate_latest
from sqlalchemy.orm import Session

from . import models

registry = CollectorRegistry()

http_request_duration = Histogram(
    "http_request_duration_seconds",
    "Duration of HTTP requests in seconds",
    ["method", "route", "status_code"],
    buckets=(0.1, 0.5, 1, 2, 5),
    registry=registry,
)
http_requests_total = Counter(
    "http_requests_total",
    "Total number of HTTP requests",
    ["method", "route", "status_code"],
    registry=registry,
)
active_users = Gauge("active_users_total", "Number of active users", registry=registry)
premium_users = Gauge("premium_users_total", "Number of premium users", registry=registry)
ai_requests_total = Counter(
    "ai_requests_total",
    "Total number of AI requests",
    ["type", "status"],
    registry=registry,
)
readings_total = Counter(
    "readings_total",
    "Total number of readings performed",
    ["type"],
    registry=registry,
)


def observe_request(method: str, route: str, status_code: int, seconds: float) -> None:
    labels = (method, route, str(status_code))
    http_request_duration.labels(*labels).observe(seconds)
    http_requests_total.labels(*labels).inc()


def refresh_business_metrics(db: Session) -> None:
    active_users.set(db.query(models.User).filter(models.User.is_active.is_(True)).count())
    premium_users.set(db.query(models.User).filter(models.User.is_premium.is_(True)).count())


def render_latest() -> tuple[bytes, str]:
    return generate_latest(registry), CONTENT_TYPE_LATEST
