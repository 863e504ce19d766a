from prometheus_client import CollectorRegistry, Histogram, Counter
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter
from fastapi.responses import Response

registry = CollectorRegistry()

page_renders_total = Counter(
    "caregate_page_renders_total",
    "Page renders by route and outcome",
    ["route", "status"],
    registry=registry,
)

page_render_duration = Histogram(
    "caregate_page_render_duration_seconds",
    "Page render duration in seconds",
    ["route"],
    registry=registry,
)

route_access_denied_total = Counter(
    "caregate_route_access_denied_total",
    "Route gate denials by route and reason",
    ["route", "reason"],
    registry=registry,
)

search_queries_total = Counter(
    "caregate_search_queries_total",
    "Search queries executed",
    ["table", "result"],
    registry=registry,
)

search_duration = Histogram(
    "caregate_search_duration_seconds",
    "Search query latency in seconds",
    ["table"],
    registry=registry,
)

metrics_router = APIRouter()


@metrics_router.get("/metrics")
async def get_metrics():
    return Response(generate_latest(registry), media_type=CONTENT_TYPE_LATEST)
