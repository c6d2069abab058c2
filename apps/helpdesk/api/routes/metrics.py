from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from apps.helpdesk.metrics import metrics_registry, render_prometheus

router = APIRouter(tags=["metrics"])


@router.get("/metrics", response_class=PlainTextResponse, summary="Prometheus metrics")
async def metrics() -> str:
    return render_prometheus(metrics_registry)
