"""Health check endpoints for monitoring service availability."""

import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from vaxchain.core.errors import StoreError
from vaxchain.ledger.producer import ChainProducer, ProducerPhase

router = APIRouter()


def _now() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


async def check_store(request: Request) -> Dict[str, str]:
    """Check that the ledger store answers a trivial query."""
    try:
        await request.app.state.store.ping()
        return {"status": "ok", "message": "Ledger store is reachable"}
    except StoreError as e:
        return {"status": "error", "message": f"Ledger store error: {e}"}


def check_producer(request: Request) -> Dict[str, Any]:
    """Report the producer phase; a disabled producer is not an error."""
    producer: Optional[ChainProducer] = getattr(request.app.state, "producer", None)
    if producer is None:
        return {"status": "ok", "message": "Producer disabled"}
    state = producer.state
    check = {
        "status": "error" if producer.phase is ProducerPhase.FAILED else "ok",
        "phase": producer.phase.value,
        "batch_no": producer.lineage_id,
    }
    if state is not None:
        check["next_index"] = state.next_index
    return check


@router.get("")
async def health_check(request: Request) -> Dict[str, Any]:
    """Comprehensive health check endpoint.

    Returns:
        Health status with component checks
    """
    checks = {
        "store": await check_store(request),
        "producer": check_producer(request),
    }

    if all(check["status"] == "ok" for check in checks.values()):
        overall_status = "healthy"
    elif checks["store"]["status"] == "error":
        overall_status = "unhealthy"
    else:
        overall_status = "degraded"

    settings = request.app.state.settings
    return {
        "status": overall_status,
        "service": settings.APP_NAME,
        "version": settings.VERSION,
        "timestamp": _now(),
        "checks": checks,
    }


@router.get("/live")
def liveness_check() -> Dict[str, str]:
    """Liveness probe - 200 whenever the process is up."""
    return {"status": "alive", "timestamp": _now()}


@router.get("/ready")
async def readiness_check(request: Request):
    """Readiness probe - 200 when the store is reachable, 503 otherwise."""
    store_check = await check_store(request)
    ready = store_check["status"] == "ok"
    body = {
        "status": "ready" if ready else "not_ready",
        "timestamp": _now(),
        "checks": {"store": store_check},
    }
    return JSONResponse(status_code=200 if ready else 503, content=body)
