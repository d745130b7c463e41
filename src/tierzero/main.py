"""
TierZero offline verification service.

Exposes the offline analyzer, the sync queue and the connectivity signal over
HTTP for hosts that run the layer out of process.
"""

import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import get_settings
from .connectivity import ConnectivityState
from .errors import QueuePersistError
from .models import QueueItem, QueueKind, SyncReport, Verdict
from .service import OfflineAnalyzer

# Load environment variables early so Settings picks them up
load_dotenv()

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(),
        logging.FileHandler('logs/tierzero.log') if os.path.exists('logs') else logging.NullHandler()
    ]
)

logger = logging.getLogger(__name__)

VERSION = "1.0.0"
TITLE = "TierZero Offline Verification"


class Metrics:
    """Track service metrics"""

    def __init__(self):
        self.total_requests = 0
        self.failed_requests = 0
        self.start_time = time.time()

    def record_request(self, success: bool):
        self.total_requests += 1
        if not success:
            self.failed_requests += 1

    def get_stats(self, analyzer: OfflineAnalyzer) -> Dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "failed_requests": self.failed_requests,
            **analyzer.stats.as_dict(),
            "uptime_seconds": int(time.time() - self.start_time),
        }


metrics = Metrics()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info("=" * 60)
    logger.info("Starting %s v%s", TITLE, VERSION)
    logger.info("=" * 60)

    analyzer = OfflineAnalyzer(get_settings())
    await analyzer.init()
    app.state.analyzer = analyzer

    logger.info("Service ready")
    yield

    logger.info("Shutting down...")
    await analyzer.shutdown()
    logger.info("Shutdown complete")


app = FastAPI(
    title=TITLE,
    version=VERSION,
    description="Offline credibility analysis and deferred sync",
    lifespan=lifespan,
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    metrics.record_request(success=False)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "detail": str(exc) if os.getenv("DEBUG") else "An error occurred"
        }
    )


def get_analyzer(request: Request) -> OfflineAnalyzer:
    return request.app.state.analyzer


class AnalyzeRequest(BaseModel):
    text: str = Field(..., max_length=100_000, description="Content to analyze")


class EnqueueRequest(BaseModel):
    kind: QueueKind
    payload: Any = None


class EnqueueResponse(BaseModel):
    id: str


class QueueListing(BaseModel):
    depth: int
    pending: List[QueueItem]
    dead_lettered: List[QueueItem]


class ConnectivityRequest(BaseModel):
    state: ConnectivityState


@app.get("/")
async def root():
    return {
        "service": TITLE,
        "version": VERSION,
        "status": "operational",
        "endpoints": {
            "analyze": "POST /analyze",
            "queue": "POST /queue, GET /queue",
            "sync": "POST /sync",
            "connectivity": "POST /connectivity",
            "health": "GET /health",
            "metrics": "GET /metrics"
        }
    }


@app.get("/health")
async def health_check(request: Request):
    analyzer = get_analyzer(request)
    depth = await analyzer.safe_queue_depth()
    return {
        "status": "healthy" if depth >= 0 else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "components": {
            "store": analyzer.store.name,
            "sync": analyzer.sync_state.value,
            "connectivity": analyzer.observer.state.value,
        },
        "queue_depth": depth,
        "cache_entries": len(analyzer.cache),
    }


@app.get("/metrics")
async def get_metrics(request: Request):
    return {
        "service": TITLE,
        "version": VERSION,
        "metrics": metrics.get_stats(get_analyzer(request)),
    }


@app.post("/analyze", response_model=Verdict)
async def analyze(body: AnalyzeRequest, request: Request):
    verdict = await get_analyzer(request).analyze(body.text)
    metrics.record_request(success=True)
    return verdict


@app.post("/queue", response_model=EnqueueResponse, status_code=status.HTTP_202_ACCEPTED)
async def enqueue(body: EnqueueRequest, request: Request):
    try:
        item_id = await get_analyzer(request).enqueue_for_later(body.kind, body.payload)
    except QueuePersistError as exc:
        metrics.record_request(success=False)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Operation could not be queued: {exc}"
        )
    metrics.record_request(success=True)
    return EnqueueResponse(id=item_id)


@app.get("/queue", response_model=QueueListing)
async def list_queue(request: Request):
    analyzer = get_analyzer(request)
    pending = await analyzer.pending()
    return QueueListing(
        depth=len(pending),
        pending=pending,
        dead_lettered=await analyzer.dead_letters(),
    )


@app.post("/sync", response_model=SyncReport)
async def sync_now(request: Request):
    report = await get_analyzer(request).trigger_sync()
    metrics.record_request(success=True)
    return report


@app.post("/connectivity")
async def set_connectivity(body: ConnectivityRequest, request: Request):
    changed = get_analyzer(request).observer.publish(body.state)
    return {"state": body.state.value, "changed": changed}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tierzero.main:app",
        host="0.0.0.0",
        port=8001,
        log_level="info"
    )
