from fastapi import APIRouter, Request, Response
from fastapi.responses import StreamingResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from queue_manager.api.deps import Config, Metrics
from queue_manager.api.responses import NO_CACHE_HEADERS, envelope
from queue_manager.services.live_stream import LiveUpdateStream

router = APIRouter()


@router.get("/metrics")
async def metrics(aggregator: Metrics):
    return envelope(await aggregator.snapshot(), no_cache=True)


@router.get("/metrics/prometheus")
async def prometheus_metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.get("/live")
async def live(request: Request, aggregator: Metrics, config: Config):
    stream = LiveUpdateStream(aggregator, config, is_disconnected=request.is_disconnected)
    headers = {**NO_CACHE_HEADERS, "Connection": "keep-alive", "X-Accel-Buffering": "no"}
    return StreamingResponse(stream.encoded(), media_type="text/event-stream", headers=headers)
