"""FastAPI REST and WebSocket interface for the lidar server.

Single-process, single-lidar lifecycle. The app wraps one LidarServer whose
consumer is a PointBuffer; build it with create_app() to inject your own.

Error mapping:
- start/stop refused (not connected, already running, not running) → 409
- SpawnError → 503
- StopTimeout → 504
"""

import asyncio
import logging
import os
from typing import List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from lidar_server_lib import LidarConfig, LidarPoint, LidarServer, PointBuffer
from lidar_server_lib.errors import SpawnError, StopTimeout

# =============================================================================
# Environment Configuration
# =============================================================================

API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "9160"))
POINT_BUFFER_SIZE = int(os.getenv("POINT_BUFFER_SIZE", "2000"))
CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://127.0.0.1:3000"
).split(",")

API_VERSION = "0.1.0"
SERVICE_NAME = "Lidar Server API"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

STREAM_INTERVAL_S = 0.1

# =============================================================================
# Request/Response Models
# =============================================================================


class StatusResponse(BaseModel):
    """Response for GET /status."""
    state: str
    running: bool
    ending: bool
    connected: bool
    pid: Optional[int]
    points: int
    scans: int


class PointModel(BaseModel):
    timestamp: float
    angle: float
    distance: float


class ScanResponse(BaseModel):
    """Response for GET /scan/latest."""
    scans: int
    points: List[PointModel]


def _point_to_dict(point: LidarPoint) -> dict:
    return {"timestamp": point.timestamp, "angle": point.angle, "distance": point.distance}


def _points_after(snapshot: List[LidarPoint], last: Optional[LidarPoint]) -> List[LidarPoint]:
    """Return the points in snapshot that arrived after last (all if last is gone)."""
    if last is None:
        return snapshot
    for i in range(len(snapshot) - 1, -1, -1):
        if snapshot[i] is last:
            return snapshot[i + 1:]
    return snapshot


# =============================================================================
# App Factory
# =============================================================================


def create_app(server: Optional[LidarServer] = None) -> FastAPI:
    """Build the API around a LidarServer.

    Args:
        server: Server to expose. If None, one is built from LIDAR_* environment
                variables with a PointBuffer consumer.

    Returns:
        Configured FastAPI application
    """
    if server is None:
        server = LidarServer(
            config=LidarConfig.from_env(),
            consumer=PointBuffer(maxlen=POINT_BUFFER_SIZE),
        )

    app = FastAPI(
        title=SERVICE_NAME,
        description="REST and WebSocket interface for a supervised lidar driver process",
        version=API_VERSION,
    )
    app.state.server = server

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def _buffer() -> Optional[PointBuffer]:
        consumer = server.consumer
        return consumer if isinstance(consumer, PointBuffer) else None

    # -------------------------------------------------------------------------
    # Exception Handlers
    # -------------------------------------------------------------------------

    @app.exception_handler(SpawnError)
    async def spawn_error_handler(request: Request, exc: SpawnError):
        """Map SpawnError to 503 Service Unavailable."""
        logger.error(f"SpawnError: {exc}")
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.exception_handler(StopTimeout)
    async def stop_timeout_handler(request: Request, exc: StopTimeout):
        """Map StopTimeout to 504 Gateway Timeout."""
        logger.error(f"StopTimeout: {exc}")
        return JSONResponse(status_code=504, content={"detail": str(exc)})

    # -------------------------------------------------------------------------
    # Read-Only Endpoints
    # -------------------------------------------------------------------------

    @app.get("/")
    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {
            "service": SERVICE_NAME,
            "version": API_VERSION,
            "status": "online"
        }

    @app.get("/status", response_model=StatusResponse)
    def get_status():
        """Get lifecycle state, device presence and buffered point counts."""
        buffer = _buffer()
        return StatusResponse(
            state=server.state.value,
            running=server.is_running(),
            ending=server.is_ending(),
            connected=server.is_connected(),
            pid=server.pid,
            points=len(buffer) if buffer is not None else 0,
            scans=buffer.scan_count if buffer is not None else 0,
        )

    @app.get("/connected")
    def get_connected():
        """Check whether the lidar's serial device is attached."""
        return {"connected": server.is_connected()}

    @app.get("/scan/latest", response_model=ScanResponse)
    async def get_latest_scan():
        """Points of the most recent complete rotation ([] until one completes)."""
        buffer = _buffer()
        if buffer is None:
            raise HTTPException(status_code=404, detail="No point buffer available")

        return ScanResponse(
            scans=buffer.scan_count,
            points=[_point_to_dict(p) for p in buffer.latest_scan()],
        )

    # -------------------------------------------------------------------------
    # Lifecycle Endpoints
    # -------------------------------------------------------------------------

    @app.post("/start")
    def start():
        """Spawn the lidar process and start streaming points.

        Raises:
            409: Not connected, or already running/starting/stopping
            503: Process could not be spawned (SpawnError)
        """
        if not server.start():
            if not server.is_connected():
                detail = "Lidar not connected"
            elif server.is_ending():
                detail = "Stop in progress"
            else:
                detail = "Lidar server already running"
            raise HTTPException(status_code=409, detail=detail)

        logger.info("Lidar started via API")
        return {"status": "started", "pid": server.pid}

    @app.post("/stop")
    def stop():
        """Kill the lidar process and wait for the reader to finish.

        Raises:
            409: Not running, or stop failed (retry)
            504: Process or reader did not exit in time (StopTimeout)
        """
        if not server.stop():
            detail = "Lidar server not running" if not server.is_running() else "Stop failed, retry"
            raise HTTPException(status_code=409, detail=detail)

        logger.info("Lidar stopped via API")
        return {"status": "stopped"}

    # -------------------------------------------------------------------------
    # WebSocket Streaming
    # -------------------------------------------------------------------------

    @app.websocket("/stream")
    async def websocket_stream(websocket: WebSocket):
        """Push newly received points as JSON every 100 ms.

        Message format: {"points": [{"timestamp", "angle", "distance"}, ...]}
        Only sent when new points arrived since the previous message.
        """
        await websocket.accept()
        logger.info(f"WebSocket client connected: {websocket.client}")

        buffer = _buffer()
        if buffer is None:
            await websocket.send_json({"error": "No point buffer available"})
            await websocket.close()
            return

        last: Optional[LidarPoint] = None
        try:
            while True:
                snapshot = buffer.snapshot()
                fresh = _points_after(snapshot, last)
                if fresh:
                    await websocket.send_json({"points": [_point_to_dict(p) for p in fresh]})
                    last = fresh[-1]
                # Doubles as the tick; client messages are ignored but a
                # disconnect surfaces here as WebSocketDisconnect
                try:
                    await asyncio.wait_for(websocket.receive_text(), timeout=STREAM_INTERVAL_S)
                except asyncio.TimeoutError:
                    pass
        except WebSocketDisconnect:
            logger.info(f"WebSocket client disconnected: {websocket.client}")

    # -------------------------------------------------------------------------
    # Startup/Shutdown Events
    # -------------------------------------------------------------------------

    @app.on_event("startup")
    async def startup_event():
        """Log startup configuration."""
        config = server.config
        logger.info("=" * 60)
        logger.info(f"{SERVICE_NAME} started")
        logger.info(f"Version: {API_VERSION}")
        logger.info(f"Lidar Path: {config.lidar_path}")
        logger.info(f"Device: {config.device_dir}{config.device_id}")
        logger.info(f"Stop Timeout: {config.stop_timeout_s}s")
        logger.info(f"CORS Origins: {CORS_ORIGINS}")
        logger.info(f"Log Level: {LOG_LEVEL}")
        logger.info("=" * 60)

    @app.on_event("shutdown")
    def shutdown_event():
        """Stop the lidar process on shutdown."""
        logger.info(f"Shutting down {SERVICE_NAME}...")
        if server.is_running():
            try:
                server.stop()
            except StopTimeout as e:
                logger.error(f"Error during shutdown: {e}")
        logger.info("Shutdown complete")

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host=API_HOST, port=API_PORT, log_level=LOG_LEVEL.lower())
