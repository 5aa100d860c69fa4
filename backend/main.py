import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from backend.api.routers import replay, system
from backend.core.logging import setup_logging
from backend.core.websockets import ws_manager

logger = logging.getLogger("gridpulse.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown events."""
    logger.info("GridPulse ASGI Server Starting...")
    ws_manager.set_loop(asyncio.get_running_loop())

    yield  # Server is running

    logger.info("GridPulse ASGI Server Shutting Down...")
    from backend.services.replay_service import get_replay_service

    get_replay_service().shutdown()


def create_app() -> socketio.ASGIApp:
    """Factory to create the ASGI app."""
    setup_logging()

    # 1. Create FastAPI App
    app = FastAPI(
        title="GridPulse Telemetry Replay",
        version="1.0.0",
        description="Replays smart-grid telemetry and derives energy-management decisions per row.",
        lifespan=lifespan,
    )

    # 2. CORS (Permissive for local dev)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 3. Timing Middleware
    from backend.middleware.timing import TimingMiddleware

    app.add_middleware(TimingMiddleware)

    # 4. Mount Routers
    app.include_router(system.router)
    app.include_router(replay.router)

    # 5. Mount Static Files (built dashboard), if present
    static_dir = Path(__file__).parent / "static"
    if static_dir.exists():
        app.mount("/", StaticFiles(directory=str(static_dir), html=True), name="static")
    else:
        logger.info(f"Static directory not found at {static_dir}. Serving API only.")

    # 6. Wrap with Socket.IO ASGI App
    # This intercepts /socket.io requests and passes others to FastAPI
    socket_app = socketio.ASGIApp(ws_manager.sio, other_asgi_app=app)

    return socket_app


# The entry point for uvicorn
# Usage: uvicorn backend.main:app
app: socketio.ASGIApp = create_app()
