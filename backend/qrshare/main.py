"""qrshare Backend Application.

This is the main entry point for the qrshare backend service.
qrshare pairs two or more devices through a session identifier shared by
QR code and lets them exchange files over a WebSocket until the session
expires.

Modules:
    - sessions: session registry, connection hub, expiry sweeper, protocol
    - files: on-disk blob storage and file listing

Run with:
    uvicorn qrshare.main:app --host 0.0.0.0 --port 5000
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from qrshare.config import get_config
from qrshare.files.router import router as files_router
from qrshare.sessions.coordinator import build_sweeper, get_coordinator
from qrshare.sessions.router import router as sessions_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    # Apply configured log level to root logger so that
    # `logging.level: "debug"` in qrshare.settings.yaml activates DEBUG output.
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    coordinator = get_coordinator()
    sweeper = build_sweeper(coordinator, config)
    app.state.sweeper = sweeper
    await sweeper.start()

    logger.info(
        f"Server running at http://{config.server.public_host}:{config.server.port} "
        f"(uploads in {coordinator.blobs.upload_dir})"
    )

    yield  # Application runs here

    # Shutdown
    await sweeper.stop()
    logger.info("Application shutdown complete")


# Create FastAPI application with metadata
app = FastAPI(
    title="qrshare API",
    description="Ephemeral QR-paired file sharing between devices",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().server.allowed_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register all routers
app.include_router(sessions_router)
app.include_router(files_router)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint.

    Returns:
        dict: Status object indicating the server is running.
    """
    return {"status": "ok"}
