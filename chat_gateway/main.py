"""
Chat Gateway main application.

Serves the browser chat client over a single WebSocket endpoint and exposes
health and Prometheus metrics over HTTP.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from shared.config.settings import settings
from shared.config.logging import setup_logging, chat_gateway_logger as logger
from chat_gateway import __version__
from chat_gateway.connection_manager import ConnectionManager
from chat_gateway.components.core.constants import CHAT_ENDPOINT, DEFAULT_ALLOWED_ORIGINS
from chat_gateway.components.metrics.prometheus import generate_prometheus_metrics

PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


# Process-wide; tests swap it out
manager = ConnectionManager()


# =============================================================================
# Lifespan
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    On exit, broadcasts the shutdown notice and closes every live connection.
    """
    setup_logging()
    logger.info(
        "Starting Chat Gateway",
        port=settings.chat_gateway_port,
        env=settings.environment,
    )
    if settings.environment == "production":
        for error in settings.validate_production():
            logger.warning("Configuration problem", error=error)

    yield

    logger.info("Shutting down Chat Gateway")
    try:
        await manager.shutdown()
    except Exception as e:
        logger.error("Error during graceful shutdown", error=str(e), exc_info=True)


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="Chat Gateway",
    description="Real-time broadcast chat over WebSocket",
    version=__version__,
    lifespan=lifespan,
)


def cors_origins() -> list[str]:
    """Configured origins, or the local development ones over http and https."""
    configured = [o.strip() for o in settings.allowed_origins.split(",")]
    if any(configured):
        return [o for o in configured if o]
    secure = [o.replace("http://", "https://", 1) for o in DEFAULT_ALLOWED_ORIGINS]
    return [*DEFAULT_ALLOWED_ORIGINS, *secure]


app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["Content-Type"],
)


# =============================================================================
# Health and metrics
# =============================================================================


@app.get("/chat/health")
def health_check():
    """Liveness plus connection stats."""
    status = "shutting_down" if manager.is_shutting_down() else "healthy"
    try:
        stats = manager.get_stats()
    except Exception as e:
        logger.warning("Stats unavailable for health check", error=str(e))
        stats = {"error": "stats_unavailable"}
    return {
        "status": status,
        "service": "chat-gateway",
        "version": app.version,
        "environment": settings.environment,
        **stats,
    }


@app.get("/chat/metrics", response_class=PlainTextResponse)
def prometheus_metrics():
    """
    Prometheus text exposition.

    Scrape config:
        metrics_path: /chat/metrics
    """
    return PlainTextResponse(
        generate_prometheus_metrics(manager),
        media_type=PROMETHEUS_CONTENT_TYPE,
    )


# =============================================================================
# WebSocket Endpoint
# =============================================================================


@app.websocket(CHAT_ENDPOINT)
async def chat_websocket(
    websocket: WebSocket,
    name: str | None = Query(None, description="Requested display name"),
):
    """
    WebSocket endpoint for chat participants.

    Without ``name`` the server assigns one.
    """
    try:
        session = await manager.connect(websocket, requested_name=name)
    except ConnectionError as e:
        logger.info("Connection not accepted", reason=str(e))
        return
    await manager.run_session(session)


# =============================================================================
# Development entry point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "chat_gateway.main:app",
        host=settings.chat_gateway_host,
        port=settings.chat_gateway_port,
        reload=settings.debug,
    )
