"""
HTTP and WebSocket control surface.

A thin FastAPI adapter over ``LifecycleController``: every route maps to
one controller call, and every event-bus event is forwarded to connected
WebSocket clients as ``{"type", "data"}`` JSON.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any

import orjson
from fastapi import Body, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from defi_arbitrage import __version__
from defi_arbitrage.config.constants import OPPORTUNITY_LIST_LIMIT
from defi_arbitrage.config.settings import Settings, get_settings
from defi_arbitrage.core.engine import ArbitrageEngine
from defi_arbitrage.core.errors import (
    ArbitrageError,
    InvalidStateError,
    OpportunityNotFoundError,
    SettingsError,
)
from defi_arbitrage.core.event_bus import Event
from defi_arbitrage.core.lifecycle import LifecycleController
from defi_arbitrage.utils.time import get_timestamp_ms


logger = logging.getLogger(__name__)


class ConnectionHub:
    """Tracks WebSocket clients and fans events out to them."""

    def __init__(self) -> None:
        self._clients: list[WebSocket] = []

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._clients.append(websocket)
        logger.info(f"WebSocket client connected ({len(self._clients)} total)")

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self._clients:
            self._clients.remove(websocket)
            logger.info(f"WebSocket client disconnected ({len(self._clients)} total)")

    async def broadcast(self, event: Event[Any]) -> None:
        """Send one event to every client, dropping clients that fail."""
        if not self._clients:
            return

        message = orjson.dumps(event.to_message()).decode()
        disconnected = []
        for client in self._clients:
            try:
                await client.send_text(message)
            except Exception as e:
                logger.debug(f"Dropping WebSocket client: {e}")
                disconnected.append(client)
        for client in disconnected:
            self.disconnect(client)

    @property
    def client_count(self) -> int:
        return len(self._clients)


def _error(status_code: int, message: str, code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, "code": code},
    )


def create_app(
    controller: LifecycleController | None = None,
    engine: ArbitrageEngine | None = None,
    cors_origins: list[str] | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        controller: Controller to expose (tests, embedding).
        engine: Engine to set up on startup and shut down on exit; its
            controller is exposed. Ignored when ``controller`` is given.
        cors_origins: Origins allowed by the CORS middleware.

    Returns:
        Configured FastAPI app.
    """
    if controller is None and engine is None:
        raise ValueError("create_app needs a controller or an engine")

    hub = ConnectionHub()

    @asynccontextmanager
    async def lifespan(app: FastAPI):  # type: ignore[no-untyped-def]
        owns_engine = controller is None and engine is not None
        if owns_engine:
            await engine.setup()
            app.state.controller = engine.controller

        active: LifecycleController = app.state.controller
        active.event_bus.subscribe_all(hub.broadcast)
        try:
            yield
        finally:
            active.event_bus.unsubscribe(None, hub.broadcast)
            if owns_engine:
                await engine.shutdown()

    app = FastAPI(title="DeFi Arbitrage Engine", version=__version__, lifespan=lifespan)
    app.state.controller = controller
    app.state.hub = hub
    app.state.started_ms = get_timestamp_ms()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # =========================================================================
    # Error Mapping
    # =========================================================================

    @app.exception_handler(OpportunityNotFoundError)
    async def not_found_handler(request: Request, exc: OpportunityNotFoundError) -> JSONResponse:
        return _error(404, str(exc), exc.code)

    @app.exception_handler(InvalidStateError)
    async def invalid_state_handler(request: Request, exc: InvalidStateError) -> JSONResponse:
        return _error(400, str(exc), exc.code)

    @app.exception_handler(SettingsError)
    async def settings_handler(request: Request, exc: SettingsError) -> JSONResponse:
        return _error(400, str(exc), exc.code)

    @app.exception_handler(ArbitrageError)
    async def arbitrage_handler(request: Request, exc: ArbitrageError) -> JSONResponse:
        logger.error(f"Unhandled {type(exc).__name__}: {exc}")
        return _error(500, str(exc), exc.code)

    def ctrl(request: Request) -> LifecycleController:
        return request.app.state.controller

    # =========================================================================
    # Read Routes
    # =========================================================================

    @app.get("/health")
    async def health(request: Request) -> dict[str, Any]:
        now = get_timestamp_ms()
        return {
            "status": "ok",
            "uptime": now - request.app.state.started_ms,
            "timestamp": now,
            "version": __version__,
            "clients": request.app.state.hub.client_count,
        }

    @app.get("/api/stats")
    async def stats(request: Request) -> dict[str, Any]:
        return ctrl(request).get_stats()

    @app.get("/api/opportunities")
    async def opportunities(request: Request, limit: int = OPPORTUNITY_LIST_LIMIT) -> list[dict[str, Any]]:
        return [o.to_dict() for o in ctrl(request).list_opportunities(limit)]

    @app.get("/api/opportunity/{opportunity_id}")
    async def opportunity(request: Request, opportunity_id: str) -> dict[str, Any]:
        return ctrl(request).get_opportunity(opportunity_id).to_dict()

    @app.get("/api/activities")
    async def activities(request: Request) -> list[dict[str, Any]]:
        return [a.to_dict() for a in ctrl(request).list_activities()]

    @app.get("/api/agents")
    async def agents(request: Request) -> list[dict[str, Any]]:
        return [a.to_dict() for a in ctrl(request).get_agent_statuses()]

    @app.get("/api/metrics")
    async def metrics(request: Request) -> dict[str, Any]:
        return ctrl(request).metrics.to_dict()

    # =========================================================================
    # System Control
    # =========================================================================

    @app.post("/api/system/start")
    async def start_system(
        request: Request,
        body: dict[str, Any] | None = Body(default=None),
    ) -> dict[str, Any]:
        return await ctrl(request).start_system(body)

    @app.post("/api/system/stop")
    async def stop_system(request: Request) -> dict[str, Any]:
        return await ctrl(request).stop_system()

    @app.get("/api/system/settings")
    async def get_system_settings(request: Request) -> dict[str, Any]:
        return ctrl(request).get_settings().to_dict()

    @app.post("/api/system/settings")
    async def update_system_settings(
        request: Request,
        body: dict[str, Any] | None = Body(default=None),
    ) -> dict[str, Any]:
        settings = await ctrl(request).update_settings(body or {})
        return {"success": True, "settings": settings.to_dict()}

    @app.get("/api/system/status")
    async def system_status(request: Request) -> dict[str, Any]:
        return ctrl(request).get_status()

    # =========================================================================
    # Approval
    # =========================================================================

    @app.post("/api/opportunity/{opportunity_id}/approve", response_model=None)
    async def approve(request: Request, opportunity_id: str) -> dict[str, Any] | JSONResponse:
        result = await ctrl(request).approve_opportunity(opportunity_id)
        if not result.success:
            return _error(500, result.error or "Transaction failed", "execution_failed")
        return {
            "success": True,
            "message": "Trade executed successfully",
            "txHash": result.tx_hash,
            "result": result.to_dict(),
        }

    @app.post("/api/opportunity/{opportunity_id}/reject")
    async def reject(request: Request, opportunity_id: str) -> dict[str, Any]:
        await ctrl(request).reject_opportunity(opportunity_id)
        return {"success": True, "message": "Opportunity rejected"}

    # =========================================================================
    # WebSocket
    # =========================================================================

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        active = websocket.app.state.controller
        await hub.connect(websocket)

        await websocket.send_text(orjson.dumps({"type": "init", "data": active.get_status()}).decode())

        try:
            while True:
                data = await websocket.receive_text()
                try:
                    msg = orjson.loads(data)
                except orjson.JSONDecodeError:
                    logger.debug(f"Ignoring malformed WebSocket message: {data[:100]}")
                    continue
                if not isinstance(msg, dict):
                    continue
                if msg.get("action") == "start":
                    await active.start_system()
                elif msg.get("action") == "stop":
                    await active.stop_system()
        except WebSocketDisconnect:
            pass
        finally:
            hub.disconnect(websocket)

    return app


def main(settings: Settings | None = None) -> None:
    """Serve the control surface with uvicorn."""
    import uvicorn

    settings = settings or get_settings()
    app = create_app(engine=ArbitrageEngine(settings), cors_origins=settings.cors_origins)

    print(
        f"""
╔═══════════════════════════════════════════════════════════════╗
║              DEFI ARBITRAGE ENGINE - CONTROL API              ║
╚═══════════════════════════════════════════════════════════════╝

API:       http://{settings.host}:{settings.port}
WebSocket: ws://{settings.host}:{settings.port}/ws
Press Ctrl+C to stop.
    """
    )
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        loop="auto" if settings.use_uvloop else "asyncio",
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
