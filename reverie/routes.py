"""
Control API — HTTP routes for toggling autonomy.

Routes:
  GET  /autonomy/status    — current desired/actual state
  POST /autonomy/enable    — persist enabled=true and start
  POST /autonomy/disable   — persist enabled=false and stop
  POST /autonomy/toggle    — flip the desired state
  POST /autonomy/interval  — body {"interval": <ms>}, clamped to [100, 60000]

The server holds no logic of its own; every route delegates to
AutonomyService. When no service is attached every route answers 503.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

import structlog
from aiohttp import web

if TYPE_CHECKING:
    from reverie.config import ControlApiConfig
    from reverie.service import AutonomyService

logger = structlog.get_logger(__name__)

_Handler = Callable[[web.Request], Awaitable[web.Response]]


def _error(message: str, status: int) -> web.Response:
    return web.json_response({"success": False, "error": message}, status=status)


def _toggle_data(status: dict[str, Any]) -> dict[str, Any]:
    return {
        "enabled": status["enabled"],
        "running": status["running"],
        "interval": status["interval"],
    }


class ControlServer:
    """aiohttp app exposing the autonomy control routes.

    Lifecycle: create → start() → (serve requests) → stop()
    """

    def __init__(
        self,
        service: Optional["AutonomyService"],
        config: Optional["ControlApiConfig"] = None,
    ) -> None:
        self._service = service
        self._config = config
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/autonomy/status", self._guard(self._handle_status))
        app.router.add_post("/autonomy/enable", self._guard(self._handle_enable))
        app.router.add_post("/autonomy/disable", self._guard(self._handle_disable))
        app.router.add_post("/autonomy/toggle", self._guard(self._handle_toggle))
        app.router.add_post("/autonomy/interval", self._guard(self._handle_interval))
        return app

    async def start(self, host: Optional[str] = None, port: Optional[int] = None) -> None:
        host = host or (self._config.host if self._config else "127.0.0.1")
        port = port if port is not None else (self._config.port if self._config else 18910)
        self._runner = web.AppRunner(self.build_app(), access_log=None)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, host, port)
        await self._site.start()
        logger.info("control_api.started", host=host, port=port)

    async def stop(self) -> None:
        if self._site is not None:
            await self._site.stop()
            self._site = None
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        logger.info("control_api.stopped")

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _guard(self, handler: _Handler) -> _Handler:
        """503 without a service; 500 with the message on unexpected errors."""

        async def wrapped(request: web.Request) -> web.Response:
            if self._service is None:
                return _error("Autonomy service not available", 503)
            try:
                return await handler(request)
            except Exception as e:
                logger.error("control_api.handler_failed", path=request.path, exc_info=True)
                return _error(str(e) or "Unknown error", 500)

        return wrapped

    async def _handle_status(self, request: web.Request) -> web.Response:
        assert self._service is not None
        return web.json_response({"success": True, "data": self._service.status()})

    async def _handle_enable(self, request: web.Request) -> web.Response:
        assert self._service is not None
        await self._service.enable_autonomy()
        return web.json_response({
            "success": True,
            "message": "Autonomy enabled",
            "data": _toggle_data(self._service.status()),
        })

    async def _handle_disable(self, request: web.Request) -> web.Response:
        assert self._service is not None
        await self._service.disable_autonomy()
        return web.json_response({
            "success": True,
            "message": "Autonomy disabled",
            "data": _toggle_data(self._service.status()),
        })

    async def _handle_toggle(self, request: web.Request) -> web.Response:
        assert self._service is not None
        enabled = await self._service.toggle()
        return web.json_response({
            "success": True,
            "message": "Autonomy enabled" if enabled else "Autonomy disabled",
            "data": _toggle_data(self._service.status()),
        })

    async def _handle_interval(self, request: web.Request) -> web.Response:
        assert self._service is not None
        try:
            body = await request.json()
        except (json.JSONDecodeError, ValueError):
            return _error("Request body must be JSON", 400)
        interval = body.get("interval") if isinstance(body, dict) else None
        if isinstance(interval, bool) or not isinstance(interval, (int, float)):
            return _error("Interval must be a number of milliseconds", 400)

        effective = self._service.set_interval(interval)
        return web.json_response({
            "success": True,
            "message": "Interval updated",
            "data": {"interval": effective, "interval_seconds": round(effective / 1000)},
        })
