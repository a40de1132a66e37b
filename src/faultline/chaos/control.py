# src/faultline/chaos/control.py
"""Starlette admin application for controlling a ChaosEngine at runtime.

Endpoints (under a configurable prefix, default /chaos):

    GET  /status         current description and enabled flag
    POST /activate       enable the configured stage
    POST /activate/new   decode the JSON body as a stage, install and enable it
    POST /deactivate     disable chaos
    POST /toggle         flip enabled/disabled

Every endpoint answers {"chaos": <description or "none">, "enabled": bool}.
The app never sits on the request path it controls; mount it beside the
application under test.

Usage:
    engine = ChaosEngine(load_stage(preset="flaky_gateway"))
    admin = create_control_app(engine)
    uvicorn.run(admin, port=9000)
"""

from __future__ import annotations

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from faultline.chaos.config import decode_stage
from faultline.chaos.engine import ChaosEngine
from faultline.chaos.errors import ConfigurationError
from faultline.core.logging import get_logger

logger = get_logger(__name__)


class ChaosControlServer:
    """Admin endpoints bound to one ChaosEngine."""

    def __init__(self, engine: ChaosEngine, *, prefix: str = "/chaos") -> None:
        self._engine = engine
        self._prefix = prefix.rstrip("/")
        self._app = self._create_app()

    def _create_app(self) -> Starlette:
        """Create the Starlette application with all routes."""
        p = self._prefix
        routes = [
            Route(f"{p}/status", self._status_endpoint, methods=["GET"]),
            Route(f"{p}/activate", self._activate_endpoint, methods=["POST"]),
            Route(f"{p}/activate/new", self._activate_new_endpoint, methods=["POST"]),
            Route(f"{p}/deactivate", self._deactivate_endpoint, methods=["POST"]),
            Route(f"{p}/toggle", self._toggle_endpoint, methods=["POST"]),
        ]
        return Starlette(debug=False, routes=routes)

    @property
    def app(self) -> Starlette:
        """Get the Starlette ASGI application."""
        return self._app

    @property
    def engine(self) -> ChaosEngine:
        return self._engine

    # === Endpoint handlers ===

    async def _status_endpoint(self, request: Request) -> JSONResponse:
        """Handle GET /status."""
        return JSONResponse(self._engine.status())

    async def _activate_endpoint(self, request: Request) -> JSONResponse:
        """Handle POST /activate."""
        self._engine.enable()
        return JSONResponse(self._engine.status())

    async def _activate_new_endpoint(self, request: Request) -> JSONResponse:
        """Handle POST /activate/new.

        A body that is not valid JSON or not a valid stage answers 400 and
        leaves the engine untouched.
        """
        try:
            body = await request.json()
        except ValueError as e:
            # JSONDecodeError and UnicodeDecodeError are both ValueError
            return JSONResponse({"error": f"Request body is not valid JSON: {e}"}, status_code=400)
        if not isinstance(body, dict):
            return JSONResponse({"error": f"Stage must be a JSON object, got {type(body).__name__}"}, status_code=400)
        try:
            stage = decode_stage(body)
        except ConfigurationError as e:
            logger.warning("chaos_activation_rejected", error=str(e))
            return JSONResponse({"error": str(e)}, status_code=400)
        self._engine.enable(stage)
        return JSONResponse(self._engine.status())

    async def _deactivate_endpoint(self, request: Request) -> JSONResponse:
        """Handle POST /deactivate."""
        self._engine.disable()
        return JSONResponse(self._engine.status())

    async def _toggle_endpoint(self, request: Request) -> JSONResponse:
        """Handle POST /toggle."""
        self._engine.toggle()
        return JSONResponse(self._engine.status())


def create_control_app(engine: ChaosEngine, *, prefix: str = "/chaos") -> Starlette:
    """Create the admin ASGI application for engine.

    Args:
        engine: Engine to control.
        prefix: Path prefix for the admin routes.

    Returns:
        Starlette application.
    """
    return ChaosControlServer(engine, prefix=prefix).app
