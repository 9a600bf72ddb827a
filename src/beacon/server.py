"""Status endpoint: /ping and /health, served by uvicorn inside the worker's loop."""

import asyncio

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from beacon.otel import get_logger
from beacon.state import SchedulerState

log = get_logger()

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

STARTUP_TIMEOUT_S = 5.0
STOP_TIMEOUT_S = 5.0


def create_app(state: SchedulerState) -> FastAPI:
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None, redirect_slashes=False)

    @app.middleware("http")
    async def cors(request: Request, call_next):
        if request.method == "OPTIONS":
            response = Response(status_code=204)
        elif request.url.query:
            # Routes match the exact request target, query string included
            response = PlainTextResponse("Not Found", status_code=404)
        else:
            response = await call_next(request)
        response.headers.update(CORS_HEADERS)
        return response

    @app.exception_handler(StarletteHTTPException)
    async def not_found(request: Request, exc: StarletteHTTPException):
        # Unknown paths and unsupported methods alike
        return PlainTextResponse("Not Found", status_code=404)

    @app.get("/ping")
    async def ping():
        return PlainTextResponse("pong")

    @app.get("/health")
    async def health():
        return JSONResponse(state.snapshot().to_health())

    return app


class StatusServer:
    """uvicorn server run as a task, without uvicorn's own signal handling."""

    def __init__(self, app: FastAPI, host: str, port: int):
        self.config = uvicorn.Config(app, host=host, port=port, log_level="warning")
        self.server = uvicorn.Server(self.config)
        self.task: asyncio.Task | None = None

    async def _serve(self):
        server = self.server
        serve_coro = server._serve() if hasattr(server, "_serve") else server.serve()
        try:
            await serve_coro
        except SystemExit as exc:
            # uvicorn exits the process when startup fails, e.g. port in use
            raise RuntimeError(f"HTTP server exited during startup (code {exc.code})") from exc

    async def start(self):
        """Bind and start serving. Raises if the port cannot be bound."""
        server = self.server
        self.task = asyncio.create_task(self._serve())

        loop = asyncio.get_running_loop()
        deadline = loop.time() + STARTUP_TIMEOUT_S
        while not server.started:
            if self.task.done():
                exc = self.task.exception()
                raise RuntimeError(f"HTTP server failed to bind {self.config.host}:{self.config.port}") from exc
            if loop.time() > deadline:
                raise TimeoutError("HTTP server failed to start within timeout")
            await asyncio.sleep(0.05)

        log.info(f"[HTTP Server] Listening on port {self.config.port}")

    def close(self):
        """Stop accepting connections."""
        self.server.should_exit = True

    async def wait_closed(self):
        if self.task is None:
            return
        try:
            await asyncio.wait_for(self.task, timeout=STOP_TIMEOUT_S)
            log.info("[HTTP Server] Closed.")
        except asyncio.TimeoutError:
            log.warning("[HTTP Server] Timed out closing; cancelling")
            self.task.cancel()
