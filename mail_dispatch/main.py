"""FastAPI application entrypoint.

Thin HTTP front end over ``DispatchEngine``: ``POST /send``,
``GET /status/{tracking_id}``, ``GET /queue`` and ``GET /health``, plus
request-ID middleware.  Delivery outcomes, including failures, are plain
200 responses; only malformed requests get an error status.
"""

import logging
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from mail_dispatch.core.config import Settings
from mail_dispatch.core.errors import StructuredErrorResponse
from mail_dispatch.core.logging import configure_logging
from mail_dispatch.engine import DispatchEngine
from mail_dispatch.models.schemas import HealthResponse, QueueDepthResponse, SendRequest
from mail_dispatch.providers import ProviderRegistry, default_providers

logger = logging.getLogger(__name__)


def build_engine(settings: Settings) -> DispatchEngine:
    """Create an engine with providers from ``PROVIDERS_CONFIG_PATH`` if present."""
    config_path = Path(settings.PROVIDERS_CONFIG_PATH)
    if config_path.exists():
        registry = ProviderRegistry.from_yaml(config_path)
        logger.info("Loaded %d providers from %s", len(registry), config_path)
    else:
        logger.warning("%s not found, using default mock providers", config_path)
        registry = ProviderRegistry(default_providers())
    return DispatchEngine(settings, providers=registry)


def create_app(settings: Settings | None = None, engine: DispatchEngine | None = None) -> FastAPI:
    """Build the FastAPI app.

    When *engine* is given it is used as-is and its lifecycle is left to the
    caller; otherwise one is built from *settings* and started/stopped by the
    app lifespan.
    """
    settings = settings or (engine.settings if engine is not None else Settings())
    start_time = time.monotonic()
    owned = engine is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.LOG_LEVEL)
        if owned:
            app.state.engine = build_engine(settings)
        app.state.engine.start()
        try:
            yield
        finally:
            if owned:
                await app.state.engine.shutdown()

    app = FastAPI(
        title=settings.SERVICE_NAME,
        version=settings.SERVICE_VERSION,
        lifespan=lifespan,
    )
    if engine is not None:
        app.state.engine = engine

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next) -> Response:
        """Assign or preserve a unique request ID on every request."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        fields = sorted({".".join(str(p) for p in err["loc"][1:]) for err in exc.errors()})
        body = StructuredErrorResponse(
            error=f"missing or invalid fields: {', '.join(fields)}",
            code="VALIDATION_ERROR",
            request_id=getattr(request.state, "request_id", ""),
        )
        return JSONResponse(status_code=400, content=body.model_dump())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s", request.url.path)
        body = StructuredErrorResponse.from_exception(exc, getattr(request.state, "request_id", ""))
        return JSONResponse(status_code=500, content=body.model_dump())

    @app.post("/send")
    async def send(payload: SendRequest, request: Request) -> dict:
        """Queue a message and wait for its terminal outcome."""
        handle = request.app.state.engine.submit(payload.to_message(), payload.idempotency_key)
        result = await handle
        return result.to_dict()

    @app.get("/status/{tracking_id}")
    async def status(tracking_id: str, request: Request) -> dict:
        return request.app.state.engine.status(tracking_id).to_dict()

    @app.get("/queue", response_model=QueueDepthResponse)
    async def queue_depth(request: Request) -> QueueDepthResponse:
        return QueueDepthResponse(depth=request.app.state.engine.queue_depth())

    @app.get("/health", response_model=HealthResponse)
    async def health(request: Request) -> HealthResponse:
        """Return service health with uptime and resilience state."""
        dispatch: DispatchEngine = request.app.state.engine
        return HealthResponse(
            service=settings.SERVICE_NAME,
            version=settings.SERVICE_VERSION,
            status="healthy" if dispatch.running else "stopped",
            uptime_seconds=round(time.monotonic() - start_time, 2),
            queue_depth=dispatch.queue_depth(),
            circuit_breaker=dispatch.circuit_breaker.snapshot(),
            rate_limiter=dispatch.rate_limiter.snapshot(),
        )

    return app


app = create_app()
