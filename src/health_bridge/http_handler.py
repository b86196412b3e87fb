"""HTTP API for weight ingestion and retrieval."""

from __future__ import annotations

import asyncio
import hmac
import json
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
import uvicorn
from fastapi import APIRouter, FastAPI, Query, Request, Response, status
from fastapi.responses import JSONResponse
from opentelemetry import trace
from opentelemetry.trace import SpanKind
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, Field

from . import __version__
from .config import HTTPSettings
from .cors import CORSPolicy, install_cors
from .errors import AuthError, IngestionError, ValidationError
from .ingest import IngestionEngine, IngestResult
from .metrics import HTTP_REQUESTS_TOTAL, SAMPLES_REJECTED
from .query import WeightQuery, WeightRow
from .samples import PayloadKind, SampleNormalizer
from .tracing import current_trace_id, extract_trace_context
from .types import JSONValue, ServiceStatusSnapshot

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)


def _log_task_exception(task: asyncio.Task) -> None:
    """Log exceptions from background tasks that would otherwise be silently lost."""
    if not task.cancelled() and task.exception():
        logger.error("background_task_failed", error=str(task.exception()))


class OkResponse(BaseModel):
    """Response for a stored single sample."""

    ok: bool = True


class ImportResponse(BaseModel):
    """Response for a stored batch import."""

    ok: bool = True
    upserts: int = Field(description="Number of samples submitted and applied")


class ErrorResponse(BaseModel):
    """Standard error response."""

    ok: bool = False
    error: str
    field: str | None = None
    max_bytes: int | None = None


class ReadyResponse(BaseModel):
    """Readiness response."""

    status: str
    components: dict[str, Any] = Field(default_factory=dict)


class InfoResponse(BaseModel):
    """Service info response."""

    name: str
    version: str


def error_response(
    status_code: int,
    error: str,
    field: str | None = None,
    max_bytes: int | None = None,
) -> JSONResponse:
    payload: dict[str, JSONValue] = {"ok": False, "error": error}
    if field is not None:
        payload["field"] = field
    if max_bytes is not None:
        payload["max_bytes"] = max_bytes
    return JSONResponse(status_code=status_code, content=payload)


class HTTPHandler:
    """Serves the weight endpoints.

    Write endpoints validate and normalize the body, then apply the samples
    through the ingestion engine; the read endpoint projects recent rows.
    """

    def __init__(
        self,
        settings: HTTPSettings,
        normalizer: SampleNormalizer,
        engine: IngestionEngine,
        query: WeightQuery,
        status_provider: Callable[[], Awaitable[ServiceStatusSnapshot]] | None = None,
    ) -> None:
        self._settings = settings
        self._normalizer = normalizer
        self._engine = engine
        self._query = query
        self._status_provider = status_provider
        self._cors = CORSPolicy(settings.origin_list, fallback=settings.cors_fallback)
        self._app: FastAPI | None = None
        self._server: uvicorn.Server | None = None
        self._server_task: asyncio.Task | None = None

    def _authorize(self, request: Request) -> None:
        """Validate the Bearer token from the Authorization header.

        Raises:
            AuthError: If a token is configured and the header does not carry it.
        """
        if not self._settings.auth_token:
            return  # No token configured = auth disabled
        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            raise AuthError()
        if not hmac.compare_digest(
            auth_header[7:].encode(), self._settings.auth_token.encode()
        ):
            raise AuthError()

    @staticmethod
    def _count(method: str, path: str, status_code: int) -> None:
        HTTP_REQUESTS_TOTAL.labels(method=method, path=path, status=str(status_code)).inc()

    def _reject(
        self,
        path: str,
        status_code: int,
        error: str,
        field: str | None = None,
        max_bytes: int | None = None,
    ) -> JSONResponse:
        self._count("POST", path, status_code)
        return error_response(status_code, error, field=field, max_bytes=max_bytes)

    async def _ingest(
        self, request: Request, path: str, kind: PayloadKind
    ) -> IngestResult | JSONResponse:
        """Shared pipeline of the write endpoints.

        Returns the ingestion result, or the error response to send.
        """
        request_context = extract_trace_context(dict(request.headers))
        with tracer.start_as_current_span(
            "http.ingest",
            context=request_context,
            kind=SpanKind.SERVER,
        ) as span:
            span.set_attribute("http.method", "POST")
            span.set_attribute("http.route", path)
            span.set_attribute("payload.kind", kind)
            logger.info(
                "http_ingest_received",
                path=path,
                client_host=request.client.host if request.client else None,
                user_agent=request.headers.get("user-agent"),
                content_length=request.headers.get("content-length"),
                trace_id=current_trace_id(span),
            )

            try:
                self._authorize(request)
            except AuthError:
                logger.warning("http_unauthorized", path=path)
                return self._reject(path, status.HTTP_401_UNAUTHORIZED, "Unauthorized")

            content_length = request.headers.get("content-length")
            if (
                content_length
                and content_length.isdigit()
                and int(content_length) > self._settings.max_request_size
            ):
                return self._reject(
                    path,
                    status.HTTP_413_CONTENT_TOO_LARGE,
                    "Request body too large",
                    max_bytes=self._settings.max_request_size,
                )

            try:
                raw_body = await request.body()
            except Exception as e:
                logger.warning("request_body_read_failed", error=str(e))
                return self._reject(
                    path, status.HTTP_400_BAD_REQUEST, "Failed to read request body"
                )

            if len(raw_body) > self._settings.max_request_size:
                return self._reject(
                    path,
                    status.HTTP_413_CONTENT_TOO_LARGE,
                    "Request body too large",
                    max_bytes=self._settings.max_request_size,
                )

            try:
                payload = json.loads(raw_body)
            except (json.JSONDecodeError, UnicodeDecodeError) as exc:
                logger.warning("http_payload_parse_error", path=path, error=str(exc))
                return self._reject(path, status.HTTP_400_BAD_REQUEST, "Invalid JSON")

            try:
                samples = self._normalizer.normalize(payload, kind)
            except ValidationError as exc:
                SAMPLES_REJECTED.labels(field=exc.field.split(".")[-1]).inc()
                logger.warning(
                    "http_payload_validation_error",
                    path=path,
                    field=exc.field,
                    error=exc.message,
                )
                return self._reject(
                    path, status.HTTP_400_BAD_REQUEST, str(exc), field=exc.field
                )

            span.set_attribute("samples.count", len(samples))

            try:
                result = await self._engine.apply(samples, kind=kind)
            except IngestionError as exc:
                logger.error("http_ingest_store_error", path=path, error=str(exc.__cause__ or exc))
                return self._reject(
                    path, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error"
                )

            self._count("POST", path, status.HTTP_200_OK)
            return result

    def _build_app(self) -> FastAPI:
        app = FastAPI(
            title="Health Bridge API",
            version=__version__,
            description="Body-weight ingestion API for health-tracking clients.",
        )
        install_cors(app, self._cors)

        prefix = self._settings.api_prefix
        weight_path = f"{prefix}/health/weight"
        import_path = f"{prefix}/health/import"
        router = APIRouter(prefix=f"{prefix}/health", tags=["weight"])

        @router.post(
            "/weight",
            response_model=OkResponse,
            responses={
                400: {"model": ErrorResponse},
                401: {"model": ErrorResponse},
                413: {"model": ErrorResponse},
                500: {"model": ErrorResponse},
            },
            summary="Store one weight sample",
        )
        async def post_weight(request: Request):
            """Handle POST /health/weight -- upsert a single sample."""
            result = await self._ingest(request, weight_path, "single")
            if isinstance(result, JSONResponse):
                return result
            return OkResponse()

        @router.post(
            "/import",
            response_model=ImportResponse,
            responses={
                400: {"model": ErrorResponse},
                401: {"model": ErrorResponse},
                413: {"model": ErrorResponse},
                500: {"model": ErrorResponse},
            },
            summary="Import a batch of HealthKit body-mass samples",
        )
        async def post_import(request: Request):
            """Handle POST /health/import -- upsert every sample of the batch."""
            result = await self._ingest(request, import_path, "import")
            if isinstance(result, JSONResponse):
                return result
            return ImportResponse(upserts=result.accepted)

        @router.get(
            "/weight",
            response_model=list[WeightRow],
            responses={401: {"model": ErrorResponse}},
            summary="Recent weight samples",
        )
        async def get_weight(
            request: Request,
            limit: str | None = Query(default=None, description="Rows to return (1-500)"),
        ):
            """Handle GET /health/weight -- newest samples in kg and lb."""
            if self._settings.require_auth_for_reads:
                try:
                    self._authorize(request)
                except AuthError:
                    self._count("GET", weight_path, 401)
                    return error_response(status.HTTP_401_UNAUTHORIZED, "Unauthorized")

            rows = await self._query.list_recent(limit)
            self._count("GET", weight_path, 200)
            return rows

        app.include_router(router)

        @app.get(
            "/health",
            response_model=dict[str, str],
            summary="Health check",
        )
        async def health() -> dict[str, str]:
            """Handle GET /health -- returns service liveness status."""
            self._count("GET", "/health", 200)
            return {"status": "ok"}

        @app.get(
            "/ready",
            response_model=ReadyResponse,
            responses={503: {"model": ReadyResponse}},
            summary="Readiness check",
        )
        async def ready():
            """Handle GET /ready -- returns readiness of the store."""
            if self._status_provider:
                snapshot = await self._status_provider()
                readiness_status = snapshot.get("status", "unknown")
                components = dict(snapshot.get("components", {}))
            else:
                readiness_status = "ok"
                components = {}
            if readiness_status != "ok":
                self._count("GET", "/ready", 503)
                return JSONResponse(
                    status_code=503,
                    content={"status": readiness_status, "components": components},
                )
            self._count("GET", "/ready", 200)
            return ReadyResponse(status=readiness_status, components=components)

        @app.get(
            "/info",
            response_model=InfoResponse,
            summary="Service info",
        )
        async def info() -> InfoResponse:
            """Handle GET /info -- returns service name and version."""
            self._count("GET", "/info", 200)
            return InfoResponse(name="health-bridge", version=__version__)

        @app.get("/metrics", include_in_schema=False)
        async def metrics() -> Response:
            """Handle GET /metrics -- Prometheus exposition."""
            return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

        return app

    async def start(self) -> None:
        """Start the HTTP server."""
        self._app = self._build_app()
        config = uvicorn.Config(
            self._app,
            host=self._settings.host,
            port=self._settings.port,
            log_level="info",
        )
        self._server = uvicorn.Server(config)
        self._server_task = asyncio.create_task(self._server.serve())
        self._server_task.add_done_callback(_log_task_exception)
        logger.info(
            "http_server_started",
            host=self._settings.host,
            port=self._settings.port,
            api_prefix=self._settings.api_prefix,
        )

    async def stop(self) -> None:
        """Stop the HTTP server."""
        if self._server:
            self._server.should_exit = True
        if self._server_task:
            await self._server_task
            self._server_task = None
        logger.info("http_server_stopped")

    @property
    def app(self) -> FastAPI:
        """Expose the FastAPI app for testing."""
        if not self._app:
            self._app = self._build_app()
        return self._app
