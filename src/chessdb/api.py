from __future__ import annotations

import json
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import cast

import anyio.from_thread
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from chessdb import __version__
from chessdb.analysis_requests import (
    AnalysisLimits,
    cancel_analysis_request,
    create_analysis_request,
    get_analysis_request,
    iter_analysis_status,
    store_engine_line,
)
from chessdb.config import DEFAULT_ANALYSIS_ENGINE, Settings, get_settings
from chessdb.errors import (
    AnalysisRequestNotFoundError,
    BlobNotFoundError,
    ChessDbError,
    EngineUnavailableError,
    EnqueueError,
    InvalidFenError,
    JobNotFoundError,
    JobOwnershipError,
    TooManyInFlightRequestsError,
    ValidationError,
)
from chessdb.job_creation import (
    create_export_job,
    create_import_job,
    enqueue_opening_backfill,
    enqueue_position_backfill,
    get_export_job,
    get_import_job,
)
from chessdb.services import Services, build_services
from chessdb.utils.logger import get_logger

logger = get_logger(__name__)

_ERROR_STATUS: tuple[tuple[type[Exception], int], ...] = (
    (TooManyInFlightRequestsError, status.HTTP_429_TOO_MANY_REQUESTS),
    (AnalysisRequestNotFoundError, status.HTTP_404_NOT_FOUND),
    (JobNotFoundError, status.HTTP_404_NOT_FOUND),
    (JobOwnershipError, status.HTTP_404_NOT_FOUND),
    (BlobNotFoundError, status.HTTP_404_NOT_FOUND),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (InvalidFenError, status.HTTP_400_BAD_REQUEST),
    (EnqueueError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (EngineUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def _format_sse(event: str, payload: dict[str, object]) -> bytes:
    """Return an SSE-formatted payload as bytes."""
    return f"event: {event}\ndata: {json.dumps(jsonable_encoder(payload))}\n\n".encode()


def _extract_api_token(request: Request) -> str | None:
    auth_header = request.headers.get("authorization")
    if auth_header and auth_header.lower().startswith("bearer "):
        return auth_header.split(" ", 1)[1].strip()
    api_key = request.headers.get("x-api-key")
    if api_key:
        return api_key.strip()
    return None


def _settings_for(request: Request) -> Settings:
    services = getattr(request.app.state, "services", None)
    return services.settings if services is not None else get_settings()


def require_api_token(request: Request) -> None:
    """Raise HTTP 401 when the request token is missing or invalid."""
    if request.url.path == "/api/health":
        return
    supplied = _extract_api_token(request)
    if not supplied or supplied != _settings_for(request).api_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Not ready")
    return cast(Services, services)


def current_user_id(user_id: int = Header(..., alias="X-User-Id", gt=0)) -> int:
    return user_id


class AnalysisCreateRequest(BaseModel):
    fen: str
    engine: str = DEFAULT_ANALYSIS_ENGINE
    depth: int | None = Field(default=None, ge=1, le=99)
    nodes: int | None = Field(default=None, ge=1)
    time_ms: int | None = Field(default=None, ge=1)


class EngineLineStoreRequest(BaseModel):
    fen: str
    depth: int = Field(ge=1, le=99)
    best_move: str | None = None
    principal_variation: list[str] | None = None
    eval_cp: int | None = None
    eval_mate: int | None = None
    nodes: int | None = Field(default=None, ge=0)
    engine: str = DEFAULT_ANALYSIS_ENGINE


class ExportCreateRequest(BaseModel):
    game_ids: list[int] | None = None
    filter: dict[str, object] | None = None
    include_annotations: bool = False


async def _handle_domain_error(_: Request, exc: Exception) -> JSONResponse:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return JSONResponse(status_code=status_code, content={"detail": str(exc)})
    logger.exception("Unhandled chessdb error", exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal error"})


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build and start the shared services unless they were injected."""
    owned = getattr(app.state, "services", None) is None
    if owned:
        app.state.services = build_services(get_settings())
    app.state.services.start()
    try:
        yield
    finally:
        if owned:
            app.state.services.close()
            app.state.services = None


def create_app(services: Services | None = None) -> FastAPI:
    app = FastAPI(
        title="chessdb",
        version=__version__,
        dependencies=[Depends(require_api_token)],
        lifespan=lifespan,
    )
    app.state.services = services
    app.add_exception_handler(ChessDbError, _handle_domain_error)
    _register_routes(app)
    return app


def _register_routes(app: FastAPI) -> None:
    @app.get("/api/health")
    def health() -> dict[str, str]:
        return {
            "status": "ok",
            "service": "chessdb",
            "version": __version__,
            "timestamp": datetime.now(UTC).isoformat(),
        }

    @app.post("/api/analysis")
    def create_analysis(
        body: AnalysisCreateRequest,
        user_id: int = Depends(current_user_id),
        services: Services = Depends(get_services),
    ) -> dict[str, object]:
        depth = body.depth
        if depth is None and body.nodes is None and body.time_ms is None:
            depth = services.settings.analysis.default_depth
        return create_analysis_request(
            services.conn,
            services.queue,
            user_id=user_id,
            fen=body.fen,
            limits=AnalysisLimits(depth=depth, nodes=body.nodes, time_ms=body.time_ms),
            engine=body.engine,
        )

    @app.post("/api/analysis/store", status_code=status.HTTP_201_CREATED)
    def store_analysis_line(
        body: EngineLineStoreRequest,
        user_id: int = Depends(current_user_id),
        services: Services = Depends(get_services),
    ) -> dict[str, object]:
        line_id = store_engine_line(
            services.conn,
            user_id=user_id,
            fen=body.fen,
            depth=body.depth,
            best_move=body.best_move,
            principal_variation=body.principal_variation,
            eval_cp=body.eval_cp,
            eval_mate=body.eval_mate,
            nodes=body.nodes,
            engine=body.engine,
        )
        return {"id": line_id}

    @app.get("/api/analysis/{request_id}")
    def analysis_status(
        request_id: int,
        user_id: int = Depends(current_user_id),
        services: Services = Depends(get_services),
    ) -> dict[str, object]:
        return get_analysis_request(services.conn, user_id=user_id, request_id=request_id)

    @app.post("/api/analysis/{request_id}/cancel")
    def cancel_analysis(
        request_id: int,
        user_id: int = Depends(current_user_id),
        services: Services = Depends(get_services),
    ) -> dict[str, object]:
        return cancel_analysis_request(services.conn, user_id=user_id, request_id=request_id)

    @app.get("/api/analysis/{request_id}/stream")
    def stream_analysis(
        request_id: int,
        request: Request,
        user_id: int = Depends(current_user_id),
        services: Services = Depends(get_services),
    ) -> StreamingResponse:
        get_analysis_request(services.conn, user_id=user_id, request_id=request_id)
        interval_s = services.settings.analysis.stream_interval_ms / 1000

        def fetch_status() -> dict[str, object]:
            return get_analysis_request(services.conn, user_id=user_id, request_id=request_id)

        def client_left() -> bool:
            # the body is iterated on a worker thread; ask the event loop
            return anyio.from_thread.run(request.is_disconnected)

        def event_stream() -> Iterator[bytes]:
            yield b"retry: 1000\n\n"
            for row in iter_analysis_status(fetch_status, interval_s=interval_s, should_stop=client_left):
                yield _format_sse("status", row)

        return StreamingResponse(event_stream(), media_type="text/event-stream")

    @app.post("/api/imports", status_code=status.HTTP_202_ACCEPTED)
    async def create_import(
        request: Request,
        compressed: bool = Query(False),
        strict_duplicate_mode: bool = Query(False),
        max_games: int | None = Query(None, ge=1),
        user_id: int = Depends(current_user_id),
        services: Services = Depends(get_services),
    ) -> dict[str, object]:
        body = await request.body()
        if not body:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty upload")
        return await run_in_threadpool(
            create_import_job,
            services.conn,
            services.storage,
            services.queue,
            user_id=user_id,
            body=body,
            compressed=compressed,
            strict_duplicate_mode=strict_duplicate_mode,
            max_games=max_games,
        )

    @app.get("/api/imports/{import_job_id}")
    def import_status(
        import_job_id: int,
        user_id: int = Depends(current_user_id),
        services: Services = Depends(get_services),
    ) -> dict[str, object]:
        return get_import_job(services.conn, user_id=user_id, import_job_id=import_job_id)

    @app.post("/api/exports", status_code=status.HTTP_202_ACCEPTED)
    def create_export(
        body: ExportCreateRequest,
        user_id: int = Depends(current_user_id),
        services: Services = Depends(get_services),
    ) -> dict[str, object]:
        return create_export_job(
            services.conn,
            services.queue,
            user_id=user_id,
            game_ids=body.game_ids,
            filter_query=body.filter,
            include_annotations=body.include_annotations,
        )

    @app.get("/api/exports/{export_job_id}")
    def export_status(
        export_job_id: int,
        user_id: int = Depends(current_user_id),
        services: Services = Depends(get_services),
    ) -> dict[str, object]:
        return get_export_job(services.conn, user_id=user_id, export_job_id=export_job_id)

    @app.post("/api/backfills/positions", status_code=status.HTTP_202_ACCEPTED)
    def backfill_positions(
        user_id: int = Depends(current_user_id),
        services: Services = Depends(get_services),
    ) -> dict[str, object]:
        return enqueue_position_backfill(services.queue, user_id=user_id)

    @app.post("/api/backfills/openings", status_code=status.HTTP_202_ACCEPTED)
    def backfill_openings(
        user_id: int = Depends(current_user_id),
        services: Services = Depends(get_services),
    ) -> dict[str, object]:
        return enqueue_opening_backfill(services.queue, user_id=user_id)


app = create_app()
