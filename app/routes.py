"""FastAPI route definitions for the pastebin REST API.

This module provides all HTTP endpoints with dependency injection, error
mapping and response serialization around the PasteService.

API Endpoint Overview
=====================
::
    GET    /health
        └─ HealthResponse (200)

    POST   /save
        ├─ SaveRequest (request body)
        └─ SaveResponse (201) or 422/500

    GET    /:hash
        └─ TextResponse (200) or 404/500

    DELETE /:hash                (Basic-Auth)
        └─ 204 or 401/500

    GET    /docs, /openapi.json  (Basic-Auth, only when SWAGGER_ENABLED)

Error Mapping
=============
::
    ErrorKind.NOT_FOUND ─────────────┐
    ErrorKind.EXPIRED ───────────────┴─▶ 404 "Text not found"
    ErrorKind.ALLOCATION_UNAVAILABLE ┐
    ErrorKind.STORE_UNAVAILABLE ─────┼─▶ 500 (details logged, never returned)
    ErrorKind.PARTIAL_DELETE_FAILURE ┘

Key Behaviours
===============
- Save without ttl uses DEFAULT_TTL (in PASTE_TTL_UNIT_SECONDS units).
- Successful reads carry ``Cache-Control: private, max-age=60``.
- The catch-all ``/{hash}`` routes are registered last.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Path, Request, Response
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.responses import HTMLResponse, JSONResponse

from app.dependencies import RequestContext, ServiceContainer, get_container, get_paste_service, get_request_context
from app.enums import HealthStatus
from app.errors import PasteError
from app.paste_service import PasteService
from app.schemas import HealthResponse, SaveRequest, SaveResponse, TextResponse
from app.security import require_admin, require_docs_access

__all__ = ["router", "docs_router"]

router = APIRouter()
docs_router = APIRouter(include_in_schema=False)

HashParam = Annotated[str, Path(min_length=1, max_length=64, description="Unique paste hash")]


async def _probe(check) -> HealthStatus:
    try:
        await check()
    except Exception:
        return HealthStatus.UNHEALTHY
    return HealthStatus.HEALTHY


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(
    ctx: RequestContext = Depends(get_request_context),
    container: ServiceContainer = Depends(get_container),
) -> HealthResponse:
    db_status = await _probe(container.metadata.ping)
    cache_status = await _probe(container.cache.ping)
    blob_status = await _probe(container.blobs.ping)

    healthy = all(s is HealthStatus.HEALTHY for s in (db_status, cache_status, blob_status))
    status = HealthStatus.HEALTHY if healthy else HealthStatus.UNHEALTHY
    if not healthy:
        ctx.logger.warning(
            f"Health check degraded: database={db_status} cache={cache_status} blob_storage={blob_status}"
        )

    return HealthResponse(
        status=status,
        database=db_status,
        cache=cache_status,
        blob_storage=blob_status,
        sweeper=container.sweeper.state if container.sweeper else None,
    )


@router.post("/save", response_model=SaveResponse, status_code=201, tags=["texts"])
async def save_text(
    payload: SaveRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: PasteService = Depends(get_paste_service),
) -> SaveResponse:
    ttl = ctx.container.ttl(payload.ttl)
    try:
        hash_ = await service.save(payload.text, ttl)
    except PasteError as exc:
        ctx.logger.error(
            f"failed to save text: {exc}",
            extra={"operation": "save", "error": exc.kind.value, "duration_ms": ctx.get_duration()},
        )
        raise HTTPException(status_code=500, detail="Internal error") from exc

    ctx.logger.info(f"Text added: {hash_}", extra={"operation": "save", "duration_ms": ctx.get_duration()})
    return SaveResponse(hash=hash_)


@docs_router.get("/openapi.json", dependencies=[Depends(require_docs_access)])
async def openapi_schema(request: Request) -> JSONResponse:
    return JSONResponse(request.app.openapi())


@docs_router.get("/docs", dependencies=[Depends(require_docs_access)])
async def swagger_ui() -> HTMLResponse:
    return get_swagger_ui_html(openapi_url="/openapi.json", title="pastebin - Swagger UI")


@router.get("/{hash}", response_model=TextResponse, tags=["texts"])
async def get_text(
    response: Response,
    hash: HashParam,
    ctx: RequestContext = Depends(get_request_context),
    service: PasteService = Depends(get_paste_service),
) -> TextResponse:
    try:
        text = await service.get(hash)
    except PasteError as exc:
        if exc.is_missing:
            ctx.logger.info(f"Text not found: {hash} ({exc.kind.value})")
            raise HTTPException(status_code=404, detail="Text not found") from exc
        ctx.logger.error(f"failed to get text {hash}: {exc}", extra={"operation": "get", "error": exc.kind.value})
        raise HTTPException(status_code=500, detail="Failed to get text") from exc

    response.headers["Cache-Control"] = "private, max-age=60"
    ctx.logger.info(f"Text got successfully: {hash}", extra={"operation": "get", "duration_ms": ctx.get_duration()})
    return TextResponse(text=text)


@router.delete("/{hash}", status_code=204, tags=["texts"], dependencies=[Depends(require_admin)])
async def delete_text(
    hash: HashParam,
    ctx: RequestContext = Depends(get_request_context),
    service: PasteService = Depends(get_paste_service),
) -> Response:
    try:
        await service.delete(hash)
    except PasteError as exc:
        ctx.logger.error(f"failed to delete text {hash}: {exc}", extra={"operation": "delete", "error": exc.kind.value})
        raise HTTPException(status_code=500, detail="Failed to delete text") from exc

    ctx.logger.info(f"Text deleted: {hash}", extra={"operation": "delete"})
    return Response(status_code=204)
