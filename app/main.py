"""FastAPI application entry point for the pastebin service.

Application Lifecycle Diagram
=============================
::
    ┌──────────────┐
    │   uvicorn    │
    │   startup    │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ lifespan()   │
    │ startup:     │
    │ container    │──▶ database, minio bucket, redis, kafka consumer,
    │ .initialize()│    paste service, expiry sweeper task
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ Serve HTTP   │
    │ requests     │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ lifespan()   │
    │ shutdown:    │──▶ stop event, sweeper join, kafka stop,
    │ .cleanup()   │    redis close, engine dispose
    └──────────────┘

How to Use
==========
**Step 1 — Run with uvicorn**::
    uvicorn app.main:app --host 0.0.0.0 --port 8000

**Step 2 — Make API calls**::
    curl -X POST http://localhost:8000/save \
         -H "Content-Type: application/json" \
         -d '{"text": "hello", "ttl": 1}'

    curl http://localhost:8000/<hash>

Key Behaviours
===============
- The built-in /docs, /redoc and /openapi.json are disabled; Basic-Auth
  protected replacements are served only when SWAGGER_ENABLED is set.
- Prometheus metrics are exposed at /metrics.
- The catch-all ``/{hash}`` router is included last.
"""

__all__ = ["app"]

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from app.config import get_settings
from app.dependencies import ServiceContainer
from app.routes import docs_router, router

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    container = ServiceContainer(settings)
    await container.initialize()
    app.state.container = container
    yield
    # Shutdown
    await container.cleanup()


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Text paste storage with expiring links",
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=False,
    should_respect_env_var=False,
).instrument(app).expose(app, include_in_schema=False)

app.include_router(docs_router)
app.include_router(router)
