"""Courier FastAPI application.

Accepts notifications over HTTP and serves their status, history and audit
trail. Each request is wrapped in the courier domain context.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload

Delivery workers, the dead-letter consumer and the sweeper run in a
separate process (``python src/server.py``) sharing the same broker and
database. With the in-memory transport, start them in-process by setting
COURIER_EMBEDDED_WORKERS=1.
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV controls which config overlay is applied.
import os

from courier.domain import courier  # noqa: E402
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from server import embedded_lifespan  # noqa: E402

courier.init()


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Courier API",
    description="Multi-channel notification delivery with retries and dead-lettering",
    lifespan=embedded_lifespan,
)

# Comma-separated list; unset means any origin
_cors_origins = [o.strip() for o in os.getenv("COURIER_CORS_ORIGINS", "*").split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials="*" not in _cors_origins,
    allow_methods=["GET", "POST", "PUT"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the courier domain context for each request."""
    if request.url.path.startswith("/notifications"):
        with courier.domain_context():
            response = await call_next(request)
        return response
    # Health check, docs, etc.
    return await call_next(request)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from courier.api import register_error_handlers, router  # noqa: E402

app.include_router(router)
register_error_handlers(app)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(
        content={
            "status": "ok",
            "domains": {
                "courier": {"name": courier.name},
            },
        }
    )
