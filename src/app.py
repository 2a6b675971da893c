"""Custody FastAPI application.

Single-domain web server that processes commands synchronously via HTTP.
Every request runs inside the custody domain context.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV controls which config overlay is applied:
#   - "test"       → event_processing = "sync"  (quorum + projector fire in UoW)
#   - "production" → event_processing = "async" (they fire via Engine)
from custody.domain import custody  # noqa: E402
from custody.utils.logging import add_context, clear_context, configure_logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

configure_logging()
custody.init()

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Custody API",
    description="Shipment custody tracking: QR scans, container quorum and on-chain anchoring",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the custody domain context and bind the acting wallet onto log lines."""
    add_context(
        path=request.url.path,
        actor_wallet=request.headers.get("x-actor-wallet"),
        actor_role=request.headers.get("x-actor-role"),
    )
    try:
        with custody.domain_context():
            return await call_next(request)
    finally:
        clear_context()


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from custody.api import (  # noqa: E402
    anchor_router,
    container_router,
    note_router,
    register_custody_exception_handlers,
    scan_router,
    shipment_router,
)

app.include_router(shipment_router)
app.include_router(container_router)
app.include_router(note_router)
app.include_router(scan_router)
app.include_router(anchor_router)

register_exception_handlers(app)
register_custody_exception_handlers(app)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(content={"status": "ok", "domains": {"custody": {"name": custody.name}}})
