"""
starledger.api.main — FastAPI application entry point
======================================================

Run with::

    uvicorn starledger.api.main:app --reload --port 8000

or ``python -m starledger``.
"""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import (
    Depends,
    FastAPI,
    HTTPException,
    Query,
    Request,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import Engine

load_dotenv()

from starledger.api.deps import (  # noqa: E402
    decode_token,
    get_config,
    get_engine,
    get_notifier,
    get_scheduler,
)
from starledger.api.routes.actions import router as actions_router  # noqa: E402
from starledger.api.routes.admin import router as admin_router  # noqa: E402
from starledger.api.routes.ledger import router as ledger_router  # noqa: E402
from starledger.api.routes.pagt import router as pagt_router  # noqa: E402
from starledger.config import load_config  # noqa: E402
from starledger.database.engine import get_session, run_db  # noqa: E402
from starledger.database.models import Member, MemberRole  # noqa: E402
from starledger.errors import NotFoundError, ValidationError  # noqa: E402
from starledger.services.notifier import ConnectionRegistry  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) ``cors_origins`` in config.yaml, when the file exists
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    if Path("config.yaml").exists():
        return load_config().cors_origins

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — bind the live registry and start jobs."""
    engine = get_engine()
    cfg = get_config()
    notifier = get_notifier()
    notifier.bind_loop(asyncio.get_running_loop())

    scheduler = get_scheduler()
    if cfg.scheduler_enabled:
        scheduler.start()
    logger.info("StarLedger API started — engine ready (%s)", engine.url.database)
    yield
    scheduler.shutdown()
    logger.info("StarLedger API shutting down")


app = FastAPI(
    title="StarLedger API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Service error mapping
# ---------------------------------------------------------------------------
@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"ok": False, "error": str(exc)})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"ok": False, "error": str(exc)})


# Mount routers
app.include_router(ledger_router, prefix="/api")
app.include_router(actions_router, prefix="/api")
app.include_router(pagt_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Live notifications
# ---------------------------------------------------------------------------
def _member_role(engine: Engine, member_id: str) -> str:
    with get_session(engine) as session:
        member = session.get(Member, member_id)
        return member.role if member is not None else MemberRole.USER.value


@app.websocket("/ws")
async def live_updates(
    websocket: WebSocket,
    token: str = Query(...),
    engine: Engine = Depends(get_engine),
    registry: ConnectionRegistry = Depends(get_notifier),
):
    """Push award / reward / moderation events to the connected member.

    Admins additionally receive the community-wide activity broadcasts.
    """
    try:
        claims = decode_token(token)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    member_id = str(claims["sub"])
    role = await run_db(_member_role, engine, member_id)

    await websocket.accept()
    registry.register(member_id, role, websocket)
    try:
        await websocket.send_json({"type": "hello", "member_id": member_id, "role": role})
        while True:
            # Clients only keep the socket open; inbound frames are ignored.
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        registry.unregister(member_id, websocket)
