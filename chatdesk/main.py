# chatdesk/main.py
"""
FastAPI application: widget API, agent dashboard API and realtime rooms.
"""
import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from chatdesk import __version__
from chatdesk.api.deps import agent_from_payload
from chatdesk.api.v1.router import api_router
from chatdesk.core import config
from chatdesk.core.exceptions import ChatdeskError
from chatdesk.core.jwt_auth import JWTAuth, WidgetSessionToken
from chatdesk.core.logging_config import setup_logging
from chatdesk.db.session import get_db_session, init_db, test_db_connection
from chatdesk.ws.manager import ws_manager, tenant_room, visitor_room, agent_room

setup_logging(level=config.LOG_LEVEL, log_to_files=config.LOG_TO_FILES)
log = logging.getLogger("chatdesk")

log.info("=" * 80)
log.info("🚀 chatdesk starting")
log.info("=" * 80)

# Initialize database
try:
    init_db()
    if test_db_connection():
        log.info("✅ Database initialized")
except Exception as e:
    log.error(f"❌ Database error: {e}")

# FastAPI app
app = FastAPI(
    title="chatdesk - Live Chat API",
    description="Visitor sessions, AI replies and AI-to-agent hand-off for the chat widget",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc"
)

# ────────────────────────────────────────────
# CORS Configuration
# ────────────────────────────────────────────
# The widget is embedded on customer sites, so origins are open by default
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials="*" not in config.CORS_ORIGINS,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["Authorization", "Content-Type", "X-Widget-Token"],
    max_age=86400,
)


# ────────────────────────────────────────────
# Error handlers
# ────────────────────────────────────────────
@app.exception_handler(ChatdeskError)
async def chatdesk_error_handler(request: Request, exc: ChatdeskError):
    if exc.status_code >= 500:
        log.error(f"❌ {request.method} {request.url.path}: {exc.message}")
    else:
        log.debug(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "success": False,
            "message": "Invalid request",
            "errors": jsonable_encoder(exc.errors()),
        },
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    log.exception(f"❌ Database error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "message": "Internal server error"},
    )


# Include API routes
app.include_router(api_router, prefix="/api")


# ────────────────────────────────────────────
# WebSocket rooms
# ────────────────────────────────────────────
def _agent_for_token(token: Optional[str]):
    if not token:
        return None
    try:
        payload = JWTAuth.decode_token(token)
        with get_db_session() as db:
            agent = agent_from_payload(db, payload)
            return {"id": agent.id, "tenant_id": agent.tenant_id}
    except HTTPException as e:
        log.warning(f"⚠️ WS agent auth failed: {e.detail}")
        return None


async def _serve_room(room: str, websocket: WebSocket):
    await ws_manager.connect(room, websocket)
    try:
        while True:
            text = await websocket.receive_text()
            if text == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        pass
    finally:
        ws_manager.disconnect(room, websocket)


@app.websocket("/ws/tenant/{tenant_id}")
async def tenant_ws(websocket: WebSocket, tenant_id: str, token: Optional[str] = None):
    """Agent dashboard feed for a whole tenant"""
    agent = _agent_for_token(token)
    if not agent or agent["tenant_id"] != tenant_id:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await _serve_room(tenant_room(tenant_id), websocket)


@app.websocket("/ws/agent/{agent_id}")
async def agent_ws(websocket: WebSocket, agent_id: int, token: Optional[str] = None):
    """Personal alerts for one agent (assignments, chat endings)"""
    agent = _agent_for_token(token)
    if not agent or agent["id"] != agent_id:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await _serve_room(agent_room(agent_id), websocket)


@app.websocket("/ws/visitor/{visitor_id}")
async def visitor_ws(websocket: WebSocket, visitor_id: str, token: Optional[str] = None):
    """Events for one widget instance"""
    if token:
        try:
            claims = WidgetSessionToken.decode(token)
        except HTTPException as e:
            log.warning(f"⚠️ WS widget auth failed: {e.detail}")
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return
        if claims.get("visitor_id") != visitor_id:
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return
    elif config.WIDGET_TOKEN_REQUIRED:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await _serve_room(visitor_room(visitor_id), websocket)


# ────────────────────────────────────────────
# Public routes
# ────────────────────────────────────────────
@app.get("/healthz", tags=["System"])
def health():
    """Health check endpoint"""
    db_ok = test_db_connection()

    return {
        "status": "ok" if db_ok else "degraded",
        "database_ok": db_ok,
        "jwt_enabled": bool(config.JWT_SECRET_KEY),
        "widget_token_required": config.WIDGET_TOKEN_REQUIRED,
        "ai_configured": bool(config.OPENAI_API_KEY),
        "websocket_connections": ws_manager.connection_count(),
    }
