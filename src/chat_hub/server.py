"""FastAPI application: chat WebSocket plus the small HTTP surface around it."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import FastAPI, File, UploadFile, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field

from .broadcast import Broadcaster
from .config import HubSettings, load_config
from .liveness import LivenessMonitor
from .registry import ConnectionRegistry
from .session import SessionLifecycle
from .stats import HubStats
from .store import MessageStore
from .uploads import URL_PREFIX, MediaStorage
from .users import UserRegistry

logger = logging.getLogger("chat_hub.server")


# -----------------------------
# Pydantic request/response
# -----------------------------
class RegisterRequest(BaseModel):
    username: Optional[str] = Field(default=None, description="Display name to claim.")


class RegisterResponse(BaseModel):
    success: bool = True


class UploadResponse(BaseModel):
    success: bool = True
    filePath: str


# -----------------------------
# Service wiring
# -----------------------------
@dataclass
class Hub:
    settings: HubSettings
    stats: HubStats
    store: MessageStore
    users: UserRegistry
    media: MediaStorage
    registry: ConnectionRegistry
    broadcaster: Broadcaster
    session: SessionLifecycle
    monitor: LivenessMonitor


def build_hub(
    settings: HubSettings,
    *,
    store: Optional[MessageStore] = None,
    users: Optional[UserRegistry] = None,
) -> Hub:
    """Create every hub component. Storage errors here are fatal to startup."""
    stats = HubStats()
    if store is None:
        store = MessageStore(settings.data_dir)
        store.load()
    users = users or UserRegistry(settings.data_dir, min_chars=settings.min_username_chars)
    media = MediaStorage(settings.uploads_dir)

    registry = ConnectionRegistry()
    broadcaster = Broadcaster(registry, stats=stats, send_timeout_s=settings.send_timeout_s)
    session = SessionLifecycle(registry, broadcaster, store, stats=stats)
    monitor = LivenessMonitor(
        registry,
        broadcaster,
        session.evict,
        interval_s=settings.probe_interval_s,
        stats=stats,
    )
    return Hub(settings, stats, store, users, media, registry, broadcaster, session, monitor)


# -----------------------------
# App factory
# -----------------------------
def create_app(
    config_path: Optional[str] = None,
    store: Optional[MessageStore] = None,
    users: Optional[UserRegistry] = None,
    settings: Optional[HubSettings] = None,
) -> FastAPI:
    if settings is None:
        settings = HubSettings.from_config(load_config(config_path))

    hub = build_hub(settings, store=store, users=users)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        hub.monitor.start()
        logger.info("Chat hub ready; websocket at %s", settings.ws_path)
        try:
            yield
        finally:
            await hub.monitor.stop()
            await hub.session.wait_closed()

    app = FastAPI(title="Chat Hub", version="0.1.0", lifespan=lifespan)
    app.state.hub = hub
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        conns = await hub.registry.snapshot()
        return {
            "ok": True,
            "connections": len(conns),
            "identities": await hub.registry.identities(),
            "messages": len(hub.store),
            "unpersisted": hub.store.lagging,
            "liveness_running": hub.monitor.running,
            "uptime_s": round(hub.stats.uptime_s, 3),
            "counters": hub.stats.snapshot(),
        }

    @app.get("/messages")
    def messages() -> List[Dict[str, Any]]:
        return [m.to_record() for m in hub.store.all()]

    @app.post("/register", status_code=201, response_model=RegisterResponse)
    def register(req: RegisterRequest):
        result = hub.users.register(req.username or "")
        if not result.accepted:
            return JSONResponse(status_code=result.status, content={"message": result.reason})
        return RegisterResponse()

    @app.post("/upload", status_code=201, response_model=UploadResponse)
    def upload(media: Optional[UploadFile] = File(default=None)):
        if media is None or not media.filename:
            return JSONResponse(status_code=400, content={"message": "No file uploaded."})
        path = hub.media.save(media.file, media.filename)
        return UploadResponse(filePath=path)

    @app.websocket(settings.ws_path)
    async def chat_socket(websocket: WebSocket) -> None:
        await websocket.accept()
        conn = await hub.session.connect(websocket)
        try:
            while True:
                msg = await websocket.receive()
                if msg["type"] == "websocket.disconnect":
                    break
                frame = msg.get("text")
                if frame is None:
                    frame = msg.get("bytes") or b""
                await hub.session.handle_frame(conn, frame)
        except WebSocketDisconnect:
            pass
        finally:
            await hub.session.disconnect(conn)

    # Static mounts go last so API routes win.
    app.mount(URL_PREFIX, StaticFiles(directory=str(hub.media.root)), name="uploads")
    if settings.public_dir and Path(settings.public_dir).is_dir():
        app.mount("/", StaticFiles(directory=settings.public_dir, html=True), name="public")
    elif settings.public_dir:
        logger.warning("Static public dir not found: %s", settings.public_dir)

    return app
