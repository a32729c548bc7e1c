"""
FastAPI app: live sales-call coaching over WebSocket, uploaded-call analysis over HTTP.

WebSocket /ws/session: client sends binary PCM 16-bit mono 16kHz while recording, and text
JSON control messages {"action": "stop" | "analyze" | "reset", "review": bool}.
Server sends JSON:
  { "type": "session", "session_id": "..." }
  { "type": "state", "state": "recording", "previous": "idle" }
  { "type": "transcript", "transcript": "...", "segments": [...], "current_speaker": "Speaker A" }
  { "type": "feedback", "feedback": ["newest", ...] }
  { "type": "progress", "progress": 0-100 }
  { "type": "error", "kind": "...", "message": "..." }
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import uuid
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, File, HTTPException, Request, UploadFile, WebSocket, WebSocketDisconnect

from callcoach.annotation.client import AnnotationClient
from callcoach.asr.base import ASREngine
from callcoach.asr.cloudflare import CloudflareWhisperEngine
from callcoach.asr.local_whisper import LocalWhisperEngine, load_whisper_model
from callcoach.config import get_settings
from callcoach.errors import CallCoachError, ErrorKind
from callcoach.logging_config import configure_logging
from callcoach.persistence.store import AnalysisStore, create_analysis_store
from callcoach.schemas.analysis import AnalysisSummary, StoredAnalysis
from callcoach.schemas.session import SessionSnapshot, UploadResponse
from callcoach.session.controller import ConversationSession
from callcoach.session.manager import SessionManager
from callcoach.session.state import SessionState

logger = logging.getLogger(__name__)

_UPLOAD_READ_BYTES = 1024 * 1024

_ERROR_STATUS: dict[ErrorKind, int] = {
    ErrorKind.ACQUISITION: 422,
    ErrorKind.TRANSCRIPTION: 502,
    ErrorKind.PERSISTENCE: 500,
    ErrorKind.INVALID_TRANSITION: 409,
}


def _http_error(error: CallCoachError) -> HTTPException:
    return HTTPException(status_code=_ERROR_STATUS.get(error.kind, 500), detail=error.to_dict())


def default_engine_factory() -> Callable[[], ASREngine]:
    """ASR engine per session based on config. Local Whisper model is loaded once and shared."""
    settings = get_settings()
    if settings.ASR_BACKEND == "cloudflare":
        return CloudflareWhisperEngine
    model = load_whisper_model()
    return lambda: LocalWhisperEngine(model=model)


def create_app(
    engine_factory: Optional[Callable[[], ASREngine]] = None,
    client: Optional[AnnotationClient] = None,
    store: Optional[AnalysisStore] = None,
) -> FastAPI:
    """Build the app; collaborators left as None are created from settings at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()
        settings = get_settings()
        factory = engine_factory or default_engine_factory()
        annotation_client = client or AnnotationClient()
        if not annotation_client.configured:
            logger.warning("Cloudflare credentials missing: annotations and coaching analysis are disabled")
        app.state.sessions = SessionManager(factory, annotation_client, store or create_analysis_store())
        logger.info("callcoach ready (ASR backend: %s)", settings.ASR_BACKEND)
        yield
        await app.state.sessions.shutdown()

    app = FastAPI(
        title="Sales Call Coach",
        description="Real-time conversation transcription, annotation and coaching analysis",
        lifespan=lifespan,
    )
    _register_routes(app)
    return app


def _sessions(request: Request) -> SessionManager:
    return request.app.state.sessions


def _current_session(request: Request) -> ConversationSession:
    session = _sessions(request).current
    if session is None:
        raise HTTPException(status_code=404, detail="No active session")
    return session


def _allowed_upload(file: UploadFile) -> bool:
    allowed = [t.strip().lower() for t in get_settings().UPLOAD_ALLOWED_TYPES.split(",") if t.strip()]
    content_type = (file.content_type or "").lower()
    ext = os.path.splitext(file.filename or "")[1].lstrip(".").lower()
    subtype = content_type.split("/")[-1]
    return subtype in allowed or ext in allowed


async def _save_upload(file: UploadFile) -> str:
    """Stream the upload to RECORD_DIR/uploads; 413 past UPLOAD_MAX_BYTES."""
    settings = get_settings()
    upload_dir = os.path.join(settings.RECORD_DIR, "uploads")
    os.makedirs(upload_dir, exist_ok=True)
    name = os.path.basename(file.filename or "upload")
    path = os.path.join(upload_dir, f"{uuid.uuid4().hex[:8]}_{name}")
    size = 0
    with open(path, "wb") as out:
        while True:
            chunk = await file.read(_UPLOAD_READ_BYTES)
            if not chunk:
                break
            size += len(chunk)
            if size > settings.UPLOAD_MAX_BYTES:
                out.close()
                os.remove(path)
                raise HTTPException(
                    status_code=413,
                    detail=f"File too large (max {settings.UPLOAD_MAX_BYTES // (1024 * 1024)} MB)",
                )
            out.write(chunk)
    if size == 0:
        os.remove(path)
        raise HTTPException(status_code=400, detail="Empty file")
    return path


async def _pump(websocket: WebSocket, outbox: asyncio.Queue) -> None:
    """Forward session messages to the client until the socket goes away."""
    while True:
        message = await outbox.get()
        try:
            await websocket.send_text(json.dumps(message))
        except (WebSocketDisconnect, RuntimeError):
            return


async def _handle_control(session: ConversationSession, text: str) -> None:
    try:
        command = json.loads(text)
    except json.JSONDecodeError:
        logger.debug("Ignoring non-JSON control message")
        return
    if not isinstance(command, dict):
        return
    action = command.get("action")
    if action == "stop":
        await session.stop(review=bool(command.get("review", False)))
    elif action == "analyze":
        await session.analyze()
    elif action == "reset":
        await session.reset()


def _register_routes(app: FastAPI) -> None:
    @app.websocket("/ws/session")
    async def websocket_session(websocket: WebSocket) -> None:
        await websocket.accept()
        manager: SessionManager = websocket.app.state.sessions
        outbox: asyncio.Queue = asyncio.Queue()

        def listener(kind: str, payload: dict) -> None:
            outbox.put_nowait({"type": kind, **payload})

        session = await manager.new_session()
        session.add_listener(listener)
        pump = asyncio.create_task(_pump(websocket, outbox))
        outbox.put_nowait({"type": "session", "session_id": session.session_id})
        try:
            await session.start()
            while True:
                msg = await websocket.receive()
                if msg.get("type") == "websocket.disconnect":
                    break
                if msg.get("bytes") is not None:
                    session.feed(msg["bytes"])
                elif msg.get("text"):
                    try:
                        await _handle_control(session, msg["text"])
                    except CallCoachError as e:
                        outbox.put_nowait({"type": "error", **e.to_dict()})
        except CallCoachError as e:
            # start failed; the session already emitted the error
            logger.warning("Live session could not start: %s", e.message)
        except WebSocketDisconnect:
            pass
        finally:
            # disconnect while recording ends the recording and still produces the analysis
            if session.state is SessionState.RECORDING:
                await session.stop()
            while not outbox.empty() and not pump.done():
                await asyncio.sleep(0)
            pump.cancel()
            await asyncio.gather(pump, return_exceptions=True)
            session.remove_listener(listener)

    @app.post("/api/sessions/upload", response_model=UploadResponse)
    async def upload_session(request: Request, file: UploadFile = File(...)) -> UploadResponse:
        """Analyze an uploaded call recording end to end (file replay)."""
        if not _allowed_upload(file):
            raise HTTPException(
                status_code=415,
                detail="Unsupported file type; upload an MP3, WAV, M4A, MP4, OGG or WEBM file",
            )
        path = await _save_upload(file)
        try:
            session, stored = await _sessions(request).process_upload(path, file.filename)
        except CallCoachError as e:
            raise _http_error(e) from e
        finally:
            if os.path.exists(path):
                os.remove(path)
        if stored is None:
            raise HTTPException(status_code=409, detail="Session was reset before the analysis finished")
        return UploadResponse(
            session_id=session.session_id,
            state=session.state.value,
            analysis=AnalysisSummary.from_stored(stored),
        )

    @app.get("/api/sessions/current", response_model=SessionSnapshot)
    async def current_session(request: Request) -> SessionSnapshot:
        return _current_session(request).snapshot()

    @app.post("/api/sessions/current/stop", response_model=SessionSnapshot)
    async def stop_current(request: Request, review: bool = False) -> SessionSnapshot:
        session = _current_session(request)
        try:
            await session.stop(review=review)
        except CallCoachError as e:
            raise _http_error(e) from e
        return session.snapshot()

    @app.post("/api/sessions/current/analyze", response_model=SessionSnapshot)
    async def analyze_current(request: Request) -> SessionSnapshot:
        """Continue after the review step (TRANSCRIBING -> ANALYZING)."""
        session = _current_session(request)
        try:
            await session.analyze()
        except CallCoachError as e:
            raise _http_error(e) from e
        return session.snapshot()

    @app.post("/api/sessions/current/reset", response_model=SessionSnapshot)
    async def reset_current(request: Request) -> SessionSnapshot:
        session = _current_session(request)
        await session.reset()
        return session.snapshot()

    @app.get("/api/analyses", response_model=list[AnalysisSummary])
    async def list_analyses(request: Request, user_id: Optional[str] = None) -> list[AnalysisSummary]:
        stored = _sessions(request).store.list_analyses(user_id)
        return [AnalysisSummary.from_stored(s) for s in stored]

    @app.get("/api/analyses/{analysis_id}", response_model=StoredAnalysis)
    async def get_analysis(request: Request, analysis_id: str) -> StoredAnalysis:
        stored = _sessions(request).store.get(analysis_id)
        if stored is None:
            raise HTTPException(status_code=404, detail="Analysis not found")
        return stored

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok", "asr_backend": get_settings().ASR_BACKEND}


app = create_app()
