"""FastAPI app: start sessions, poll answers, read audit trails."""

from __future__ import annotations

from fastapi import BackgroundTasks, FastAPI, HTTPException
from pydantic import BaseModel

from devtrail.config import Settings, load_settings
from devtrail.errors import SessionNotFoundError
from devtrail.events import Event
from devtrail.logging import configure_logging, get_logger, log_exception
from devtrail.orchestrator.session import Explorer, build_explorer


class SessionRequest(BaseModel):
    """Session request."""

    query: str
    scope_id: str


class SessionCreated(BaseModel):
    session_id: str


class AnswerResponse(BaseModel):
    session_id: str
    state: str
    finalized: bool
    answer: str
    error: str | None = None


def create_app(settings: Settings | None = None, explorer: Explorer | None = None) -> FastAPI:
    """Create FastAPI app."""

    settings = settings or load_settings()
    configure_logging(settings.log_level)
    logger = get_logger(__name__)
    explorer = explorer or build_explorer(settings)

    app = FastAPI(title="devtrail", version="0.1.0")

    async def run_session(session_id: str) -> None:
        try:
            await explorer.run_to_convergence(session_id)
            await explorer.finalize(session_id)
        except Exception:
            log_exception(logger, "Session failed", session_id=session_id)

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/sessions", status_code=202)
    async def create_session(req: SessionRequest, background: BackgroundTasks) -> SessionCreated:
        session_id = await explorer.start_session(req.query, req.scope_id)
        logger.info("API session requested", extra={"session_id": session_id, "query_len": len(req.query)})
        background.add_task(run_session, session_id)
        return SessionCreated(session_id=session_id)

    @app.get("/sessions/{session_id}/answer")
    def session_answer(session_id: str) -> AnswerResponse:
        try:
            s = explorer.session(session_id)
        except SessionNotFoundError:
            raise HTTPException(status_code=404, detail="session not found") from None
        return AnswerResponse(
            session_id=session_id,
            state=s.state.value,
            finalized=s.synthesizer.is_finalized,
            answer=s.synthesizer.current_answer(),
            error=s.error,
        )

    @app.get("/sessions/{session_id}/events")
    async def session_events(session_id: str) -> list[Event]:
        try:
            return await explorer.get_audit_trail(session_id)
        except SessionNotFoundError:
            raise HTTPException(status_code=404, detail="session not found") from None

    return app
