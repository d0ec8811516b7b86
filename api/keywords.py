"""
Keyword Research API

Endpoints:
- POST   /api/keywords/research            run research, return result + session id
- POST   /api/keywords/research/stream     same, as server-sent progress events
- GET    /api/keywords/sessions            list the caller's sessions
- GET    /api/keywords/sessions/{id}       load a session (cache, then reconstruction)
- PATCH  /api/keywords/sessions/{id}       rename
- DELETE /api/keywords/sessions/{id}       delete
- POST   /api/keywords/sessions/decision   reload-or-research recommendation

The caller is identified by the X-User-Id header.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from src.research import (
    ProgressEvent,
    ProgressStream,
    ResearchOptions,
    ResearchPhase,
    ResearchSessionManager,
    SessionNotFoundError,
    handle_error,
    validate_asins,
    validate_research_options,
    validate_session_name,
    validate_user_id,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/keywords", tags=["Keyword Research"])


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class ResearchRequest(BaseModel):
    """Research 1-10 products; the first ASIN is the user's own product."""
    asins: List[str] = Field(..., description="1-10 ASINs, user's product first")
    options: Optional[Dict[str, Any]] = Field(
        default=None,
        description="ResearchOptions overrides (camelCase or snake_case)",
    )
    session_name: Optional[str] = Field(default=None, alias="sessionName")

    class Config:
        populate_by_name = True


class DecisionRequest(BaseModel):
    asins: List[str]


class RenameRequest(BaseModel):
    name: str


class ResearchResponse(BaseModel):
    success: bool = True
    session_id: str
    data: Dict[str, Any]


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()


def get_session_manager(request: Request) -> ResearchSessionManager:
    manager = getattr(request.app.state, "session_manager", None)
    if manager is None:
        raise HTTPException(status_code=503, detail="Keyword research service is not configured")
    return manager


def _validated_request(user_id: str, body: ResearchRequest):
    user_id = validate_user_id(user_id)
    asins = validate_asins(body.asins)
    name = validate_session_name(body.session_name)
    options = ResearchOptions.from_dict(validate_research_options(body.options))
    return user_id, asins, name, options


def _sse(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, default=str)}\n\n"


# =============================================================================
# RESEARCH
# =============================================================================

@router.post("/research", response_model=ResearchResponse)
async def run_research(
    body: ResearchRequest,
    user_id: str = Depends(get_user_id),
    manager: ResearchSessionManager = Depends(get_session_manager),
):
    """Run a full research session and return the result."""
    user_id, asins, name, options = _validated_request(user_id, body)
    session_id, result = await manager.perform_fresh_research(user_id, asins, options, name)
    return ResearchResponse(session_id=session_id, data=result.to_dict())


@router.post("/research/stream")
async def stream_research(
    body: ResearchRequest,
    user_id: str = Depends(get_user_id),
    manager: ResearchSessionManager = Depends(get_session_manager),
):
    """
    Run research and stream progress as server-sent events.

    Each event is `data: <json>`; the last one has phase `complete` (with
    `session_id` and `result`) or `error`.
    """
    user_id, asins, name, options = _validated_request(user_id, body)
    stream = ProgressStream()

    task = asyncio.create_task(
        manager.perform_fresh_research(user_id, asins, options, name, progress=stream)
    )

    def _finished(t: asyncio.Task):
        stream.close()
        if not t.cancelled() and t.exception() is not None:
            logger.debug(f"Streamed research ended with {t.exception()!r}")

    task.add_done_callback(_finished)

    async def events():
        try:
            async for event in stream:
                # The final event is sent once the session is saved
                if event.phase == ResearchPhase.COMPLETE:
                    continue
                yield _sse(event.to_dict())

            try:
                session_id, result = await task
            except Exception as e:
                error = handle_error(e, "Streaming keyword research")
                failed = ProgressEvent(ResearchPhase.ERROR, error["message"], 0, error)
                yield _sse(failed.to_dict())
                return

            done = ProgressEvent(
                ResearchPhase.COMPLETE,
                f"Keyword research complete! Found {result.overview.total_keywords} keywords "
                f"and {len(result.opportunities)} opportunities",
                100,
                {"session_id": session_id, "result": result.to_dict()},
            )
            yield _sse(done.to_dict())
        finally:
            if not task.done():
                logger.info("Client disconnected, cancelling streamed research")
                stream.cancel()

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


# =============================================================================
# SESSIONS
# =============================================================================

@router.get("/sessions")
async def list_sessions(
    user_id: str = Depends(get_user_id),
    manager: ResearchSessionManager = Depends(get_session_manager),
):
    sessions = await manager.get_user_sessions(user_id)
    return {"success": True, "data": sessions}


@router.post("/sessions/decision")
async def research_decision(
    body: DecisionRequest,
    user_id: str = Depends(get_user_id),
    manager: ResearchSessionManager = Depends(get_session_manager),
):
    """Recommend reloading a recent cached session or researching again."""
    asins = validate_asins(body.asins)
    decision = await manager.analyze_decision(user_id, asins)
    return {"success": True, "data": decision.to_dict()}


@router.get("/sessions/{session_id}")
async def get_session(
    session_id: str,
    user_id: str = Depends(get_user_id),
    manager: ResearchSessionManager = Depends(get_session_manager),
):
    result = await manager.load_results(user_id, session_id)
    if result is None:
        raise SessionNotFoundError(session_id, user_id)
    return {"success": True, "session_id": session_id, "data": result.to_dict()}


@router.patch("/sessions/{session_id}")
async def rename_session(
    session_id: str,
    body: RenameRequest,
    user_id: str = Depends(get_user_id),
    manager: ResearchSessionManager = Depends(get_session_manager),
):
    name = await manager.rename_session(user_id, session_id, body.name)
    return {"success": True, "session_id": session_id, "name": name}


@router.delete("/sessions/{session_id}")
async def delete_session(
    session_id: str,
    user_id: str = Depends(get_user_id),
    manager: ResearchSessionManager = Depends(get_session_manager),
):
    await manager.delete_session(user_id, session_id)
    return {"success": True, "session_id": session_id}
