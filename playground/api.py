"""
HTTP endpoints fronting a conversation session.

Exposes the session's turns, settings, model catalog and liveness probe
so a browser or script can drive the playground.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from .errors import TransportError, ValidationError
from .session import ConversationSession

logger = logging.getLogger(__name__)

router = APIRouter()


class SubmitRequest(BaseModel):
    """Body of POST /turns."""
    prompt: str
    wait: bool = True


class SettingsUpdate(BaseModel):
    """Body of PUT /settings. Omitted fields are left alone."""
    base_url: Optional[str] = None
    mode: Optional[str] = None
    endpoint: Optional[str] = None
    model: Optional[str] = None
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    min_p: Optional[float] = None
    repetition_penalty: Optional[float] = None
    stop_sequences: Optional[List[str]] = None
    system_prompt: Optional[str] = None


def get_session(request: Request) -> ConversationSession:
    return request.app.state.session


@router.get("/health")
async def health(session: ConversationSession = Depends(get_session)):
    """Probe the upstream server for the active mode."""
    try:
        ok = await session.probe()
        error = None
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TransportError as e:
        ok, error = False, str(e)

    return {
        "status": "healthy" if ok else "unreachable",
        "upstream": session.base_url,
        "mode": session.mode.value,
        "error": error,
    }


@router.get("/settings")
async def read_settings(session: ConversationSession = Depends(get_session)):
    return session.settings()


@router.put("/settings")
async def write_settings(
    update: SettingsUpdate,
    session: ConversationSession = Depends(get_session),
):
    changes = update.model_dump(exclude_unset=True)
    try:
        session.update_settings(**changes)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info(f"Settings updated: {sorted(changes)}")
    return session.settings()


@router.get("/models")
async def list_models(session: ConversationSession = Depends(get_session)):
    """Refresh the model catalog for the active mode."""
    try:
        models = await session.refresh_models()
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TransportError as e:
        raise HTTPException(status_code=502, detail=str(e))

    return {
        "object": "list",
        "data": [m.model_dump(exclude_none=True) for m in models],
        "selected": session.params.model or None,
    }


@router.get("/turns")
async def list_turns(
    include_raw: bool = False,
    session: ConversationSession = Depends(get_session),
):
    return {
        "turns": [t.to_dict(include_raw=include_raw) for t in session.turns],
        "busy": session.busy,
        "stats": session.last_stats(),
    }


@router.post("/turns")
async def submit_turn(
    body: SubmitRequest,
    session: ConversationSession = Depends(get_session),
):
    """
    Submit a prompt.

    With wait=true the response is the settled assistant turn; otherwise
    the pending turn is returned immediately.
    """
    try:
        task = session.submit(body.prompt)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if body.wait:
        turn = await task
    else:
        turn = session.pending
    return turn.to_dict(include_raw=True)


@router.delete("/turns")
async def clear_turns(session: ConversationSession = Depends(get_session)):
    session.clear()
    return {"turns": []}


@router.post("/cancel")
async def cancel(session: ConversationSession = Depends(get_session)):
    return {"cancelled": session.cancel()}
