"""
Chat endpoints - the visitor-facing surface of the intake pipeline.

Every message for a session is handled under that session's lock, so a
double-sent message is processed after the first one, never alongside it.
"""
import logging

from fastapi import APIRouter, HTTPException, Request

from leadcapture.agents.conductor import handle_message, start_session
from leadcapture.agents.session import ChatSession
from leadcapture.schemas.api_responses import (
    ChatReplyResponse,
    MessageRequest,
    SessionSnapshotResponse,
)
from leadcapture.services.session_store import SessionStore
from leadcapture.utils.locks import LockTimeoutError, session_lock

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/chat", tags=["chat"])


def _get_store(request: Request) -> SessionStore:
    return request.app.state.sessions


def _get_session(store: SessionStore, session_id: str) -> ChatSession:
    session = store.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


@router.post("/sessions", response_model=ChatReplyResponse, status_code=201)
async def create_session(request: Request):
    """Open a conversation and return the greeting."""
    store = _get_store(request)
    store.prune_idle()
    _, reply = start_session(store)
    return reply


@router.post("/sessions/{session_id}/messages", response_model=ChatReplyResponse)
async def post_message(session_id: str, payload: MessageRequest, request: Request):
    """Send one visitor message and get the assistant's reply."""
    store = _get_store(request)
    session = _get_session(store, session_id)

    try:
        async with session_lock(store.lock_for(session_id), session_id):
            return await handle_message(session, payload.text)
    except LockTimeoutError:
        raise HTTPException(
            status_code=409,
            detail="A previous message for this session is still being processed",
        )


@router.get("/sessions/{session_id}", response_model=SessionSnapshotResponse)
async def get_session(session_id: str, request: Request):
    """Current phase and captured fields. No transcript, no conversation token."""
    session = _get_session(_get_store(request), session_id)
    return session.snapshot()


@router.delete("/sessions/{session_id}", status_code=204)
async def delete_session(session_id: str, request: Request):
    store = _get_store(request)
    if not store.discard(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    logger.info("Session discarded", extra={"session_id": session_id})
