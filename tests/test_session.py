"""
Tests for leadcapture/agents/session.py and leadcapture/services/session_store.py.
"""
import asyncio
import pytest
from datetime import datetime, timedelta, timezone

from leadcapture.agents.session import (
    VALID_TRANSITIONS,
    ChatSession,
    InvalidTransitionError,
    Phase,
)
from leadcapture.services.session_store import SessionStore
from leadcapture.utils.locks import LockTimeoutError, session_lock

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Phase machine
# ---------------------------------------------------------------------------


class TestTransitions:
    def test_new_session_is_collecting(self):
        assert ChatSession(now=T0).phase == Phase.COLLECTING

    def test_unavailable_when_no_generation(self):
        assert ChatSession(now=T0, generation_available=False).phase == Phase.UNAVAILABLE

    def test_happy_path(self):
        session = ChatSession(now=T0)
        session.transition(Phase.CONFIRMING)
        session.transition(Phase.SUBMITTED)
        assert session.phase == Phase.SUBMITTED

    def test_update_loop(self):
        session = ChatSession(now=T0)
        session.transition(Phase.CONFIRMING)
        session.transition(Phase.UPDATING)
        session.transition(Phase.CONFIRMING)
        session.transition(Phase.CONFIRMING)
        assert session.phase == Phase.CONFIRMING

    def test_collecting_cannot_submit_directly(self):
        session = ChatSession(now=T0)
        with pytest.raises(InvalidTransitionError):
            session.transition(Phase.SUBMITTED)

    def test_terminal_phases(self):
        assert VALID_TRANSITIONS[Phase.SUBMITTED] == []
        assert VALID_TRANSITIONS[Phase.UNAVAILABLE] == []


# ---------------------------------------------------------------------------
# Reset, idle detection, history
# ---------------------------------------------------------------------------


class TestSessionState:
    def test_reset_keeps_handle_and_rotates_token(self):
        session = ChatSession(now=T0)
        handle, token = session.session_id, session.conversation_token
        session.lead.name = "Adrian"
        session.submission_latched = True
        session.transition(Phase.CONFIRMING)

        session.reset(T0 + timedelta(hours=1))

        assert session.session_id == handle
        assert session.conversation_token != token
        assert session.lead.name == ""
        assert session.submission_latched is False
        assert session.phase == Phase.COLLECTING

    def test_idle_detection(self):
        session = ChatSession(now=T0)
        assert session.is_idle(T0 + timedelta(minutes=29), 30) is False
        assert session.is_idle(T0 + timedelta(minutes=31), 30) is True

    def test_touch_extends_activity(self):
        session = ChatSession(now=T0)
        session.touch(T0 + timedelta(minutes=20))
        assert session.is_idle(T0 + timedelta(minutes=40), 30) is False

    def test_recent_history_window(self):
        session = ChatSession(now=T0)
        for i in range(12):
            session.record_turn("user" if i % 2 == 0 else "assistant", f"turn {i}", T0)
        window = session.recent_history(10)
        assert len(window) == 10
        assert window[0].content == "turn 2"
        assert session.recent_history(0) == []

    def test_snapshot_hides_token(self):
        session = ChatSession(now=T0)
        snapshot = session.snapshot()
        assert snapshot["phase"] == "collecting"
        assert snapshot["missing_fields"][0] == "name"
        assert session.conversation_token not in str(snapshot)


# ---------------------------------------------------------------------------
# SessionStore
# ---------------------------------------------------------------------------


class TestSessionStore:
    def test_sessions_are_independent(self):
        store = SessionStore()
        a = store.create(now=T0)
        b = store.create(now=T0)
        a.lead.name = "Adrian"

        assert a.session_id != b.session_id
        assert store.get(b.session_id).lead.name == ""
        assert len(store) == 2

    def test_discard(self):
        store = SessionStore()
        session = store.create(now=T0)
        assert store.discard(session.session_id) is True
        assert session.session_id not in store
        assert store.discard(session.session_id) is False

    def test_prune_only_long_abandoned(self):
        store = SessionStore(idle_timeout_minutes=30, max_idle_multiplier=4)
        old = store.create(now=T0)
        recent = store.create(now=T0 + timedelta(hours=1))

        evicted = store.prune_idle(T0 + timedelta(hours=2, minutes=1))

        assert evicted == 1
        assert old.session_id not in store
        assert recent.session_id in store

    def test_lock_is_per_session(self):
        store = SessionStore()
        a = store.create(now=T0)
        b = store.create(now=T0)
        assert store.lock_for(a.session_id) is store.lock_for(a.session_id)
        assert store.lock_for(a.session_id) is not store.lock_for(b.session_id)


class TestSessionLock:
    @pytest.mark.asyncio
    async def test_second_holder_times_out(self):
        lock = asyncio.Lock()
        async with session_lock(lock, "abc123"):
            with pytest.raises(LockTimeoutError):
                async with session_lock(lock, "abc123", wait=0.05):
                    pass
        assert not lock.locked()
