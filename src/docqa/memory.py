"""Bounded per-session conversation memory."""
from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Union

from docqa.models import Role, SessionTurn


@dataclass(slots=True)
class _Session:
    turns: Deque[SessionTurn]
    next_index: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock)


class SessionMemory:
    """Keep the most recent ``window`` turns of every session.

    Sessions are created on first use. Evicted turns are gone for good, while
    turn indices keep growing so ordering stays strict across evictions.
    """

    def __init__(self, window: int = 10) -> None:
        if window <= 0:
            raise ValueError("window must be a positive integer")
        self.window = window
        self._sessions: Dict[str, _Session] = {}
        self._sessions_lock = threading.Lock()

    def append(self, session_id: str, role: Union[Role, str], content: str) -> int:
        """Record a turn and return its index within the session."""

        session = self._session(session_id)
        with session.lock:
            return self._append_locked(session, session_id, Role(role), content)

    def append_exchange(self, session_id: str, question: str, answer: str) -> tuple[int, int]:
        """Record a question and its answer as adjacent turns."""

        session = self._session(session_id)
        with session.lock:
            user_index = self._append_locked(session, session_id, Role.USER, question)
            assistant_index = self._append_locked(session, session_id, Role.ASSISTANT, answer)
        return user_index, assistant_index

    def history(self, session_id: str, max_turns: Optional[int] = None) -> List[SessionTurn]:
        """Return up to *max_turns* most recent turns, oldest first."""

        session = self._sessions.get(session_id)
        if session is None:
            return []
        with session.lock:
            turns = list(session.turns)
        if max_turns is not None:
            turns = turns[-max_turns:] if max_turns > 0 else []
        return turns

    def clear(self, session_id: str) -> None:
        with self._sessions_lock:
            self._sessions.pop(session_id, None)

    def session_ids(self) -> List[str]:
        return sorted(self._sessions)

    @staticmethod
    def _append_locked(session: _Session, session_id: str, role: Role, content: str) -> int:
        turn = SessionTurn(session_id=session_id, turn_index=session.next_index, role=role, content=content)
        session.turns.append(turn)
        session.next_index += 1
        return turn.turn_index

    def _session(self, session_id: str) -> _Session:
        with self._sessions_lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = _Session(turns=deque(maxlen=self.window))
                self._sessions[session_id] = session
            return session


__all__ = ["SessionMemory"]
