"""Session persistence and lifecycle management."""

import logging
import random
import string
import time
from collections.abc import Callable
from datetime import datetime
from typing import NotRequired, TypedDict

from nexuschat.storage import Storage

logger = logging.getLogger(__name__)

# Storage record holding every session
SESSIONS_RECORD = "chat-store"

DEFAULT_TITLE = "New Chat"

BASE36 = string.digits + string.ascii_lowercase


class Message(TypedDict):
    role: str
    content: str
    image: NotRequired[str | None]
    timestamp: int


class Session(TypedDict):
    id: str
    title: str
    messages: list[Message]
    created: int
    updated: int


def now_ms() -> int:
    """Current time as epoch milliseconds"""
    return int(time.time() * 1000)


def _base36(value: int) -> str:
    digits = ""
    while value:
        value, rem = divmod(value, 36)
        digits = BASE36[rem] + digits
    return digits or "0"


def generate_id(clock: Callable[[], int] = now_ms) -> str:
    """
    Time component plus a random suffix.\n
    Uniqueness is not re-checked against the store, a collision needs two
    sessions created in the same millisecond with the same 5-character suffix.
    """
    suffix = "".join(random.choices(BASE36, k=5))
    return _base36(clock()) + suffix


def format_timestamp(ts: int, now: int | None = None) -> str:
    """Human-friendly relative time for the session list"""
    now = now if now is not None else now_ms()
    diff = now - ts
    if diff < 60_000:
        return "just now"
    if diff < 3_600_000:
        return f"{diff // 60_000}m ago"
    then = datetime.fromtimestamp(ts / 1000)
    if then.date() == datetime.fromtimestamp(now / 1000).date():
        return then.strftime("%H:%M")
    return f"{then.strftime('%b')} {then.day}"


class SessionStore:
    """Maps session id -> Session, written through to storage on every change"""

    def __init__(self, storage: Storage, clock: Callable[[], int] = now_ms):
        self.storage = storage
        self.clock = clock
        self.sessions: dict[str, Session] = {}
        self.reload()

    def reload(self):
        """Re-read the whole mapping from storage"""
        self.sessions = self.storage.get(SESSIONS_RECORD, {})

    def save(self):
        """Persists the whole mapping"""
        self.storage.set(SESSIONS_RECORD, self.sessions)

    def get(self, session_id: str) -> Session | None:
        return self.sessions.get(session_id)

    def ids(self) -> list[str]:
        return list(self.sessions)

    def values(self) -> list[Session]:
        return list(self.sessions.values())

    def insert(self, session: Session):
        self.sessions[session["id"]] = session
        self.save()

    def remove(self, session_id: str) -> bool:
        if self.sessions.pop(session_id, None) is None:
            return False
        self.save()
        return True

    def append_message(
        self,
        session_id: str,
        role: str,
        content: str,
        image: str | None = None,
        title: str | None = None,
    ) -> Message | None:
        """
        Appends a message and persists before returning.\n
        `title` names the session when this is its first message.
        """
        session = self.sessions.get(session_id)
        if session is None:
            return None
        message: Message = {"role": role, "content": content, "timestamp": self.clock()}
        if image:
            message["image"] = image
        session["messages"].append(message)
        if len(session["messages"]) == 1 and title is not None:
            session["title"] = title or DEFAULT_TITLE
        session["updated"] = max(self.clock(), session["created"])
        self.save()
        return message

    def clear(self, session_id: str) -> bool:
        session = self.sessions.get(session_id)
        if session is None:
            return False
        session["messages"] = []
        session["title"] = DEFAULT_TITLE
        session["updated"] = max(self.clock(), session["created"])
        self.save()
        return True


class SessionManager:
    """Create, switch, delete and clear sessions. Holds the active session."""

    def __init__(self, store: SessionStore):
        self.store = store
        self.active_id: str | None = None

    @property
    def active(self) -> Session | None:
        """The session currently presented to the user"""
        if self.active_id is None:
            return None
        return self.store.get(self.active_id)

    def load(self) -> str:
        """Picks up the most recently used session, or starts the first one"""
        sessions = self.list()
        if sessions:
            self.active_id = sessions[0]["id"]
            return self.active_id
        return self.create_session()

    def ensure_active(self) -> str:
        """Returns the active session id, creating a session when there is none"""
        if self.active_id is not None and self.store.get(self.active_id):
            return self.active_id
        return self.create_session()

    def create_session(self) -> str:
        session_id = generate_id(self.store.clock)
        stamp = self.store.clock()
        self.store.insert(
            {
                "id": session_id,
                "title": DEFAULT_TITLE,
                "messages": [],
                "created": stamp,
                "updated": stamp,
            }
        )
        self.active_id = session_id
        logger.info(f"Created session {session_id}")
        return session_id

    def switch_to(self, session_id: str):
        """Points at another session. Unknown ids are ignored."""
        if self.store.get(session_id) is not None:
            self.active_id = session_id

    def delete_session(self, session_id: str):
        """Removes a session, promoting the newest survivor if it was active"""
        self.store.remove(session_id)
        if session_id != self.active_id:
            return
        remaining = self.list()
        if remaining:
            self.active_id = remaining[0]["id"]
        else:
            self.create_session()

    def clear_session(self, session_id: str):
        self.store.clear(session_id)

    def list(self) -> list[Session]:
        """Sessions, most recently updated first"""
        return sorted(self.store.values(), key=lambda s: s["updated"], reverse=True)
