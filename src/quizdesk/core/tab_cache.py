"""Tab-scoped session cache.

Shared storage is visible to every tab (like browser localStorage) and
notifies listeners of writes made by *other* tabs. Tab-local storage
(like sessionStorage) holds the tab's own identifier.

The cache lives under one shared key as an ordered list:

    [{"tabId": "3f2a9c1e", "user": {...profile...}}, ...]
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable

import structlog

from quizdesk.core.profile import Profile

logger = structlog.get_logger(__name__)

SESSIONS_KEY = "multitab_sessions"
TAB_ID_KEY = "tab_id"


@dataclass(frozen=True)
class StorageEvent:
    """A change to a shared storage key.

    origin identifies the writing tab instance (two windows can share a
    tab_id when one was duplicated from the other).
    """

    key: str
    old_value: str | None
    new_value: str | None
    origin: str | None = None


StorageListener = Callable[[StorageEvent], Awaitable[None]]


class SharedStorage:
    """Key/value string storage shared by all tabs.

    Optionally persisted to a JSON file so a restarted process sees the
    last cached sessions.
    """

    def __init__(self, path: Path | None = None):
        self.path = path
        self._items: dict[str, str] = {}
        self._listeners: list[tuple[str | None, StorageListener]] = []
        if path is not None and path.exists():
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
                self._items = {str(k): str(v) for k, v in data.items()}
            except (OSError, ValueError, AttributeError) as e:
                logger.warning("shared_storage_unreadable", path=str(path), error=str(e))

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    async def set_item(self, key: str, value: str, origin: str | None = None) -> None:
        old_value = self._items.get(key)
        self._items[key] = value
        self._persist()
        await self._dispatch(StorageEvent(key, old_value, value, origin))

    async def remove_item(self, key: str, origin: str | None = None) -> None:
        if key not in self._items:
            return
        old_value = self._items.pop(key)
        self._persist()
        await self._dispatch(StorageEvent(key, old_value, None, origin))

    def subscribe(self, origin: str | None, listener: StorageListener) -> Callable[[], None]:
        """Listen for writes made by anyone other than origin."""
        entry = (origin, listener)
        self._listeners.append(entry)

        def unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return unsubscribe

    async def _dispatch(self, event: StorageEvent) -> None:
        for origin, listener in list(self._listeners):
            # writers never see their own change
            if event.origin is not None and origin == event.origin:
                continue
            await listener(event)

    def _persist(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self._items, indent=2), encoding="utf-8")


class TabLocalStorage:
    """Per-tab key/value storage."""

    def __init__(self, items: dict[str, str] | None = None):
        self._items = dict(items or {})

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


def generate_tab_id() -> str:
    """Short random tab identifier."""
    return uuid.uuid4().hex[:8]


def parse_sessions(raw: str | None) -> list[dict[str, Any]]:
    """Parse the cached session list, ignoring malformed content."""
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except ValueError as e:
        logger.error("tab_sessions_invalid_json", error=str(e))
        return []
    if not isinstance(data, list):
        logger.error("tab_sessions_not_a_list", kind=type(data).__name__)
        return []
    return [s for s in data if isinstance(s, dict)]


def find_tab_user(sessions: list[dict[str, Any]], tab_id: str) -> dict[str, Any] | None:
    """Return the cached user dict for tab_id, if any."""
    for session in sessions:
        if session.get("tabId") == tab_id:
            user = session.get("user")
            return user if isinstance(user, dict) and user else None
    return None


class TabSessionCache:
    """Cached Profile for one tab, stored in shared storage."""

    def __init__(
        self,
        shared: SharedStorage,
        local: TabLocalStorage | None = None,
        sessions_key: str = SESSIONS_KEY,
        tab_id_key: str = TAB_ID_KEY,
    ):
        self.shared = shared
        self.local = local if local is not None else TabLocalStorage()
        self.sessions_key = sessions_key
        self.tab_id_key = tab_id_key
        self.origin = uuid.uuid4().hex

    @property
    def tab_id(self) -> str:
        tab_id = self.local.get_item(self.tab_id_key)
        if not tab_id:
            tab_id = generate_tab_id()
            self.local.set_item(self.tab_id_key, tab_id)
        return tab_id

    def sessions(self) -> list[dict[str, Any]]:
        return parse_sessions(self.shared.get_item(self.sessions_key))

    def load(self) -> Profile | None:
        """Get this tab's cached profile."""
        user = find_tab_user(self.sessions(), self.tab_id)
        if user is None:
            return None
        return Profile.from_dict(user)

    async def save(self, profile: Profile) -> None:
        """Store profile for this tab, replacing any previous entry in place."""
        tab_id = self.tab_id
        sessions = self.sessions()
        entry = {"tabId": tab_id, "user": profile.to_dict()}

        for index, session in enumerate(sessions):
            if session.get("tabId") == tab_id:
                sessions[index] = entry
                break
        else:
            sessions.append(entry)

        await self.shared.set_item(self.sessions_key, json.dumps(sessions), origin=self.origin)
        logger.debug("tab_session_saved", tab_id=tab_id, sessions=len(sessions))

    async def clear(self) -> None:
        """Drop this tab's entry."""
        tab_id = self.tab_id
        sessions = self.sessions()
        remaining = [s for s in sessions if s.get("tabId") != tab_id]
        if len(remaining) == len(sessions):
            return
        await self.shared.set_item(self.sessions_key, json.dumps(remaining), origin=self.origin)
        logger.debug("tab_session_cleared", tab_id=tab_id)
