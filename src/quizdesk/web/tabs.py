"""Tab management for Web API.

Each open window gets its own identity provider and ProfileSynchronizer.
All windows share one SharedStorage, so cached sessions written by one
window reach the others as storage events.

A window is addressed by its window id. The first window for a tab id
uses the tab id itself; a duplicated window (opened with duplicate=True)
shares the tab id, and so the cached session, under a window id of its
own.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import structlog

from quizdesk.config.app_config import SyncConfig, get_sync_config
from quizdesk.core.identity import IdentityProvider
from quizdesk.core.synchronizer import ProfileSynchronizer, UserDocumentSource
from quizdesk.core.tab_cache import SharedStorage, TabLocalStorage, TabSessionCache
from quizdesk.store.client import DocumentStoreClient

logger = structlog.get_logger(__name__)


class TabExistsError(Exception):
    """Raised when opening a tab whose id is already open without duplicate."""


@dataclass
class Tab:
    """An open window and the synchronizer that serves it."""

    window_id: str
    tab_id: str
    identity: IdentityProvider
    synchronizer: ProfileSynchronizer
    created_at: str = ""

    def __post_init__(self):
        if not self.created_at:
            self.created_at = datetime.now(timezone.utc).isoformat()


class TabManager:
    """Opens, looks up and closes tabs.

    Synchronizers are started on open and stopped on close or shutdown.
    """

    def __init__(
        self,
        store: UserDocumentSource | None = None,
        shared: SharedStorage | None = None,
        config: SyncConfig | None = None,
    ):
        self.config = config or get_sync_config()
        self._store = store
        if shared is None:
            path = Path(self.config.storage_path) if self.config.storage_path else None
            shared = SharedStorage(path)
        self.shared = shared
        self._tabs: dict[str, Tab] = {}
        self._lock = asyncio.Lock()

    @property
    def store(self) -> UserDocumentSource:
        if self._store is None:
            self._store = DocumentStoreClient()
        return self._store

    async def open_tab(
        self, tab_id: str | None = None, visible: bool = True, duplicate: bool = False
    ) -> Tab:
        """Open a window and start its synchronizer.

        Args:
            tab_id: Reuse a known tab id (e.g. after a reload); generated if None
            visible: Initial visibility
            duplicate: Open another window on an already open tab id

        Raises:
            TabExistsError: If tab_id is already open and duplicate is False
        """
        local = TabLocalStorage()
        if tab_id:
            local.set_item(self.config.tab_id_key, tab_id)
        cache = TabSessionCache(
            self.shared,
            local,
            sessions_key=self.config.sessions_key,
            tab_id_key=self.config.tab_id_key,
        )

        async with self._lock:
            window_id = cache.tab_id
            if window_id in self._tabs and not duplicate:
                raise TabExistsError(f"Tab '{cache.tab_id}' is already open")
            while window_id in self._tabs:
                window_id = f"{cache.tab_id}-{uuid.uuid4().hex[:4]}"
            identity = IdentityProvider()
            synchronizer = ProfileSynchronizer(
                identity, self.store, cache, config=self.config, visible=visible
            )
            tab = Tab(
                window_id=window_id,
                tab_id=cache.tab_id,
                identity=identity,
                synchronizer=synchronizer,
            )
            self._tabs[window_id] = tab

        await synchronizer.start()
        logger.info("tab_opened", window_id=window_id, tab_id=tab.tab_id, visible=visible)
        return tab

    async def get_tab(self, window_id: str) -> Tab | None:
        async with self._lock:
            return self._tabs.get(window_id)

    async def close_tab(self, window_id: str) -> bool:
        """Stop a window's synchronizer and forget the window.

        Returns:
            True if the window was closed, False if not found
        """
        async with self._lock:
            tab = self._tabs.pop(window_id, None)

        if tab is None:
            return False

        await tab.synchronizer.stop()
        logger.info("tab_closed", window_id=window_id, tab_id=tab.tab_id)
        return True

    async def list_tabs(self) -> list[Tab]:
        async with self._lock:
            return list(self._tabs.values())

    async def shutdown(self) -> None:
        """Close every tab and the document store client."""
        for tab in await self.list_tabs():
            await self.close_tab(tab.window_id)
        if isinstance(self._store, DocumentStoreClient):
            await self._store.aclose()
            self._store = None


# Global tab manager instance
_tab_manager: TabManager | None = None


def get_tab_manager() -> TabManager:
    """Get the global tab manager instance."""
    global _tab_manager
    if _tab_manager is None:
        _tab_manager = TabManager()
    return _tab_manager


def reset_tab_manager(manager: TabManager | None = None) -> None:
    """Replace the tab manager (for testing)."""
    global _tab_manager
    _tab_manager = manager
