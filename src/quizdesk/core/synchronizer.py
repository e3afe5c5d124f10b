"""Profile synchronizer.

Keeps the signed-in user's Profile current for one tab:

- sign-in: list the users collection, match on email, decode
- refresh: on visibility regained, every refresh_interval seconds while
  signed in and visible, and on a cached-session write from another
  window for this tab id
- sign-out: drop the profile and this tab's cached session

States:
    SIGNED_OUT -> LOADING        sign-in
    LOADING    -> READY          document found and decoded
    LOADING    -> ERROR          no matching document / fetch failed
    READY      -> READY          any refresh
    ERROR      -> READY          a later refresh finds the document
    *          -> SIGNED_OUT     sign-out

Each signed-in session owns a CancellationToken. Sign-out or a new
sign-in cancels it, and a fetch that completes under a cancelled token
is discarded instead of committed.

Usage:
    async with ProfileSynchronizer(identity, store, cache) as sync:
        await identity.sign_in(AuthAccount("ana@school.org", "uid-1"))
        print(sync.snapshot.user)
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Protocol

import structlog

from quizdesk.config.app_config import SyncConfig, get_sync_config
from quizdesk.core.identity import AuthAccount, IdentityProvider
from quizdesk.core.profile import Profile, decode_profile, find_user_document
from quizdesk.core.tab_cache import (
    StorageEvent,
    TabSessionCache,
    find_tab_user,
    parse_sessions,
)
from quizdesk.store.client import DocumentStoreError

logger = structlog.get_logger(__name__)

ACCOUNT_NOT_FOUND = "User account not found in database"
FETCH_FAILED = "Failed to fetch profile"


class SyncState(Enum):
    SIGNED_OUT = "signed_out"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class RefreshTrigger(Enum):
    SIGN_IN = "sign_in"
    VISIBILITY = "visibility"
    TIMER = "timer"


@dataclass(frozen=True)
class ProfileSnapshot:
    """What consumers read: user is None means no profile available."""

    user: Profile | None
    loading: bool
    error: str | None
    state: SyncState


class UserDocumentSource(Protocol):
    async def list_documents(self, collection: str | None = None) -> list[dict[str, Any]]: ...


class CancellationToken:
    """Cancelled when the session that created it ends."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


SnapshotListener = Callable[[ProfileSnapshot], None]


class ProfileSynchronizer:
    """Owns the Profile for one tab and every subscription feeding it."""

    def __init__(
        self,
        identity: IdentityProvider,
        store: UserDocumentSource,
        cache: TabSessionCache,
        config: SyncConfig | None = None,
        visible: bool = True,
    ):
        self.identity = identity
        self.store = store
        self.cache = cache
        self.config = config or get_sync_config()

        self._visible = visible
        self._state = SyncState.SIGNED_OUT
        self._user: Profile | None = None
        self._error: str | None = None
        self._account: AuthAccount | None = None
        self._token: CancellationToken | None = None

        self._unsubscribers: list[Callable[[], None]] = []
        self._timer: asyncio.Task[None] | None = None
        self._listeners: list[SnapshotListener] = []

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def running(self) -> bool:
        return bool(self._unsubscribers)

    async def start(self) -> None:
        """Subscribe to identity and storage changes and start the timer.

        If the identity provider already has an account, it is loaded
        right away.
        """
        if self.running:
            return

        self._unsubscribers.append(self.identity.subscribe(self.on_account_changed))
        self._unsubscribers.append(
            self.cache.shared.subscribe(self.cache.origin, self.on_storage_event)
        )
        self._timer = asyncio.create_task(self._refresh_loop())
        logger.info(
            "synchronizer_started",
            tab_id=self.cache.tab_id,
            refresh_interval=self.config.refresh_interval,
        )

        if self.identity.current_account is not None:
            await self.on_account_changed(self.identity.current_account)

    async def stop(self) -> None:
        """Tear down every subscription and the refresh timer."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

        if self._token is not None:
            self._token.cancel()
            self._token = None

        if self._timer is not None:
            self._timer.cancel()
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
            self._timer = None

        logger.info("synchronizer_stopped", tab_id=self.cache.tab_id)

    async def __aenter__(self) -> ProfileSynchronizer:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    # =========================================================================
    # OBSERVATION
    # =========================================================================

    @property
    def snapshot(self) -> ProfileSnapshot:
        return ProfileSnapshot(
            user=self._user,
            loading=self._state is SyncState.LOADING,
            error=self._error,
            state=self._state,
        )

    @property
    def visible(self) -> bool:
        return self._visible

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Get called with a new snapshot after every state change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self) -> None:
        snapshot = self.snapshot
        for listener in list(self._listeners):
            listener(snapshot)

    # =========================================================================
    # EVENT HANDLERS
    # =========================================================================

    async def on_account_changed(self, account: AuthAccount | None) -> None:
        """Handle sign-in (account) or sign-out (None)."""
        if self._token is not None:
            self._token.cancel()
            self._token = None

        if account is None:
            await self._sign_out()
            return

        token = CancellationToken()
        self._token = token
        self._account = account
        self._state = SyncState.LOADING
        self._error = None

        cached = self.cache.load()
        # show the cached copy only if it belongs to this account
        self._user = cached if cached is not None and cached.email == account.email else None
        self._publish()

        await self.refresh(RefreshTrigger.SIGN_IN, token)

    async def set_visibility(self, visible: bool) -> None:
        """Record tab visibility; regaining it triggers a refresh."""
        was_visible = self._visible
        self._visible = visible
        if visible and not was_visible and self._token is not None:
            logger.debug("tab_visible_refresh", tab_id=self.cache.tab_id)
            await self.refresh(RefreshTrigger.VISIBILITY)

    async def on_storage_event(self, event: StorageEvent) -> None:
        """Adopt a session another window cached for this tab id."""
        if event.key != self.cache.sessions_key or not event.new_value:
            return
        if self._token is None or self._account is None:
            return

        user = find_tab_user(parse_sessions(event.new_value), self.cache.tab_id)
        if user is None:
            return
        if user.get("email") != self._account.email:
            # a duplicated window still signed in as someone else
            logger.debug(
                "other_account_session_ignored",
                tab_id=self.cache.tab_id,
                email=self._account.email,
            )
            return

        self._user = Profile.from_dict(user)
        self._state = SyncState.READY
        self._error = None
        logger.debug("profile_from_other_window", tab_id=self.cache.tab_id)
        self._publish()

    async def _sign_out(self) -> None:
        self._account = None
        self._user = None
        self._error = None
        self._state = SyncState.SIGNED_OUT
        await self.cache.clear()
        logger.info("profile_cleared", tab_id=self.cache.tab_id)
        self._publish()

    # =========================================================================
    # REFRESH
    # =========================================================================

    async def refresh(
        self,
        trigger: RefreshTrigger = RefreshTrigger.TIMER,
        token: CancellationToken | None = None,
    ) -> bool:
        """Fetch, match and decode the signed-in user's document.

        Only the initial load (SIGN_IN) reports failures on the snapshot;
        later refreshes keep the last good profile and just log.

        Returns:
            True if a decoded profile was committed
        """
        token = token or self._token
        account = self._account
        if token is None or account is None:
            return False

        initial = trigger is RefreshTrigger.SIGN_IN
        log = logger.bind(tab_id=self.cache.tab_id, email=account.email, trigger=trigger.value)

        try:
            documents = await self.store.list_documents()
        except DocumentStoreError as e:
            if token.cancelled:
                return False
            log.warning("profile_fetch_failed", error=str(e))
            if initial:
                self._state = SyncState.ERROR
                self._error = FETCH_FAILED
                self._publish()
            return False

        if token.cancelled:
            log.debug("stale_refresh_discarded")
            return False

        document = find_user_document(documents, account.email)
        if document is None:
            log.warning("profile_document_not_found", documents=len(documents))
            if initial:
                self._user = None
                self._state = SyncState.ERROR
                self._error = ACCOUNT_NOT_FOUND
                await self.cache.clear()
                self._publish()
            return False

        profile = decode_profile(document, account)
        self._user = profile
        self._state = SyncState.READY
        self._error = None
        await self.cache.save(profile)
        log.info(
            "profile_refreshed",
            role=profile.role,
            assigned_books=len(profile.assigned_books),
        )
        self._publish()
        return True

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.refresh_interval)
            if self._token is None or not self._visible:
                continue
            try:
                await self.refresh(RefreshTrigger.TIMER)
            except Exception:
                logger.exception("periodic_refresh_failed", tab_id=self.cache.tab_id)
