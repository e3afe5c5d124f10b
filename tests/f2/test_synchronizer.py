"""Tests for ProfileSynchronizer (F2)."""

import asyncio
import json

import pytest
from conftest import FakeDocumentStore, make_user_document

from quizdesk.config.app_config import SyncConfig
from quizdesk.core.identity import AuthAccount, IdentityProvider
from quizdesk.core.profile import Profile
from quizdesk.core.synchronizer import (
    ACCOUNT_NOT_FOUND,
    FETCH_FAILED,
    ProfileSynchronizer,
    RefreshTrigger,
    SyncState,
)
from quizdesk.core.tab_cache import SharedStorage, StorageEvent, TabLocalStorage, TabSessionCache
from quizdesk.store.client import DocumentStoreError

ANA = AuthAccount(email="ana@school.org", account_id="uid-ana")
BEN = AuthAccount(email="ben@school.org", account_id="uid-ben")

# long enough that the timer never fires unless a test asks for it
QUIET = SyncConfig(refresh_interval=3600)


def _cache(shared: SharedStorage, tab_id: str = "t1") -> TabSessionCache:
    return TabSessionCache(shared, TabLocalStorage({"tab_id": tab_id}))


def _synchronizer(store, shared=None, tab_id="t1", config=QUIET, identity=None):
    shared = shared or SharedStorage()
    identity = identity or IdentityProvider()
    return ProfileSynchronizer(identity, store, _cache(shared, tab_id), config=config)


class TestSignIn:
    """Tests for the initial load."""

    @pytest.mark.asyncio
    async def test_sign_in_reaches_ready(self, teacher_document, other_document):
        store = FakeDocumentStore([other_document, teacher_document])
        async with _synchronizer(store) as sync:
            await sync.identity.sign_in(ANA)
            snapshot = sync.snapshot

        assert snapshot.state is SyncState.READY
        assert snapshot.loading is False
        assert snapshot.error is None
        assert snapshot.user.name == "Ana Ruiz"
        assert snapshot.user.account_id == "uid-ana"

    @pytest.mark.asyncio
    async def test_initial_state_is_signed_out(self):
        sync = _synchronizer(FakeDocumentStore())
        snapshot = sync.snapshot
        assert snapshot.state is SyncState.SIGNED_OUT
        assert snapshot.user is None
        assert snapshot.loading is False

    @pytest.mark.asyncio
    async def test_loading_while_fetch_in_flight(self, teacher_document):
        store = FakeDocumentStore([teacher_document])
        release = store.hold_next()
        async with _synchronizer(store) as sync:
            task = asyncio.create_task(sync.identity.sign_in(ANA))
            await asyncio.sleep(0.01)
            assert sync.snapshot.loading is True
            assert sync.snapshot.state is SyncState.LOADING
            assert sync.snapshot.user is None

            release.set()
            await task
            assert sync.snapshot.state is SyncState.READY

    @pytest.mark.asyncio
    async def test_account_not_found(self, other_document):
        store = FakeDocumentStore([other_document])
        async with _synchronizer(store) as sync:
            await sync.identity.sign_in(ANA)
            snapshot = sync.snapshot

        assert snapshot.user is None
        assert snapshot.error == ACCOUNT_NOT_FOUND
        assert snapshot.error == "User account not found in database"
        assert snapshot.state is SyncState.ERROR
        assert snapshot.loading is False

    @pytest.mark.asyncio
    async def test_fetch_failed(self):
        store = FakeDocumentStore()
        store.error = DocumentStoreError("connection refused")
        async with _synchronizer(store) as sync:
            await sync.identity.sign_in(ANA)
            snapshot = sync.snapshot

        assert snapshot.state is SyncState.ERROR
        assert snapshot.error == FETCH_FAILED
        assert snapshot.user is None

    @pytest.mark.asyncio
    async def test_fetch_failed_keeps_cached_profile(self, teacher_document):
        shared = SharedStorage()
        cached = Profile(name="Cached Ana", email="ana@school.org", role="Teacher")
        await _cache(shared).save(cached)

        store = FakeDocumentStore([teacher_document])
        store.error = DocumentStoreError("timeout")
        async with _synchronizer(store, shared=shared) as sync:
            await sync.identity.sign_in(ANA)
            snapshot = sync.snapshot

        assert snapshot.error == FETCH_FAILED
        assert snapshot.user == cached

    @pytest.mark.asyncio
    async def test_cached_profile_of_other_account_not_shown(self, teacher_document):
        shared = SharedStorage()
        await _cache(shared).save(Profile(name="Ben", email="ben@school.org", role="Teacher"))

        store = FakeDocumentStore([teacher_document])
        release = store.hold_next()
        async with _synchronizer(store, shared=shared) as sync:
            task = asyncio.create_task(sync.identity.sign_in(ANA))
            await asyncio.sleep(0.01)
            assert sync.snapshot.user is None
            release.set()
            await task

    @pytest.mark.asyncio
    async def test_success_writes_tab_cache(self, teacher_document):
        shared = SharedStorage()
        store = FakeDocumentStore([teacher_document])
        async with _synchronizer(store, shared=shared) as sync:
            await sync.identity.sign_in(ANA)
            assert sync.cache.load() == sync.snapshot.user

        sessions = json.loads(shared.get_item("multitab_sessions"))
        assert sessions[0]["tabId"] == "t1"
        assert sessions[0]["user"]["email"] == "ana@school.org"

    @pytest.mark.asyncio
    async def test_start_loads_already_signed_in_account(self, teacher_document):
        store = FakeDocumentStore([teacher_document])
        identity = IdentityProvider(ANA)
        async with _synchronizer(store, identity=identity) as sync:
            assert sync.snapshot.state is SyncState.READY


class TestSignOut:
    """Tests for sign-out and cancellation."""

    @pytest.mark.asyncio
    async def test_sign_out_clears_profile_and_cache(self, teacher_document):
        store = FakeDocumentStore([teacher_document])
        async with _synchronizer(store) as sync:
            await sync.identity.sign_in(ANA)
            await sync.identity.sign_out()

            assert sync.snapshot.state is SyncState.SIGNED_OUT
            assert sync.snapshot.user is None
            assert sync.snapshot.error is None
            assert sync.cache.load() is None

    @pytest.mark.asyncio
    async def test_sign_out_clears_error(self, other_document):
        store = FakeDocumentStore([other_document])
        async with _synchronizer(store) as sync:
            await sync.identity.sign_in(ANA)
            await sync.identity.sign_out()
            assert sync.snapshot.error is None
            assert sync.snapshot.state is SyncState.SIGNED_OUT

    @pytest.mark.asyncio
    async def test_late_response_after_sign_out_is_discarded(self, teacher_document):
        store = FakeDocumentStore([teacher_document])
        release = store.hold_next()
        async with _synchronizer(store) as sync:
            task = asyncio.create_task(sync.identity.sign_in(ANA))
            await asyncio.sleep(0.01)

            await sync.identity.sign_out()
            release.set()
            await task

            assert sync.snapshot.user is None
            assert sync.snapshot.state is SyncState.SIGNED_OUT
            assert sync.cache.load() is None

    @pytest.mark.asyncio
    async def test_sign_out_then_sign_in_shows_no_stale_data(
        self, teacher_document, other_document
    ):
        store = FakeDocumentStore([teacher_document, other_document])
        release = store.hold_next()
        async with _synchronizer(store) as sync:
            seen = []
            sync.subscribe(seen.append)

            first = asyncio.create_task(sync.identity.sign_in(ANA))
            await asyncio.sleep(0.01)
            await sync.identity.sign_out()
            await sync.identity.sign_in(BEN)

            # Ana's fetch completes only now
            release.set()
            await first

            assert sync.snapshot.user.email == "ben@school.org"
            assert sync.cache.load().email == "ben@school.org"

        ready_at = next(i for i, s in enumerate(seen) if s.state is SyncState.READY)
        for snapshot in seen[ready_at:]:
            assert snapshot.user is None or snapshot.user.email == "ben@school.org"


class TestRefreshTriggers:
    """Tests for visibility, timer and storage-driven refreshes."""

    @pytest.mark.asyncio
    async def test_visibility_regained_refreshes(self, teacher_document):
        store = FakeDocumentStore([teacher_document])
        async with _synchronizer(store) as sync:
            await sync.identity.sign_in(ANA)
            calls = store.calls

            store.documents = [make_user_document(name="Ana Updated", email="ana@school.org")]
            await sync.set_visibility(False)
            assert store.calls == calls

            await sync.set_visibility(True)
            assert store.calls == calls + 1
            assert sync.snapshot.user.name == "Ana Updated"
            assert sync.snapshot.state is SyncState.READY

    @pytest.mark.asyncio
    async def test_visibility_without_session_does_nothing(self):
        store = FakeDocumentStore()
        async with _synchronizer(store) as sync:
            await sync.set_visibility(False)
            await sync.set_visibility(True)
        assert store.calls == 0

    @pytest.mark.asyncio
    async def test_timer_refreshes_while_visible(self, teacher_document):
        store = FakeDocumentStore([teacher_document])
        config = SyncConfig(refresh_interval=0.01)
        async with _synchronizer(store, config=config) as sync:
            await sync.identity.sign_in(ANA)
            store.documents = [make_user_document(name="Ana Timer", email="ana@school.org")]
            await asyncio.sleep(0.1)
            assert sync.snapshot.user.name == "Ana Timer"

    @pytest.mark.asyncio
    async def test_timer_paused_while_hidden(self, teacher_document):
        store = FakeDocumentStore([teacher_document])
        config = SyncConfig(refresh_interval=0.01)
        async with _synchronizer(store, config=config) as sync:
            await sync.identity.sign_in(ANA)
            await sync.set_visibility(False)
            calls = store.calls
            await asyncio.sleep(0.1)
            assert store.calls == calls

    @pytest.mark.asyncio
    async def test_timer_idle_when_signed_out(self):
        store = FakeDocumentStore()
        config = SyncConfig(refresh_interval=0.01)
        async with _synchronizer(store, config=config):
            await asyncio.sleep(0.05)
        assert store.calls == 0

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_last_good_profile(self, teacher_document):
        store = FakeDocumentStore([teacher_document])
        async with _synchronizer(store) as sync:
            await sync.identity.sign_in(ANA)
            before = sync.snapshot.user

            store.error = DocumentStoreError("boom")
            assert await sync.refresh(RefreshTrigger.TIMER) is False

            assert sync.snapshot.user == before
            assert sync.snapshot.error is None
            assert sync.snapshot.state is SyncState.READY

    @pytest.mark.asyncio
    async def test_refresh_without_match_keeps_profile(self, teacher_document):
        store = FakeDocumentStore([teacher_document])
        async with _synchronizer(store) as sync:
            await sync.identity.sign_in(ANA)
            store.documents = []
            assert await sync.refresh() is False
            assert sync.snapshot.user.name == "Ana Ruiz"
            assert sync.snapshot.error is None

    @pytest.mark.asyncio
    async def test_refresh_recovers_from_error(self, teacher_document):
        store = FakeDocumentStore([])
        async with _synchronizer(store) as sync:
            await sync.identity.sign_in(ANA)
            assert sync.snapshot.state is SyncState.ERROR

            store.documents = [teacher_document]
            assert await sync.refresh() is True
            assert sync.snapshot.state is SyncState.READY
            assert sync.snapshot.error is None

    @pytest.mark.asyncio
    async def test_refresh_is_full_overwrite(self, teacher_document):
        store = FakeDocumentStore([teacher_document])
        async with _synchronizer(store) as sync:
            await sync.identity.sign_in(ANA)
            store.documents = [make_user_document(email="ana@school.org")]
            await sync.refresh()

            user = sync.snapshot.user
            assert user.name == "User"
            assert user.subjects is None
            assert user.assigned_books == []


class TestStorageEvents:
    """Tests for cross-window cache notifications."""

    @pytest.mark.asyncio
    async def test_duplicate_window_adopts_newer_session(self, teacher_document):
        shared = SharedStorage()
        store = FakeDocumentStore([teacher_document])
        first = _synchronizer(store, shared=shared, tab_id="t1")
        second = _synchronizer(store, shared=shared, tab_id="t1")

        async with first, second:
            await first.identity.sign_in(ANA)
            store.documents = [make_user_document(name="Ana v2", email="ana@school.org")]
            await second.identity.sign_in(ANA)

            assert first.snapshot.user.name == "Ana v2"
            assert first.snapshot.state is SyncState.READY

    @pytest.mark.asyncio
    async def test_duplicate_window_on_other_account_is_ignored(
        self, teacher_document, other_document
    ):
        shared = SharedStorage()
        store = FakeDocumentStore([teacher_document, other_document])
        first = _synchronizer(store, shared=shared, tab_id="t1")
        second = _synchronizer(store, shared=shared, tab_id="t1")

        async with first, second:
            await second.identity.sign_in(ANA)
            await first.identity.sign_in(BEN)

            # second window rewrites the shared t1 entry with Ana
            assert await second.refresh() is True

            assert first.snapshot.user.email == "ben@school.org"
            assert first.snapshot.state is SyncState.READY
            assert second.snapshot.user.email == "ana@school.org"

    @pytest.mark.asyncio
    async def test_other_tab_id_does_not_change_profile(self, teacher_document, other_document):
        shared = SharedStorage()
        store = FakeDocumentStore([teacher_document, other_document])
        mine = _synchronizer(store, shared=shared, tab_id="t1")
        theirs = _synchronizer(store, shared=shared, tab_id="t2")

        async with mine, theirs:
            await mine.identity.sign_in(ANA)
            before = mine.snapshot.user
            await theirs.identity.sign_in(BEN)

            assert mine.snapshot.user == before

    @pytest.mark.asyncio
    async def test_event_for_other_tab_only_is_ignored(self, teacher_document):
        store = FakeDocumentStore([teacher_document])
        async with _synchronizer(store) as sync:
            await sync.identity.sign_in(ANA)
            before = sync.snapshot.user

            payload = json.dumps([{"tabId": "t9", "user": {"name": "Intruder", "email": "x@y.z"}}])
            await sync.on_storage_event(StorageEvent("multitab_sessions", None, payload, "w9"))
            assert sync.snapshot.user == before

    @pytest.mark.asyncio
    async def test_malformed_or_unrelated_events_are_ignored(self, teacher_document):
        store = FakeDocumentStore([teacher_document])
        async with _synchronizer(store) as sync:
            await sync.identity.sign_in(ANA)
            before = sync.snapshot.user

            await sync.on_storage_event(StorageEvent("multitab_sessions", None, "{oops", "w9"))
            await sync.on_storage_event(StorageEvent("multitab_sessions", "x", None, "w9"))
            await sync.on_storage_event(StorageEvent("other_key", None, "[]", "w9"))
            assert sync.snapshot.user == before

    @pytest.mark.asyncio
    async def test_events_ignored_while_signed_out(self):
        async with _synchronizer(FakeDocumentStore()) as sync:
            payload = json.dumps([{"tabId": "t1", "user": {"name": "A", "email": "a@x.com"}}])
            await sync.on_storage_event(StorageEvent("multitab_sessions", None, payload, "w9"))
            assert sync.snapshot.user is None


class TestLifecycle:
    """Tests for start/stop teardown."""

    @pytest.mark.asyncio
    async def test_stop_unsubscribes_from_identity(self, teacher_document):
        store = FakeDocumentStore([teacher_document])
        sync = _synchronizer(store)
        await sync.start()
        assert sync.running
        await sync.stop()
        assert not sync.running

        await sync.identity.sign_in(ANA)
        assert store.calls == 0
        assert sync.snapshot.state is SyncState.SIGNED_OUT

    @pytest.mark.asyncio
    async def test_stop_ends_timer(self, teacher_document):
        store = FakeDocumentStore([teacher_document])
        config = SyncConfig(refresh_interval=0.01)
        sync = _synchronizer(store, config=config)
        await sync.start()
        await sync.identity.sign_in(ANA)
        await sync.stop()

        calls = store.calls
        await asyncio.sleep(0.05)
        assert store.calls == calls

    @pytest.mark.asyncio
    async def test_start_twice_subscribes_once(self, teacher_document):
        store = FakeDocumentStore([teacher_document])
        sync = _synchronizer(store)
        await sync.start()
        await sync.start()
        await sync.identity.sign_in(ANA)
        await sync.stop()
        assert store.calls == 1

    @pytest.mark.asyncio
    async def test_snapshot_listeners(self, teacher_document):
        store = FakeDocumentStore([teacher_document])
        async with _synchronizer(store) as sync:
            states = []
            unsubscribe = sync.subscribe(lambda s: states.append(s.state))
            await sync.identity.sign_in(ANA)
            unsubscribe()
            await sync.identity.sign_out()

        assert states == [SyncState.LOADING, SyncState.READY]

    @pytest.mark.asyncio
    async def test_timer_survives_failing_tick(self, teacher_document):
        store = FakeDocumentStore([teacher_document])
        config = SyncConfig(refresh_interval=0.01)
        sync = _synchronizer(store, config=config)
        await sync.start()
        await sync.identity.sign_in(ANA)

        store.error = RuntimeError("unexpected")
        await asyncio.sleep(0.05)
        store.error = None
        store.documents = [make_user_document(name="Ana Recovered", email="ana@school.org")]
        await asyncio.sleep(0.1)

        assert sync.snapshot.user.name == "Ana Recovered"
        await sync.stop()
        assert not sync.running

    @pytest.mark.asyncio
    async def test_no_fetch_after_stop(self, teacher_document):
        store = FakeDocumentStore([teacher_document])
        sync = _synchronizer(store)
        await sync.start()
        await sync.identity.sign_in(ANA)
        await sync.stop()
        calls = store.calls

        await sync.set_visibility(False)
        await sync.set_visibility(True)
        assert await sync.refresh() is False
        assert store.calls == calls
