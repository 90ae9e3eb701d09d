"""Tests for local/server reconciliation — merge rules and local-first writes."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport

from draftdeck.errors import RemoteApiError, SyncError, ValidationError
from draftdeck.schemas.files import FileReference
from draftdeck.services.dashboard_api import DashboardApiClient
from draftdeck.services.local_mirror import LocalMirror
from draftdeck.services.reconciliation import (
    AddOutcome,
    UserFilesSync,
    combine_with_discovered,
    is_manual_entry,
    merge_references,
)


def _ref(key: str, **kw) -> FileReference:
    return FileReference(key=key, name=kw.pop("name", key), **kw)


def _keys(files) -> list[str]:
    return [f.key for f in files]


@pytest.fixture
def mirror(storage):
    return LocalMirror(storage)


@pytest.fixture
def fake_api():
    api = MagicMock(spec=DashboardApiClient)
    api.list_references = AsyncMock(return_value=[])
    api.add_reference = AsyncMock(return_value=True)
    api.remove_reference = AsyncMock(return_value=True)
    api.clear_references = AsyncMock(return_value=0)
    api.fetch_drafts = AsyncMock(return_value=[])
    api.verify_url = AsyncMock()
    return api


@pytest_asyncio.fixture
async def engine(mirror, fake_api):
    sync = UserFilesSync(mirror, fake_api, default_project_name="My Files", sync_log_size=5)
    yield sync
    await sync.close()


class TestMerge:
    def test_server_first_then_local_only(self):
        merged, local_only = merge_references(
            [_ref("L1"), _ref("S1", name="local copy")],
            [_ref("S1", name="server copy"), _ref("S2")],
        )
        assert _keys(merged) == ["S1", "S2", "L1"]
        assert merged[0].name == "server copy"
        assert _keys(local_only) == ["L1"]

    def test_merge_is_idempotent(self):
        local = [_ref("A"), _ref("B")]
        server = [_ref("B"), _ref("C")]
        once, _ = merge_references(local, server)
        twice, local_only = merge_references(once, server)
        assert _keys(twice) == _keys(once)
        assert _keys(local_only) == ["A"]

    def test_no_duplicate_keys(self):
        merged, _ = merge_references([_ref("A"), _ref("A")], [_ref("B"), _ref("B")])
        assert _keys(merged) == ["B", "A"]

    def test_combine_with_discovered(self):
        curated = [_ref("A"), _ref("K1", project_name="Website")]
        discovered = [_ref("K1", project_name="Other"), _ref("K2"), _ref("K2")]
        combined = combine_with_discovered(curated, discovered, "My Files")
        assert _keys(combined) == ["A", "K1", "K2"]
        assert combined[0].project_name == "My Files"
        assert combined[1].project_name == "Website"

    def test_manual_entry(self):
        assert is_manual_entry(_ref("A"), "My Files")
        assert is_manual_entry(_ref("A", project_name="My Files"), "My Files")
        assert not is_manual_entry(_ref("A", project_id="p1"), "My Files")
        assert not is_manual_entry(_ref("A", project_name="Website"), "My Files")


class TestLoad:
    def test_load_local_shows_mirror(self, mirror, engine):
        mirror.save([_ref("A")])
        assert _keys(engine.load_local()) == ["A"]
        assert engine.loading is False

    def test_load_local_empty_keeps_loading(self, engine):
        assert engine.load_local() == []
        assert engine.loading is True

    @pytest.mark.asyncio
    async def test_reconcile_pushes_local_only(self, mirror, fake_api, engine):
        mirror.save([_ref("A")])
        fake_api.list_references.return_value = [_ref("S")]
        files = await engine.open()
        await engine.wait_for_background()

        assert _keys(files) == ["S", "A"]
        assert _keys(mirror.load()) == ["S", "A"]
        pushed = fake_api.add_reference.await_args.args[0]
        assert pushed.key == "A"
        assert engine.loading is False
        assert engine.syncing is False

    @pytest.mark.asyncio
    async def test_server_failure_keeps_local(self, mirror, fake_api, engine):
        mirror.save([_ref("A")])
        fake_api.list_references.side_effect = RemoteApiError(502, "Bad Gateway")
        files = await engine.open()
        assert _keys(files) == ["A"]
        assert engine.last_sync_error is not None
        assert "Could not load files from server" in engine.sync_log[-1]


class TestMutations:
    @pytest.mark.asyncio
    async def test_add_is_local_first(self, mirror, fake_api, engine):
        fake_api.add_reference.side_effect = RemoteApiError(503, "Service Unavailable")
        assert engine.add_user_file(_ref("A")) is AddOutcome.ADDED
        # Visible and persisted before the push resolves
        assert _keys(engine.files) == ["A"]
        assert _keys(mirror.load()) == ["A"]

        await engine.wait_for_background()
        assert _keys(engine.files) == ["A"]
        assert "Could not sync" in engine.sync_log[-1]

    @pytest.mark.asyncio
    async def test_add_existing_key(self, fake_api, engine):
        engine.add_user_file(_ref("A"))
        await engine.wait_for_background()
        assert engine.add_user_file(_ref("A", name="again")) is AddOutcome.EXISTS
        assert len(engine.files) == 1
        assert fake_api.add_reference.await_count == 1

    @pytest.mark.asyncio
    async def test_add_defaults_project(self, engine):
        engine.add_user_file(_ref("A"))
        assert engine.files[0].project_name == "My Files"

    @pytest.mark.asyncio
    async def test_remove(self, mirror, fake_api, engine):
        engine.add_user_file(_ref("A"))
        engine.add_user_file(_ref("B"))
        assert engine.remove_user_file("A") is True
        assert engine.remove_user_file("A") is False
        assert _keys(mirror.load()) == ["B"]
        await engine.wait_for_background()
        fake_api.remove_reference.assert_awaited_with("A")

    @pytest.mark.asyncio
    async def test_clear(self, storage, fake_api, engine):
        engine.add_user_file(_ref("A"))
        assert engine.clear_all_files() == 1
        assert engine.files == []
        assert storage.get_item("draftdeck-user-files") is None
        await engine.wait_for_background()
        fake_api.clear_references.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_add_from_url(self, fake_api, engine):
        fake_api.verify_url.return_value = _ref("ABC123", name="Design System")
        outcome, ref = await engine.add_from_url(" https://www.figma.com/design/ABC123/x ")
        assert outcome is AddOutcome.ADDED
        assert ref.key == "ABC123"
        fake_api.verify_url.assert_awaited_with("https://www.figma.com/design/ABC123/x")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("url", ["", "   ", "https://example.com/foo"])
    async def test_add_from_bad_url(self, fake_api, engine, url):
        with pytest.raises(ValidationError):
            await engine.add_from_url(url)
        fake_api.verify_url.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sync_log_is_bounded(self, fake_api, engine):
        fake_api.add_reference.side_effect = RemoteApiError(503, "Service Unavailable")
        for i in range(8):
            engine.add_user_file(_ref(f"K{i}"))
        await engine.wait_for_background()
        assert len(engine.sync_log) == 5


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_combines(self, fake_api, engine):
        engine.add_user_file(_ref("A"))
        fake_api.fetch_drafts.return_value = [_ref("A"), _ref("K1", project_id="p1")]
        combined = await engine.refresh()
        assert _keys(combined) == ["A", "K1"]
        assert engine.last_sync_time is not None
        assert engine.sync_log[-1].endswith("Sync completed: 2 files")

    @pytest.mark.asyncio
    async def test_background_refresh_failure_is_logged(self, fake_api, engine):
        fake_api.fetch_drafts.side_effect = RemoteApiError(500, "Internal Server Error")
        await engine.refresh()
        assert engine.error_message is None
        assert "Auto-sync failed" in engine.sync_log[-1]

    @pytest.mark.asyncio
    async def test_manual_refresh_failure_raises(self, fake_api, engine):
        fake_api.fetch_drafts.side_effect = RemoteApiError(500, "Internal Server Error")
        with pytest.raises(RemoteApiError):
            await engine.refresh(show_loading=True)
        assert engine.error_message == "Remote API error: 500 Internal Server Error"
        assert engine.loading is False

    @pytest.mark.asyncio
    async def test_apply_thumbnail(self, mirror, engine):
        engine.add_user_file(_ref("K2", project_id="p1", project_name="Website"))
        assert _keys(engine.files_missing_thumbnails()) == ["K2"]
        assert engine.apply_thumbnail("K2", "https://img/K2.png")
        assert engine.files_missing_thumbnails() == []
        assert mirror.load()[0].thumbnail_url == "https://img/K2.png"
        assert not engine.apply_thumbnail("nope", "https://img/x.png")


class TestMutationDuringReconcile:
    """Removals made while the server list is loading must survive the merge."""

    @staticmethod
    def _hold_server_list(fake_api, server):
        release = asyncio.Event()

        async def list_references():
            await release.wait()
            return server

        fake_api.list_references.side_effect = list_references
        return release

    @pytest.mark.asyncio
    async def test_remove_is_not_undone(self, mirror, fake_api, engine):
        mirror.save([_ref("X"), _ref("Y")])
        engine.load_local()
        release = self._hold_server_list(fake_api, [_ref("X"), _ref("Y")])

        pending = asyncio.create_task(engine.reconcile())
        await asyncio.sleep(0)
        assert engine.remove_user_file("X") is True
        release.set()
        files = await pending
        await engine.wait_for_background()

        assert _keys(files) == ["Y"]
        assert _keys(mirror.load()) == ["Y"]
        fake_api.add_reference.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_clear_drops_server_snapshot(self, mirror, fake_api, engine):
        mirror.save([_ref("X")])
        engine.load_local()
        release = self._hold_server_list(fake_api, [_ref("X"), _ref("S")])

        pending = asyncio.create_task(engine.reconcile())
        await asyncio.sleep(0)
        engine.clear_all_files()
        engine.add_user_file(_ref("Z"))
        release.set()
        files = await pending
        await engine.wait_for_background()

        assert _keys(files) == ["Z"]
        assert _keys(mirror.load()) == ["Z"]

    @pytest.mark.asyncio
    async def test_readd_after_remove_is_kept(self, mirror, fake_api, engine):
        mirror.save([_ref("X")])
        engine.load_local()
        release = self._hold_server_list(fake_api, [_ref("X")])

        pending = asyncio.create_task(engine.reconcile())
        await asyncio.sleep(0)
        engine.remove_user_file("X")
        engine.add_user_file(_ref("X", name="again"))
        release.set()
        files = await pending

        assert _keys(files) == ["X"]

    @pytest.mark.asyncio
    async def test_tombstones_reset_after_reconcile(self, mirror, fake_api, engine):
        mirror.save([_ref("X")])
        engine.load_local()
        release = self._hold_server_list(fake_api, [_ref("X")])
        pending = asyncio.create_task(engine.reconcile())
        await asyncio.sleep(0)
        engine.remove_user_file("X")
        release.set()
        await pending

        # Another device re-added it; the next load must show it again
        fake_api.list_references.side_effect = None
        fake_api.list_references.return_value = [_ref("X")]
        assert _keys(await engine.reconcile()) == ["X"]


class TestClose:
    @pytest.mark.asyncio
    async def test_late_results_discarded(self, mirror, fake_api):
        sync = UserFilesSync(mirror, fake_api)
        fake_api.list_references.return_value = [_ref("S")]
        await sync.close()
        assert await sync.reconcile() == []
        assert sync.files == []
        assert not sync.apply_thumbnail("S", "https://img/S.png")
        fake_api.list_references.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_add_from_url_after_close_raises(self, mirror, fake_api):
        sync = UserFilesSync(mirror, fake_api)
        await sync.close()
        with pytest.raises(SyncError):
            await sync.add_from_url("https://www.figma.com/design/ABC123/x")
        fake_api.verify_url.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_close_during_verification_raises(self, mirror, fake_api):
        sync = UserFilesSync(mirror, fake_api)

        async def verify_then_close(url):
            await sync.close()
            return _ref("ABC123")

        fake_api.verify_url.side_effect = verify_then_close
        with pytest.raises(SyncError):
            await sync.add_from_url("https://www.figma.com/design/ABC123/x")
        assert sync.files == []


class TestAgainstServer:
    """Dashboard engine talking to the real app in-process."""

    @pytest.fixture
    def live_api(self, app):
        return DashboardApiClient(
            base_url="http://test", access_token="", transport=ASGITransport(app=app)
        )

    @pytest.mark.asyncio
    async def test_cold_start_repopulates_server(self, mirror, live_api):
        old = "2020-01-01T00:00:00+00:00"
        mirror.save([_ref("A", last_modified=old), _ref("B", last_modified=old)])
        sync = UserFilesSync(mirror, live_api)
        files = await sync.open()
        await sync.wait_for_background()
        await sync.close()

        assert _keys(files) == ["A", "B"]
        server = await live_api.list_references()
        assert sorted(_keys(server)) == ["A", "B"]
        for ref in server:
            assert ref.last_modified != old
            assert ref.last_modified > old

    @pytest.mark.asyncio
    async def test_remove_then_reload(self, storage, live_api):
        first = UserFilesSync(LocalMirror(storage), live_api)
        await first.open()
        first.add_user_file(_ref("A"))
        first.add_user_file(_ref("B"))
        await first.wait_for_background()
        first.remove_user_file("A")
        await first.wait_for_background()
        await first.close()

        second = UserFilesSync(LocalMirror(storage), live_api)
        files = await second.open()
        await second.close()
        assert _keys(files) == ["B"]

    @pytest.mark.asyncio
    async def test_refresh_with_discovery(self, mirror, live_api):
        sync = UserFilesSync(mirror, live_api)
        await sync.open()
        sync.add_user_file(_ref("ABC123", name="Design System"))
        combined = await sync.refresh()
        await sync.wait_for_background()
        await sync.close()
        assert _keys(combined) == ["ABC123", "K1", "K2", "K3"]
        assert combined[0].project_name == "My Files"
