"""Tests for the authorized file service facade."""

import io
import zipfile
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from projectfiles.core.exceptions import (
    InvalidOperationError,
    NotFoundError,
    StorageFailureError,
    UnauthorizedError,
)
from projectfiles.models import FileNode, NodeKind
from projectfiles.services.cache_service import CacheService
from projectfiles.services.file_service import FileService
from projectfiles.services.move_coordinator import DropStatus
from projectfiles.services.search_service import SearchFilters
from projectfiles.services.upload_service import ChunkMetadata, ChunkedUploadManager

from tests.conftest import OWNER, STRANGER


@pytest.fixture
def notifier():
    mock = AsyncMock()
    return mock


@pytest.fixture
def uploads(storage):
    return ChunkedUploadManager(storage, session_ttl=60)


@pytest.fixture
def file_service(tree_store, storage, uploads, notifier):
    return FileService(tree_store, storage, uploads=uploads, cache=CacheService(), notifier=notifier)


class TestAuthorization:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "call",
        [
            lambda s, p: s.list_nodes(p, STRANGER),
            lambda s, p: s.create_folder(p, STRANGER, "Sneaky"),
            lambda s, p: s.upload_file(p, STRANGER, "a.txt", b"a"),
            lambda s, p: s.request_upload_url(p, STRANGER, "a.txt", "text/plain"),
            lambda s, p: s.search(p, STRANGER, SearchFilters(query="a")),
            lambda s, p: s.migrate_legacy_paths(p, STRANGER),
            lambda s, p: s.find_orphaned_objects(p, STRANGER),
            lambda s, p: s.receive_chunk(STRANGER, ChunkMetadata(p, "a.txt", 1, 0, 1), b"a"),
        ],
    )
    async def test_non_owner_is_rejected(self, file_service, project, storage, call):
        with pytest.raises(UnauthorizedError):
            await call(file_service, project.id)
        assert storage.objects == {}

    @pytest.mark.asyncio
    async def test_non_owner_cannot_move_or_delete(self, file_service, project, system_folders, tree_store):
        design = system_folders["Design"]
        with pytest.raises(UnauthorizedError):
            await file_service.move_node(project.id, STRANGER, design, system_folders["Print"])
        with pytest.raises(UnauthorizedError):
            await file_service.delete_node(project.id, STRANGER, design)
        assert tree_store.get(design).parent_id is None

    @pytest.mark.asyncio
    async def test_empty_user_fails_closed(self, file_service, project):
        with pytest.raises(UnauthorizedError):
            await file_service.list_nodes(project.id, "")

    @pytest.mark.asyncio
    async def test_unknown_project(self, file_service):
        with pytest.raises(NotFoundError):
            await file_service.list_nodes("missing", OWNER)


class TestDirectUpload:
    @pytest.mark.asyncio
    async def test_upload_is_auto_sorted_and_stored(self, file_service, project, storage, system_folders):
        node = await file_service.upload_file(project.id, OWNER, "Q1 Brief.pdf", b"%PDF", "application/pdf")

        assert node.parent_id == system_folders["Documents"]
        assert node.size == 4
        assert storage.objects[node.object_path] == b"%PDF"

    @pytest.mark.asyncio
    async def test_explicit_parent_wins(self, file_service, project, system_folders):
        node = await file_service.upload_file(
            project.id, OWNER, "Q1 Brief.pdf", b"x", parent_id=system_folders["Print"],
        )
        assert node.parent_id == system_folders["Print"]

    @pytest.mark.asyncio
    async def test_bad_parent_stores_nothing(self, file_service, project, storage):
        with pytest.raises(NotFoundError):
            await file_service.upload_file(project.id, OWNER, "a.txt", b"x", parent_id="missing")
        assert storage.objects == {}

    @pytest.mark.asyncio
    async def test_storage_failure_creates_no_node(self, file_service, project, storage, tree_store):
        storage.fail_puts = True
        before = len(tree_store.list_by_project(project.id))

        with pytest.raises(StorageFailureError):
            await file_service.upload_file(project.id, OWNER, "a.txt", b"x")

        assert len(tree_store.list_by_project(project.id)) == before

    @pytest.mark.asyncio
    async def test_database_error_removes_stored_object(self, file_service, project, storage, tree_store, monkeypatch):
        def broken_create(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("connection reset"))

        monkeypatch.setattr(tree_store, "create", broken_create)

        with pytest.raises(OperationalError):
            await file_service.upload_file(project.id, OWNER, "a.txt", b"x")

        assert storage.objects == {}
        assert len(storage.deleted) == 1

    @pytest.mark.asyncio
    async def test_presigned_upload_creates_node(self, file_service, project, system_folders):
        node, url = await file_service.request_upload_url(
            project.id, OWNER, "brandmark.ai", "application/postscript", size=10,
        )
        assert node.parent_id == system_folders["Design"]
        assert url.startswith("https://storage.test/")
        assert node.object_path in url


class TestChunkedUpload:
    @pytest.mark.asyncio
    async def test_progress_and_completion_are_pushed(self, file_service, project, storage, notifier):
        first = await file_service.receive_chunk(
            OWNER, ChunkMetadata(project.id, "clip.mov", 4, 0, 2), b"ab", client_id="c1",
        )
        final = await file_service.receive_chunk(
            OWNER, ChunkMetadata(project.id, "clip.mov", 4, 1, 2), b"cd",
            session_id=first.session_id, client_id="c1",
        )

        assert final.complete
        notifier.send_progress.assert_awaited_once()
        assert notifier.send_progress.await_args.args[2] == 50
        notifier.send_complete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_errors_are_pushed(self, file_service, project, notifier):
        with pytest.raises(NotFoundError):
            await file_service.receive_chunk(
                OWNER, ChunkMetadata(project.id, "clip.mov", 4, 1, 2), b"cd",
                session_id="missing", client_id="c1",
            )
        notifier.send_error.assert_awaited_once()
        assert notifier.send_error.await_args.args[2] == "not_found"

    @pytest.mark.asyncio
    async def test_reaper_removes_placeholder_nodes(self, file_service, project, uploads, tree_store):
        ack = await file_service.receive_chunk(OWNER, ChunkMetadata(project.id, "big.zip", 4, 0, 2), b"ab")
        node_id = uploads.get(ack.session_id).node_id
        uploads.clock = lambda: uploads.get(ack.session_id).last_activity + 61

        assert await file_service.reap_abandoned_uploads() == 1
        assert tree_store.get(node_id) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        StorageFailureError("Metadata store error: database is locked"),
        OperationalError("SELECT", {}, Exception("connection reset")),
    ])
    async def test_failed_placeholder_delete_is_retried(self, file_service, project, uploads, tree_store, monkeypatch, error):
        acks = [
            await file_service.receive_chunk(OWNER, ChunkMetadata(project.id, name, 4, 0, 2), b"ab")
            for name in ("one.zip", "two.zip")
        ]
        node_ids = [uploads.get(a.session_id).node_id for a in acks]
        idle_since = max(uploads.get(a.session_id).last_activity for a in acks)
        uploads.clock = lambda: idle_since + 61

        real_delete = tree_store.delete
        calls = []

        def flaky_delete(project_id, node_id):
            calls.append(node_id)
            if len(calls) == 1:
                raise error
            return real_delete(project_id, node_id)

        monkeypatch.setattr(tree_store, "delete", flaky_delete)

        assert await file_service.reap_abandoned_uploads() == 1
        assert len(uploads) == 1
        assert sum(tree_store.get(n) is not None for n in node_ids) == 1

        assert await file_service.reap_abandoned_uploads() == 1
        assert len(uploads) == 0
        assert all(tree_store.get(n) is None for n in node_ids)


class TestTreeOperations:
    @pytest.mark.asyncio
    async def test_delete_folder_removes_stored_content(self, file_service, project, storage, tree_store):
        folder = await file_service.create_folder(project.id, OWNER, "Shoot")
        inner = await file_service.create_folder(project.id, OWNER, "Raw", parent_id=folder.id)
        photo = await file_service.upload_file(project.id, OWNER, "a.jpg", b"img", parent_id=inner.id)
        path = photo.object_path

        deleted = await file_service.delete_node(project.id, OWNER, folder.id)

        assert len(deleted) == 3
        assert path not in storage.objects
        assert path in storage.deleted

    @pytest.mark.asyncio
    async def test_failed_content_delete_keeps_rows(self, file_service, project, storage, tree_store):
        photo = await file_service.upload_file(project.id, OWNER, "a.jpg", b"img")
        storage.fail_deletes = True

        with pytest.raises(StorageFailureError):
            await file_service.delete_node(project.id, OWNER, photo.id)

        assert tree_store.get(photo.id) is not None

    @pytest.mark.asyncio
    async def test_update_ignores_missing_fields(self, file_service, project):
        node = await file_service.upload_file(project.id, OWNER, "a.jpg", b"img", description="first")
        updated = await file_service.update_node(project.id, OWNER, node.id, name="b.jpg", description=None)

        assert updated.name == "b.jpg"
        assert updated.description == "first"

    @pytest.mark.asyncio
    async def test_breadcrumb(self, file_service, project, system_folders):
        node = await file_service.upload_file(project.id, OWNER, "Q1 Brief.pdf", b"x")
        crumbs = file_service.get_breadcrumb(project.id, OWNER, node.id)
        assert [c.name for c in crumbs] == ["Documents", "Q1 Brief.pdf"]

    @pytest.mark.asyncio
    async def test_folder_has_no_download_url(self, file_service, project, system_folders):
        with pytest.raises(InvalidOperationError):
            await file_service.get_download_url(project.id, OWNER, system_folders["Design"])

    @pytest.mark.asyncio
    async def test_drag_coordinator_moves_through_store(self, file_service, project, system_folders, tree_store):
        node = await file_service.upload_file(project.id, OWNER, "Q1 Brief.pdf", b"x")
        coordinator = file_service.drag_coordinator(project.id, OWNER)
        coordinator.begin_drag(node.id)

        result = await coordinator.drop(system_folders["Print"])

        assert result.status == DropStatus.MOVED
        assert tree_store.get(node.id).parent_id == system_folders["Print"]


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_migrate_assigns_object_paths(self, file_service, project, tree_store):
        legacy = tree_store.create(project.id, "old.doc", NodeKind.FILE)

        report = await file_service.migrate_legacy_paths(project.id, OWNER)

        assert report["migrated"] == 1
        assert report["failed"] == 0
        assert tree_store.get(legacy.id).object_path.startswith(f"{OWNER}/{project.id}/")

    @pytest.mark.asyncio
    async def test_orphan_sweep(self, file_service, project, storage):
        kept = await file_service.upload_file(project.id, OWNER, "a.jpg", b"img")
        orphan = f"{OWNER}/{project.id}/123_lost.bin"
        storage.objects[orphan] = b"lost"

        assert await file_service.find_orphaned_objects(project.id, OWNER) == [orphan]
        assert orphan in storage.objects

        await file_service.find_orphaned_objects(project.id, OWNER, delete=True)
        assert orphan not in storage.objects
        assert kept.object_path in storage.objects

    @pytest.mark.asyncio
    async def test_delete_project(self, file_service, project, storage, db):
        await file_service.upload_file(project.id, OWNER, "a.jpg", b"img")
        project_id = project.id

        count = await file_service.projects.delete_project(project_id, OWNER)

        assert count == 5
        assert storage.objects == {}
        assert db.query(FileNode).filter(FileNode.project_id == project_id).count() == 0


class TestDownloads:
    @pytest.mark.asyncio
    async def test_download_file_returns_stored_bytes(self, file_service, project):
        node = await file_service.upload_file(project.id, OWNER, "Q1 Brief.pdf", b"%PDF-1.7")

        downloaded, content = await file_service.download_file(project.id, OWNER, node.id)

        assert downloaded.id == node.id
        assert content == b"%PDF-1.7"

    @pytest.mark.asyncio
    async def test_folders_cannot_be_downloaded_directly(self, file_service, project, system_folders):
        with pytest.raises(InvalidOperationError):
            await file_service.download_file(project.id, OWNER, system_folders["Print"])

    @pytest.mark.asyncio
    async def test_project_archive_mirrors_tree(self, file_service, project, system_folders, tree_store):
        shoot = await file_service.create_folder(project.id, OWNER, "Shoot", parent_id=system_folders["Assets"])
        await file_service.upload_file(project.id, OWNER, "Q1 Brief.pdf", b"brief")
        await file_service.upload_file(project.id, OWNER, "a.jpg", b"jpeg", parent_id=shoot.id)
        loose = await file_service.create_folder(project.id, OWNER, "Loose")
        await file_service.upload_file(project.id, OWNER, "notes.txt", b"root", parent_id=loose.id)
        tree_store.create(project.id, "legacy.doc", NodeKind.FILE)

        name, content = await file_service.download_archive(project.id, OWNER)

        assert name.startswith("Rebrand-") and name.endswith(".zip")
        with zipfile.ZipFile(io.BytesIO(content)) as archive:
            entries = {n: archive.read(n) for n in archive.namelist()}
        assert entries == {
            "Documents/Q1 Brief.pdf": b"brief",
            "Assets/Shoot/a.jpg": b"jpeg",
            "Loose/notes.txt": b"root",
        }

    @pytest.mark.asyncio
    async def test_folder_archive_starts_at_folder(self, file_service, project, system_folders, storage):
        shoot = await file_service.create_folder(project.id, OWNER, "Shoot", parent_id=system_folders["Assets"])
        kept = await file_service.upload_file(project.id, OWNER, "a.jpg", b"jpeg", parent_id=shoot.id)
        lost = await file_service.upload_file(project.id, OWNER, "b.jpg", b"gone", parent_id=shoot.id)
        await file_service.upload_file(project.id, OWNER, "Q1 Brief.pdf", b"brief")
        del storage.objects[lost.object_path]

        _, content = await file_service.download_archive(project.id, OWNER, folder_id=shoot.id)

        with zipfile.ZipFile(io.BytesIO(content)) as archive:
            assert archive.namelist() == ["Shoot/a.jpg"]
            assert archive.read("Shoot/a.jpg") == storage.objects[kept.object_path]

    @pytest.mark.asyncio
    async def test_archive_of_empty_project(self, file_service, project):
        with pytest.raises(NotFoundError):
            await file_service.download_archive(project.id, OWNER)

    @pytest.mark.asyncio
    async def test_archive_requires_ownership(self, file_service, project):
        with pytest.raises(UnauthorizedError):
            await file_service.download_archive(project.id, STRANGER)
