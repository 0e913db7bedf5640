"""File management service: authorized entry points over the tree, storage and uploads"""
import io
import re
import time
import zipfile
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from projectfiles.core.exceptions import (
    FileManagerError,
    InvalidOperationError,
    NotFoundError,
)
from projectfiles.models import FileNode, NodeKind
from projectfiles.schemas import NodeResponse
from projectfiles.services.cache_service import CacheService
from projectfiles.services.classifier import AutoSortClassifier
from projectfiles.services.move_coordinator import DragCoordinator
from projectfiles.services.project_service import ProjectService, purge_contents
from projectfiles.services.search_service import SearchFilters, search_nodes
from projectfiles.services.storage_service import StorageService
from projectfiles.services.tree_store import TreeStore
from projectfiles.services.upload_service import ChunkAck, ChunkMetadata, ChunkedUploadManager
from projectfiles.services.websocket_manager import WebSocketManager, ws_manager
from projectfiles.utils.path_utils import generate_object_path
from projectfiles.utils.logger import get_logger

logger = get_logger(__name__)


class FileService:
    """
    Service for file operations.

    Every public method checks that the caller owns the project before it
    reads or changes anything.
    """

    def __init__(
        self,
        tree_store: TreeStore,
        storage: StorageService,
        uploads: Optional[ChunkedUploadManager] = None,
        cache: Optional[CacheService] = None,
        notifier: WebSocketManager = ws_manager,
    ):
        self.tree_store = tree_store
        self.storage = storage
        self.uploads = uploads
        self.cache = cache or CacheService()
        self.notifier = notifier
        self.projects = ProjectService(tree_store, storage)
        self.classifier = AutoSortClassifier(tree_store)

    def _authorize(self, project_id: str, user_id: str):
        return self.projects.get_owned_project(project_id, user_id)

    async def _changed(self, project_id: str) -> None:
        await self.cache.invalidate_listing_cache(project_id)

    # Listing and search

    async def snapshot(self, project_id: str) -> list:
        """All nodes of a project, served from the listing cache when possible"""
        cached = await self.cache.get_listing_cache(project_id)
        if cached is not None:
            return [NodeResponse.model_validate(row) for row in cached]

        version = await self.cache.get_listing_version(project_id)
        nodes = self.tree_store.list_by_project(project_id)
        rows = [NodeResponse.model_validate(n).model_dump(mode="json") for n in nodes]
        await self.cache.set_listing_cache(project_id, rows, version)
        return nodes

    async def list_nodes(self, project_id: str, user_id: str, parent_id: Optional[str] = None) -> list:
        """Children of parent_id, or every node of the project when parent_id is None"""
        self._authorize(project_id, user_id)
        if parent_id:
            return self.tree_store.list_children(project_id, parent_id)
        return await self.snapshot(project_id)

    async def search(self, project_id: str, user_id: str, filters: SearchFilters) -> list:
        self._authorize(project_id, user_id)
        nodes = await self.snapshot(project_id)
        results = search_nodes(nodes, filters)
        logger.info(f"Search in project {project_id} returned {len(results)} of {len(nodes)} node(s)")
        return results

    def get_node(self, project_id: str, user_id: str, node_id: str) -> FileNode:
        self._authorize(project_id, user_id)
        return self.tree_store.get_in_project(project_id, node_id)

    def get_breadcrumb(self, project_id: str, user_id: str, node_id: str) -> List[FileNode]:
        """Nodes from the project root down to node_id"""
        self._authorize(project_id, user_id)
        self.tree_store.get_in_project(project_id, node_id)
        return self.tree_store.index(project_id).breadcrumb(node_id)

    # Tree mutations

    async def create_folder(self, project_id: str, user_id: str, name: str, parent_id: Optional[str] = None) -> FileNode:
        self._authorize(project_id, user_id)
        folder = self.tree_store.create(project_id, name, NodeKind.FOLDER, parent_id=parent_id)
        await self._changed(project_id)
        return folder

    async def move_node(self, project_id: str, user_id: str, node_id: str, new_parent_id: Optional[str]) -> FileNode:
        self._authorize(project_id, user_id)
        node = self.tree_store.move(project_id, node_id, new_parent_id)
        await self._changed(project_id)
        return node

    async def update_node(self, project_id: str, user_id: str, node_id: str, **changes) -> FileNode:
        """Rename a node or change its description/tags"""
        self._authorize(project_id, user_id)
        changes = {k: v for k, v in changes.items() if v is not None}
        node = self.tree_store.update(project_id, node_id, **changes)
        await self._changed(project_id)
        return node

    async def delete_node(self, project_id: str, user_id: str, node_id: str) -> List[str]:
        """Delete a node, its descendants and all of their stored content"""
        self._authorize(project_id, user_id)
        subtree = self.tree_store.subtree(project_id, node_id)
        await purge_contents(self.storage, subtree)
        deleted = self.tree_store.delete(project_id, node_id)
        await self._changed(project_id)
        return deleted

    def drag_coordinator(self, project_id: str, user_id: str) -> DragCoordinator:
        """A drag/drop controller over the project's current tree"""
        self._authorize(project_id, user_id)

        async def mover(node_id: str, target_id: Optional[str]):
            return await self.move_node(project_id, user_id, node_id, target_id)

        return DragCoordinator(self.tree_store.list_by_project(project_id), mover)

    # Uploads and downloads

    def _resolve_upload_parent(self, project_id: str, file_name: str, mime_type: Optional[str], parent_id: Optional[str]) -> Optional[str]:
        if parent_id:
            self.tree_store.get_folder(project_id, parent_id)
            return parent_id
        return self.classifier.classify_target(project_id, file_name, mime_type)

    async def upload_file(
        self,
        project_id: str,
        user_id: str,
        file_name: str,
        data: bytes,
        mime_type: Optional[str] = None,
        parent_id: Optional[str] = None,
        description: Optional[str] = None,
        tags: Optional[str] = None,
    ) -> FileNode:
        """Store a whole file in one request and record it in the tree"""
        self._authorize(project_id, user_id)
        if not file_name or not file_name.strip():
            raise InvalidOperationError("File name must not be empty")

        target = self._resolve_upload_parent(project_id, file_name, mime_type, parent_id)
        object_path = generate_object_path(user_id, project_id, file_name, target)
        await self.storage.put_object(object_path, data, mime_type)

        try:
            node = self.tree_store.create(
                project_id,
                file_name,
                NodeKind.FILE,
                parent_id=target,
                object_path=object_path,
                size=len(data),
                mime_type=mime_type,
                description=description,
                tags=tags,
            )
        except Exception:
            # No node will reference the stored object
            await self.storage.delete_object(object_path)
            raise

        await self._changed(project_id)
        return node

    async def request_upload_url(
        self,
        project_id: str,
        user_id: str,
        file_name: str,
        content_type: str,
        size: int = 0,
        parent_id: Optional[str] = None,
        description: Optional[str] = None,
        tags: Optional[str] = None,
    ) -> Tuple[FileNode, str]:
        """Create the file node and a pre-signed URL the client uploads the bytes to"""
        self._authorize(project_id, user_id)
        target = self._resolve_upload_parent(project_id, file_name, content_type, parent_id)
        object_path = generate_object_path(user_id, project_id, file_name, target)
        url = await self.storage.presign_upload(object_path, content_type)

        node = self.tree_store.create(
            project_id,
            file_name,
            NodeKind.FILE,
            parent_id=target,
            object_path=object_path,
            size=size,
            mime_type=content_type,
            description=description,
            tags=tags,
        )
        await self._changed(project_id)
        return node, url

    async def receive_chunk(
        self,
        user_id: str,
        metadata: ChunkMetadata,
        data: bytes,
        session_id: Optional[str] = None,
        client_id: Optional[str] = None,
    ) -> ChunkAck:
        """Feed one chunk of a chunked upload, pushing progress to client_id"""
        if self.uploads is None:
            raise InvalidOperationError("Chunked uploads are not enabled")
        self._authorize(metadata.project_id, user_id)

        try:
            ack = await self.uploads.receive_chunk(
                self.tree_store, user_id, metadata, data,
                session_id=session_id, classifier=self.classifier,
            )
        except FileManagerError as e:
            await self.notifier.send_error(client_id, e.message, e.error_class)
            raise

        progress = int(ack.received_chunks / ack.total_chunks * 100)
        if ack.complete:
            await self._changed(metadata.project_id)
            await self.notifier.send_complete(
                client_id,
                f"Upload complete: {metadata.file_name}",
                {"node_id": ack.node_id, "session_id": ack.session_id},
            )
        else:
            if metadata.chunk_index == 0:
                await self._changed(metadata.project_id)
            await self.notifier.send_progress(
                client_id,
                f"Uploaded chunk {ack.received_chunks}/{ack.total_chunks}: {metadata.file_name}",
                progress,
            )
        return ack

    async def get_download_url(self, project_id: str, user_id: str, node_id: str) -> Tuple[FileNode, str]:
        self._authorize(project_id, user_id)
        node = self.tree_store.get_in_project(project_id, node_id)
        if node.kind != NodeKind.FILE:
            raise InvalidOperationError("Folders cannot be downloaded")
        if not node.object_path:
            raise NotFoundError("File has no storage path")
        url = await self.storage.presign_download(node.object_path, file_name=node.name)
        return node, url

    async def download_file(self, project_id: str, user_id: str, node_id: str) -> Tuple[FileNode, bytes]:
        """Fetch a file's content through the service instead of a pre-signed URL"""
        self._authorize(project_id, user_id)
        node = self.tree_store.get_in_project(project_id, node_id)
        if node.kind != NodeKind.FILE or not node.object_path:
            raise InvalidOperationError("This item cannot be downloaded")
        return node, await self.storage.get_object(node.object_path)

    async def download_archive(self, project_id: str, user_id: str, folder_id: Optional[str] = None) -> Tuple[str, bytes]:
        """
        Zip every stored file of a project, or of one folder's subtree.

        Entry names are display paths, so the archive mirrors the tree. For a
        folder the paths start at that folder's name. Files whose object is
        missing from storage are skipped.

        Returns:
            (archive file name, zip bytes)
        """
        project = self._authorize(project_id, user_id)
        tree = self.tree_store.index(project_id)

        prefix = ""
        if folder_id:
            folder = self.tree_store.get_folder(project_id, folder_id)
            candidates = tree.descendant_ids(folder_id)
            # Everything above the folder itself
            prefix = tree.path(folder_id)[: -len(folder.name)]
            label = folder.name
        else:
            candidates = list(tree.nodes)
            label = project.name

        files = [
            tree.nodes[i] for i in candidates
            if tree.nodes[i].kind == NodeKind.FILE and tree.nodes[i].object_path
        ]
        if not files:
            raise NotFoundError("No files with stored content to download")

        buffer = io.BytesIO()
        added = 0
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for node in sorted(files, key=lambda n: tree.path(n.id)):
                try:
                    data = await self.storage.get_object(node.object_path)
                except NotFoundError:
                    logger.warning(f"Skipping {node.id} in archive: object {node.object_path} is missing")
                    continue
                archive.writestr(tree.path(node.id)[len(prefix):], data)
                added += 1

        if added == 0:
            raise NotFoundError("None of the files have stored content")

        archive_name = f"{re.sub(r'[^a-zA-Z0-9]', '_', label)}-{int(time.time() * 1000)}.zip"
        logger.info(f"Built archive {archive_name} with {added} of {len(files)} file(s) from project {project_id}")
        return archive_name, buffer.getvalue()

    # Maintenance

    async def migrate_legacy_paths(self, project_id: str, user_id: str) -> Dict:
        """Assign object paths to file nodes created before content went to object storage"""
        project = self._authorize(project_id, user_id)
        files = [n for n in self.tree_store.list_by_project(project_id) if n.kind == NodeKind.FILE]
        to_migrate = [n for n in files if not n.object_path]
        logger.info(f"Found {len(to_migrate)} of {len(files)} file(s) to migrate in project {project_id}")

        results = []
        for node in to_migrate:
            object_path = generate_object_path(project.owner_id, project_id, node.name, node.parent_id)
            try:
                self.tree_store.set_object_path(project_id, node.id, object_path)
                results.append({
                    "file_id": node.id,
                    "file_name": node.name,
                    "status": "migrated",
                    "object_path": object_path,
                })
            except FileManagerError as e:
                logger.error(f"Error migrating file {node.id}: {e.message}")
                results.append({
                    "file_id": node.id,
                    "file_name": node.name,
                    "status": "error",
                    "error": e.message,
                })

        if to_migrate:
            await self._changed(project_id)
        migrated = sum(1 for r in results if r["status"] == "migrated")
        return {
            "migrated": migrated,
            "failed": len(results) - migrated,
            "total": len(files),
            "results": results,
        }

    async def find_orphaned_objects(self, project_id: str, user_id: str, delete: bool = False) -> List[str]:
        """Stored objects under the project's prefix that no node references"""
        project = self._authorize(project_id, user_id)
        referenced = {
            n.object_path for n in self.tree_store.list_by_project(project_id) if n.object_path
        }
        keys = await self.storage.list_keys(f"{project.owner_id}/{project_id}/")
        orphaned = [key for key in keys if key not in referenced]
        if delete:
            for key in orphaned:
                await self.storage.delete_object(key)
            logger.info(f"Deleted {len(orphaned)} orphaned object(s) in project {project_id}")
        return orphaned

    async def reap_abandoned_uploads(self) -> int:
        """
        Drop idle upload sessions and the placeholder nodes they created.

        A session whose placeholder cannot be deleted is requeued so the next
        sweep tries again. Returns the number of sessions dropped for good.
        """
        if self.uploads is None:
            return 0
        reaped = 0
        for session in await self.uploads.reap_expired():
            try:
                self.tree_store.delete(session.project_id, session.node_id)
            except NotFoundError:
                logger.debug(f"Placeholder {session.node_id} for {session.session_id} already gone")
            except (FileManagerError, SQLAlchemyError) as e:
                self.tree_store.db.rollback()
                logger.error(f"Could not remove placeholder {session.node_id} of {session.session_id}: {e}")
                await self.uploads.requeue(session)
                continue
            else:
                await self._changed(session.project_id)
            reaped += 1
        return reaped
