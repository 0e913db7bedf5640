"""Tree store: structural operations over a project's file/folder nodes"""
import threading
from contextlib import contextmanager
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from projectfiles.core.exceptions import (
    InvalidOperationError,
    InvalidStateError,
    NotFoundError,
    StorageFailureError,
)
from projectfiles.models import FileNode, NodeKind, Project, utcnow
from projectfiles.utils.tree import TreeIndex
from projectfiles.utils.logger import get_logger

logger = get_logger(__name__)


class ProjectLocks:
    """Process-wide registry of one re-entrant lock per project"""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    def get(self, project_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(project_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[project_id] = lock
            return lock

    def discard(self, project_id: str) -> None:
        with self._guard:
            self._locks.pop(project_id, None)

    @contextmanager
    def hold(self, project_id: str):
        lock = self.get(project_id)
        with lock:
            yield


# Global lock registry shared by every TreeStore in this process
project_locks = ProjectLocks()


class TreeStore:
    """
    CRUD and structural operations on FileNode rows.

    Every method is scoped to a project id; a node that belongs to another
    project is reported as missing. Create, move and delete run under the
    project's lock and re-read the tree inside the same transaction, with the
    project row locked FOR UPDATE on databases that support it.
    """

    def __init__(self, db: Session, locks: ProjectLocks = project_locks):
        self.db = db
        self.locks = locks

    # Reads

    def get_project(self, project_id: str) -> Project:
        project = self.db.get(Project, project_id)
        if project is None:
            raise NotFoundError(f"Project not found: {project_id}")
        return project

    def get(self, node_id: str) -> Optional[FileNode]:
        return self.db.get(FileNode, node_id)

    def get_in_project(self, project_id: str, node_id: str) -> FileNode:
        node = self.get(node_id)
        if node is None or node.project_id != project_id:
            raise NotFoundError(f"File not found: {node_id}")
        return node

    def list_by_project(self, project_id: str) -> List[FileNode]:
        return (
            self.db.query(FileNode)
            .filter(FileNode.project_id == project_id)
            .order_by(FileNode.name)
            .all()
        )

    def list_children(self, project_id: str, parent_id: Optional[str]) -> List[FileNode]:
        query = self.db.query(FileNode).filter(FileNode.project_id == project_id)
        if parent_id:
            self.get_folder(project_id, parent_id)
            query = query.filter(FileNode.parent_id == parent_id)
        else:
            query = query.filter(FileNode.parent_id.is_(None))
        return query.order_by(FileNode.name).all()

    def system_folders(self, project_id: str) -> List[FileNode]:
        return (
            self.db.query(FileNode)
            .filter(
                FileNode.project_id == project_id,
                FileNode.kind == NodeKind.FOLDER,
                FileNode.is_system_folder.is_(True),
            )
            .all()
        )

    def index(self, project_id: str) -> TreeIndex:
        return TreeIndex(self.list_by_project(project_id))

    def subtree(self, project_id: str, node_id: str) -> List[FileNode]:
        """The node followed by all of its descendants"""
        node = self.get_in_project(project_id, node_id)
        tree = self.index(project_id)
        return [node] + [tree.nodes[i] for i in tree.descendant_ids(node_id)]

    # Mutations

    def create(
        self,
        project_id: str,
        name: str,
        kind: NodeKind,
        parent_id: Optional[str] = None,
        **fields,
    ) -> FileNode:
        """Insert a node; the parent must be a folder of the same project"""
        if not name or not name.strip():
            raise InvalidOperationError("Name must not be empty")

        with self.locks.hold(project_id):
            self._lock_project_row(project_id)
            if parent_id:
                self.get_folder(project_id, parent_id)

            now = utcnow()
            node = FileNode(
                project_id=project_id,
                name=name.strip(),
                kind=kind,
                parent_id=parent_id or None,
                created_at=now,
                updated_at=now,
                **fields,
            )
            self.db.add(node)
            self.commit()
            self.db.refresh(node)

        logger.info(f"Created {kind.value} '{node.name}' ({node.id}) in project {project_id}")
        return node

    def move(self, project_id: str, node_id: str, new_parent_id: Optional[str]) -> FileNode:
        """
        Reparent a node.

        Moving onto the current parent is a no-op and leaves updated_at alone.
        """
        new_parent_id = new_parent_id or None

        with self.locks.hold(project_id):
            self._lock_project_row(project_id)
            node = self.get_in_project(project_id, node_id)

            if new_parent_id == node_id:
                raise InvalidOperationError("Cannot move a folder into itself")

            if new_parent_id:
                self.get_folder(project_id, new_parent_id)

            if node.parent_id == new_parent_id:
                logger.debug(f"Move of {node_id} is a no-op, already under {new_parent_id}")
                return node

            if new_parent_id and self._is_ancestor(project_id, node_id, new_parent_id):
                raise InvalidOperationError("Cannot move a folder into one of its own subfolders")

            old_parent_id = node.parent_id
            node.parent_id = new_parent_id
            node.updated_at = utcnow()
            self.commit()
            self.db.refresh(node)

        logger.info(f"Moved {node_id} from {old_parent_id or 'root'} to {new_parent_id or 'root'}")
        return node

    def update(self, project_id: str, node_id: str, **changes) -> FileNode:
        """Set plain metadata fields; updated_at moves only if a value changed"""
        allowed = {"name", "description", "tags", "object_path", "size", "mime_type", "is_system_folder"}
        unknown = set(changes) - allowed
        if unknown:
            raise InvalidOperationError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        if "name" in changes and (not changes["name"] or not changes["name"].strip()):
            raise InvalidOperationError("Name must not be empty")

        with self.locks.hold(project_id):
            node = self.get_in_project(project_id, node_id)
            changed = False
            for field, value in changes.items():
                if field == "name" and value is not None:
                    value = value.strip()
                if getattr(node, field) != value:
                    setattr(node, field, value)
                    changed = True
            if changed:
                node.updated_at = utcnow()
                self.commit()
                self.db.refresh(node)
        return node

    def set_object_path(self, project_id: str, node_id: str, object_path: str) -> FileNode:
        return self.update(project_id, node_id, object_path=object_path)

    def set_size(self, project_id: str, node_id: str, size: int) -> FileNode:
        return self.update(project_id, node_id, size=size)

    def delete(self, project_id: str, node_id: str) -> List[str]:
        """
        Delete a node and its whole subtree.

        Returns the ids removed. Object content is not touched here; callers
        delete it before calling this.
        """
        with self.locks.hold(project_id):
            self._lock_project_row(project_id)
            self.get_in_project(project_id, node_id)
            tree = self.index(project_id)
            ids = [node_id] + tree.descendant_ids(node_id)

            (
                self.db.query(FileNode)
                .filter(FileNode.project_id == project_id, FileNode.id.in_(ids))
                .delete(synchronize_session=False)
            )
            self.commit()
            self.db.expire_all()

        logger.info(f"Deleted {len(ids)} node(s) rooted at {node_id} in project {project_id}")
        return ids

    def delete_project(self, project_id: str) -> int:
        """Delete every node of a project and then the project itself"""
        with self.locks.hold(project_id):
            project = self._lock_project_row(project_id)
            count = (
                self.db.query(FileNode)
                .filter(FileNode.project_id == project_id)
                .delete(synchronize_session=False)
            )
            self.db.delete(project)
            self.commit()
            self.db.expire_all()
        self.locks.discard(project_id)
        logger.info(f"Deleted project {project_id} with {count} node(s)")
        return count

    # Helpers

    def _lock_project_row(self, project_id: str) -> Project:
        project = (
            self.db.query(Project)
            .filter(Project.id == project_id)
            .with_for_update()
            .first()
        )
        if project is None:
            raise NotFoundError(f"Project not found: {project_id}")
        return project

    def get_folder(self, project_id: str, parent_id: str) -> FileNode:
        parent = self.get(parent_id)
        if parent is None:
            raise NotFoundError(f"Parent folder not found: {parent_id}")
        if parent.project_id != project_id:
            raise InvalidOperationError("Target folder does not belong to this project")
        if parent.kind != NodeKind.FOLDER:
            raise InvalidOperationError("Target is not a folder")
        return parent

    def _is_ancestor(self, project_id: str, ancestor_id: str, node_id: str) -> bool:
        """
        Walk up from node_id looking for ancestor_id.

        The walk is bounded by the project's node count; exceeding it means
        the stored tree already contains a cycle.
        """
        parents = dict(
            self.db.query(FileNode.id, FileNode.parent_id)
            .filter(FileNode.project_id == project_id)
            .all()
        )
        current = node_id
        for _ in range(len(parents) + 1):
            if current is None:
                return False
            if current == ancestor_id:
                return True
            current = parents.get(current)
        raise InvalidStateError(f"Parent chain of {node_id} does not terminate")

    def commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Metadata store commit failed: {e}")
            raise StorageFailureError(f"Metadata store error: {str(e)}")
