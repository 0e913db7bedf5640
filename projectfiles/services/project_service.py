"""Project lifecycle: ownership checks, system folders and cascading deletion"""
from typing import Iterable, List, Optional

from projectfiles.core.config import settings
from projectfiles.core.exceptions import InvalidOperationError, UnauthorizedError
from projectfiles.models import FileNode, NodeKind, Project, utcnow
from projectfiles.services.storage_service import StorageService
from projectfiles.services.tree_store import TreeStore
from projectfiles.utils.logger import get_logger

logger = get_logger(__name__)


async def purge_contents(storage: Optional[StorageService], nodes: Iterable[FileNode]) -> int:
    """
    Delete the stored objects behind a set of nodes.

    Runs before the rows are removed; object deletion is idempotent so a
    retry after a partial failure is safe.
    """
    keys = [n.object_path for n in nodes if n.kind == NodeKind.FILE and n.object_path]
    if not keys:
        return 0
    if storage is None:
        raise InvalidOperationError("Storage is required to delete file content")
    for key in keys:
        await storage.delete_object(key)
    logger.info(f"Deleted {len(keys)} stored object(s)")
    return len(keys)


class ProjectService:
    """Service for project operations"""

    def __init__(self, tree_store: TreeStore, storage: Optional[StorageService] = None):
        self.tree_store = tree_store
        self.storage = storage

    @property
    def db(self):
        return self.tree_store.db

    def get_owned_project(self, project_id: str, user_id: str) -> Project:
        """Resolve a project and check the caller owns it; fails closed"""
        project = self.tree_store.get_project(project_id)
        if not user_id or project.owner_id != user_id:
            logger.warning(f"Unauthorized access attempt by {user_id} for project {project_id}")
            raise UnauthorizedError("Unauthorized to access this project")
        return project

    def list_projects(self, user_id: str) -> List[Project]:
        return (
            self.db.query(Project)
            .filter(Project.owner_id == user_id)
            .order_by(Project.created_at)
            .all()
        )

    def create_project(self, user_id: str, name: str, description: Optional[str] = None) -> Project:
        """Create a project and its default system folders"""
        if not user_id:
            raise UnauthorizedError("You must be logged in to create a project")
        if not name or not name.strip():
            raise InvalidOperationError("Project name must not be empty")

        now = utcnow()
        project = Project(
            owner_id=user_id,
            name=name.strip(),
            description=description,
            created_at=now,
            updated_at=now,
        )
        self.db.add(project)
        self.tree_store.commit()
        self.db.refresh(project)
        logger.info(f"Created project {project.id} for {user_id}")

        self.ensure_default_folders(project.id)
        return project

    def ensure_default_folders(self, project_id: str) -> List[FileNode]:
        """
        Make sure the four system folders exist at the project root.

        Existing root folders with a matching name are flagged as system
        folders instead of being duplicated.
        """
        existing = {
            n.name.lower(): n
            for n in self.tree_store.list_children(project_id, None)
            if n.kind == NodeKind.FOLDER
        }

        folders = []
        for folder_name in settings.SYSTEM_FOLDERS:
            folder = existing.get(folder_name.lower())
            if folder is None:
                folder = self.tree_store.create(
                    project_id, folder_name, NodeKind.FOLDER, is_system_folder=True
                )
                logger.info(f"Created missing folder '{folder_name}' for project {project_id}")
            elif not folder.is_system_folder:
                folder = self.tree_store.update(project_id, folder.id, is_system_folder=True)
                logger.info(f"Flagged folder {folder.id} as a system folder")
            folders.append(folder)
        return folders

    async def delete_project(self, project_id: str, user_id: str) -> int:
        """Delete a project with the same cascade as folder deletion"""
        self.get_owned_project(project_id, user_id)
        nodes = self.tree_store.list_by_project(project_id)
        await purge_contents(self.storage, nodes)
        return self.tree_store.delete_project(project_id)
