"""Shared dependencies for FastAPI routes"""
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from projectfiles.core.config import Settings
from projectfiles.core.exceptions import UnauthorizedError
from projectfiles.database import get_db
from projectfiles.services.cache_service import CacheService, get_cache_service
from projectfiles.services.file_service import FileService
from projectfiles.services.project_service import ProjectService
from projectfiles.services.storage_service import StorageService, get_storage_service
from projectfiles.services.tree_store import TreeStore
from projectfiles.services.upload_service import ChunkedUploadManager


@lru_cache()
def get_settings() -> Settings:
    """
    Dependency to get application settings
    Use @lru_cache() to create settings only once

    Usage in routes:
        @router.get("/example")
        def example(settings: Settings = Depends(get_settings)):
            ...
    """
    return Settings()


def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """
    The authenticated caller, as forwarded by the auth gateway in X-User-Id.
    Requests without it are rejected.
    """
    if not x_user_id or not x_user_id.strip():
        raise UnauthorizedError("You must be logged in to access project files")
    return x_user_id.strip()


def get_storage() -> StorageService:
    return get_storage_service()


@lru_cache()
def get_upload_manager() -> ChunkedUploadManager:
    """Single in-process registry of chunked upload sessions"""
    return ChunkedUploadManager(get_storage_service())


def get_tree_store(db: Session = Depends(get_db)) -> TreeStore:
    return TreeStore(db)


def get_project_service(
    tree_store: TreeStore = Depends(get_tree_store),
    storage: StorageService = Depends(get_storage),
) -> ProjectService:
    return ProjectService(tree_store, storage)


async def get_file_service(
    tree_store: TreeStore = Depends(get_tree_store),
    storage: StorageService = Depends(get_storage),
    uploads: ChunkedUploadManager = Depends(get_upload_manager),
) -> FileService:
    """Dependency to get file service"""
    cache: CacheService = await get_cache_service()
    return FileService(tree_store, storage, uploads=uploads, cache=cache)
