"""Storage maintenance routes: configuration check, legacy migration, orphan sweep"""
from fastapi import APIRouter, Depends, Query

from projectfiles.core.config import Settings
from projectfiles.core.dependencies import get_current_user_id, get_file_service, get_settings
from projectfiles.core.exceptions import ConfigurationError, StorageFailureError
from projectfiles.schemas import MigrationResponse, OrphanReport, StorageStatus
from projectfiles.services.file_service import FileService
from projectfiles.services.storage_service import get_storage_service
from projectfiles.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/storage", tags=["Storage"])


@router.get("/verify", response_model=StorageStatus)
async def verify_storage(
    user_id: str = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
):
    """
    Check that object storage is configured and reachable.
    Problems are reported in the body rather than as an error status.
    """
    backend = "s3" if settings.use_s3 else "local"
    missing = settings.missing_s3_settings if settings.use_s3 else []
    if missing:
        return {
            "storage": backend,
            "configured": False,
            "accessible": False,
            "missing": missing,
            "message": f"Storage configuration is incomplete. Missing: {', '.join(missing)}",
        }

    try:
        storage = get_storage_service()
        await storage.head_bucket()
    except ConfigurationError as e:
        return {"storage": backend, "configured": False, "accessible": False, "message": e.message}
    except StorageFailureError as e:
        logger.error(f"Storage verification failed: {e.message}")
        return {"storage": backend, "configured": True, "accessible": False, "message": e.message}

    logger.info(f"Storage verified by {user_id}: {storage.kind}")
    return {
        "storage": backend,
        "configured": True,
        "accessible": True,
        "message": f"{'S3' if settings.use_s3 else 'Local'} storage is properly configured",
    }


@router.post("/migrate", response_model=MigrationResponse)
async def migrate_files(
    project_id: str = Query(...),
    user_id: str = Depends(get_current_user_id),
    file_service: FileService = Depends(get_file_service),
):
    """Assign object paths to file nodes of a project that have none"""
    logger.info(f"User {user_id} migrating legacy files in project {project_id}")
    return await file_service.migrate_legacy_paths(project_id, user_id)


@router.post("/orphans", response_model=OrphanReport)
async def sweep_orphans(
    project_id: str = Query(...),
    delete: bool = False,
    user_id: str = Depends(get_current_user_id),
    file_service: FileService = Depends(get_file_service),
):
    """List stored objects no node references; delete them when delete=true"""
    orphaned = await file_service.find_orphaned_objects(project_id, user_id, delete=delete)
    return {"orphaned": orphaned, "deleted": delete}
