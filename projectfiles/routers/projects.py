"""Project routes: create, list, delete and repair system folders"""
from typing import List

from fastapi import APIRouter, Depends, status

from projectfiles.core.dependencies import (
    get_current_user_id,
    get_file_service,
    get_project_service,
)
from projectfiles.schemas import NodeResponse, ProjectCreate, ProjectResponse
from projectfiles.services.file_service import FileService
from projectfiles.services.project_service import ProjectService
from projectfiles.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/projects", tags=["Projects"])


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
def create_project(
    project_data: ProjectCreate,
    user_id: str = Depends(get_current_user_id),
    project_service: ProjectService = Depends(get_project_service),
):
    """
    Create a project owned by the caller.
    The Documents, Assets, Design and Print folders are created with it.
    """
    logger.info(f"User {user_id} creating project '{project_data.name}'")
    return project_service.create_project(user_id, project_data.name, project_data.description)


@router.get("", response_model=List[ProjectResponse])
def list_projects(
    user_id: str = Depends(get_current_user_id),
    project_service: ProjectService = Depends(get_project_service),
):
    """List the caller's projects"""
    return project_service.list_projects(user_id)


@router.get("/{project_id}", response_model=ProjectResponse)
def get_project(
    project_id: str,
    user_id: str = Depends(get_current_user_id),
    project_service: ProjectService = Depends(get_project_service),
):
    return project_service.get_owned_project(project_id, user_id)


@router.delete("/{project_id}")
async def delete_project(
    project_id: str,
    user_id: str = Depends(get_current_user_id),
    file_service: FileService = Depends(get_file_service),
):
    """Delete a project, every node in it and all stored content"""
    logger.info(f"User {user_id} deleting project {project_id}")
    count = await file_service.projects.delete_project(project_id, user_id)
    await file_service.cache.invalidate_listing_cache(project_id)
    return {"message": f"Project '{project_id}' deleted successfully", "deleted_nodes": count}


@router.post("/{project_id}/default-folders", response_model=List[NodeResponse])
async def ensure_default_folders(
    project_id: str,
    user_id: str = Depends(get_current_user_id),
    file_service: FileService = Depends(get_file_service),
):
    """Create any missing system folders at the project root"""
    file_service.projects.get_owned_project(project_id, user_id)
    folders = file_service.projects.ensure_default_folders(project_id)
    await file_service.cache.invalidate_listing_cache(project_id)
    return folders
