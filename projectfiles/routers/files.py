"""File and folder routes inside a project"""
from typing import List, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status

from projectfiles.core.dependencies import get_current_user_id, get_file_service
from projectfiles.models import NodeKind
from projectfiles.schemas import (
    DeleteResponse,
    DownloadUrlResponse,
    FolderCreate,
    MoveRequest,
    NodeResponse,
    NodeUpdate,
)
from projectfiles.services.file_service import FileService
from projectfiles.services.search_service import MimeGroup, SearchFilters
from projectfiles.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/projects/{project_id}", tags=["Files"])


@router.get("/files", response_model=List[NodeResponse])
async def list_files(
    project_id: str,
    parent_id: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
    file_service: FileService = Depends(get_file_service),
):
    """
    List nodes of a project.

    Args:
        parent_id: Only the direct children of this folder; every node when omitted
    """
    return await file_service.list_nodes(project_id, user_id, parent_id)


@router.post("/folders", response_model=NodeResponse, status_code=status.HTTP_201_CREATED)
async def create_folder(
    project_id: str,
    folder_data: FolderCreate,
    user_id: str = Depends(get_current_user_id),
    file_service: FileService = Depends(get_file_service),
):
    """Create a folder at the root or inside parent_id"""
    logger.info(f"User {user_id} creating folder '{folder_data.name}' in project {project_id}")
    return await file_service.create_folder(project_id, user_id, folder_data.name, folder_data.parent_id)


@router.post("/files", response_model=NodeResponse, status_code=status.HTTP_201_CREATED)
async def upload_file(
    project_id: str,
    file: UploadFile = File(...),
    parent_id: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    user_id: str = Depends(get_current_user_id),
    file_service: FileService = Depends(get_file_service),
):
    """
    Upload a whole file in one request.
    Without parent_id the file is sorted into a system folder.
    """
    content = await file.read()
    logger.info(f"User {user_id} uploading '{file.filename}' ({len(content)} bytes) to project {project_id}")
    return await file_service.upload_file(
        project_id,
        user_id,
        file.filename,
        content,
        mime_type=file.content_type,
        parent_id=parent_id,
        description=description,
        tags=tags,
    )


@router.patch("/files/{node_id}", response_model=NodeResponse)
async def update_file(
    project_id: str,
    node_id: str,
    changes: NodeUpdate,
    user_id: str = Depends(get_current_user_id),
    file_service: FileService = Depends(get_file_service),
):
    """Rename a node or change its description and tags"""
    return await file_service.update_node(
        project_id,
        user_id,
        node_id,
        name=changes.name,
        description=changes.description,
        tags=changes.tags,
    )


@router.post("/files/{node_id}/move", response_model=NodeResponse)
async def move_file(
    project_id: str,
    node_id: str,
    move: MoveRequest,
    user_id: str = Depends(get_current_user_id),
    file_service: FileService = Depends(get_file_service),
):
    """Move a node under parent_id, or to the project root when parent_id is null"""
    logger.info(f"User {user_id} moving {node_id} to {move.parent_id or 'root'}")
    return await file_service.move_node(project_id, user_id, node_id, move.parent_id)


@router.delete("/files/{node_id}", response_model=DeleteResponse)
async def delete_file(
    project_id: str,
    node_id: str,
    user_id: str = Depends(get_current_user_id),
    file_service: FileService = Depends(get_file_service),
):
    """Delete a file, or a folder with everything inside it"""
    logger.info(f"User {user_id} deleting {node_id} from project {project_id}")
    deleted = await file_service.delete_node(project_id, user_id, node_id)
    return {"deleted": deleted}


@router.get("/files/{node_id}/download-url", response_model=DownloadUrlResponse)
async def get_download_url(
    project_id: str,
    node_id: str,
    user_id: str = Depends(get_current_user_id),
    file_service: FileService = Depends(get_file_service),
):
    node, url = await file_service.get_download_url(project_id, user_id, node_id)
    return {"download_url": url, "file_name": node.name, "mime_type": node.mime_type}


@router.get("/files/{node_id}/download")
async def download_file(
    project_id: str,
    node_id: str,
    user_id: str = Depends(get_current_user_id),
    file_service: FileService = Depends(get_file_service),
):
    """Stream a file's content through the API"""
    node, content = await file_service.download_file(project_id, user_id, node_id)
    return Response(
        content=content,
        media_type=node.mime_type or "application/octet-stream",
        headers={"Content-Disposition": f'attachment; filename="{quote(node.name)}"'},
    )


@router.get("/download-folder")
async def download_folder(
    project_id: str,
    folder_id: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
    file_service: FileService = Depends(get_file_service),
):
    """
    Download a zip of the whole project, or of one folder when folder_id is given
    """
    logger.info(f"User {user_id} downloading {folder_id or 'all files'} of project {project_id}")
    archive_name, content = await file_service.download_archive(project_id, user_id, folder_id)
    return Response(
        content=content,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{quote(archive_name)}"'},
    )


@router.get("/files/{node_id}/path", response_model=List[NodeResponse])
async def get_breadcrumb(
    project_id: str,
    node_id: str,
    user_id: str = Depends(get_current_user_id),
    file_service: FileService = Depends(get_file_service),
):
    """Nodes from the project root down to node_id"""
    return file_service.get_breadcrumb(project_id, user_id, node_id)


@router.get("/search", response_model=List[NodeResponse])
async def search_files(
    project_id: str,
    q: Optional[str] = Query(None, description="Matches name, description, tags, type or extension"),
    kind: Optional[NodeKind] = None,
    mime_group: Optional[MimeGroup] = None,
    include_system_folders: bool = True,
    user_id: str = Depends(get_current_user_id),
    file_service: FileService = Depends(get_file_service),
):
    filters = SearchFilters(
        query=q,
        kind=kind,
        mime_group=mime_group,
        include_system_folders=include_system_folders,
    )
    return await file_service.search(project_id, user_id, filters)
