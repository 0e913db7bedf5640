"""Request/response schemas"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from projectfiles.models import NodeKind


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None


class ProjectResponse(BaseModel):
    id: str
    owner_id: str
    name: str
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class NodeResponse(BaseModel):
    id: str
    project_id: str
    name: str
    kind: NodeKind
    parent_id: Optional[str] = None
    object_path: Optional[str] = None
    size: Optional[int] = None
    mime_type: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[str] = None
    is_system_folder: bool = False
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class FolderCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=1024)
    parent_id: Optional[str] = None


class NodeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=1024)
    description: Optional[str] = None
    tags: Optional[str] = None


class MoveRequest(BaseModel):
    parent_id: Optional[str] = None


class UploadUrlRequest(BaseModel):
    file_name: str = Field(..., min_length=1, max_length=1024)
    content_type: str = "application/octet-stream"
    size: int = Field(0, ge=0)
    parent_id: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[str] = None


class UploadUrlResponse(BaseModel):
    upload_url: str
    node: NodeResponse


class DownloadUrlResponse(BaseModel):
    download_url: str
    file_name: str
    mime_type: Optional[str] = None


class ChunkAckResponse(BaseModel):
    session_id: str
    chunk_index: int
    received_chunks: int
    total_chunks: int
    complete: bool
    node_id: Optional[str] = None


class DeleteResponse(BaseModel):
    deleted: List[str]


class MigrationItem(BaseModel):
    file_id: str
    file_name: str
    status: str
    object_path: Optional[str] = None
    error: Optional[str] = None


class MigrationResponse(BaseModel):
    migrated: int
    failed: int
    total: int
    results: List[MigrationItem] = []


class OrphanReport(BaseModel):
    orphaned: List[str]
    deleted: bool


class StorageStatus(BaseModel):
    storage: str
    configured: bool
    accessible: bool
    missing: List[str] = []
    message: str
