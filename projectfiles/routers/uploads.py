"""Upload routes: pre-signed direct uploads and chunked uploads"""
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from projectfiles.core.dependencies import get_current_user_id, get_file_service
from projectfiles.schemas import ChunkAckResponse, UploadUrlRequest, UploadUrlResponse
from projectfiles.services.file_service import FileService
from projectfiles.services.upload_service import ChunkMetadata
from projectfiles.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/projects/{project_id}", tags=["Uploads"])


@router.post("/upload-url", response_model=UploadUrlResponse, status_code=status.HTTP_201_CREATED)
async def request_upload_url(
    project_id: str,
    request: UploadUrlRequest,
    user_id: str = Depends(get_current_user_id),
    file_service: FileService = Depends(get_file_service),
):
    """
    Create the file node and return a URL the client PUTs the bytes to.
    The node exists as soon as this returns.
    """
    node, url = await file_service.request_upload_url(
        project_id,
        user_id,
        request.file_name,
        request.content_type,
        size=request.size,
        parent_id=request.parent_id,
        description=request.description,
        tags=request.tags,
    )
    return {"upload_url": url, "node": node}


@router.post("/uploads/chunks", response_model=ChunkAckResponse)
async def upload_chunk(
    project_id: str,
    chunk: UploadFile = File(...),
    file_name: str = Form(...),
    file_size: int = Form(...),
    chunk_index: int = Form(...),
    total_chunks: int = Form(...),
    session_id: Optional[str] = Form(None),
    mime_type: Optional[str] = Form(None),
    parent_id: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    client_id: Optional[str] = Form(None),
    user_id: str = Depends(get_current_user_id),
    file_service: FileService = Depends(get_file_service),
):
    """
    Receive one chunk of a chunked upload.

    Chunk 0 is sent without session_id and the response carries the session
    id every later chunk must send. Chunks must arrive in order. Progress is
    pushed over the WebSocket named by client_id.
    """
    data = await chunk.read()
    metadata = ChunkMetadata(
        project_id=project_id,
        file_name=file_name,
        file_size=file_size,
        chunk_index=chunk_index,
        total_chunks=total_chunks,
        mime_type=mime_type,
        parent_id=parent_id,
        description=description,
        tags=tags,
    )
    ack = await file_service.receive_chunk(user_id, metadata, data, session_id=session_id, client_id=client_id)
    return {
        "session_id": ack.session_id,
        "chunk_index": ack.chunk_index,
        "received_chunks": ack.received_chunks,
        "total_chunks": ack.total_chunks,
        "complete": ack.complete,
        "node_id": ack.node_id,
    }
