"""Chunked upload sessions: reassemble ordered chunks into one stored object"""
import asyncio
import enum
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from projectfiles.core.config import settings
from projectfiles.core.exceptions import InvalidStateError, NotFoundError, StorageFailureError
from projectfiles.models import NodeKind
from projectfiles.services.classifier import AutoSortClassifier
from projectfiles.services.storage_service import StorageService
from projectfiles.services.tree_store import TreeStore
from projectfiles.utils.path_utils import generate_object_path
from projectfiles.utils.logger import get_logger

logger = get_logger(__name__)


class SessionState(str, enum.Enum):
    RECEIVING = "receiving"
    COMPLETE = "complete"


@dataclass
class ChunkMetadata:
    project_id: str
    file_name: str
    file_size: int
    chunk_index: int
    total_chunks: int
    mime_type: Optional[str] = None
    parent_id: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[str] = None


@dataclass
class UploadSession:
    session_id: str
    uploader_id: str
    project_id: str
    file_name: str
    started_at_ms: int
    total_chunks: int
    node_id: str
    object_path: str
    mime_type: Optional[str]
    last_activity: float
    chunks: List[bytes] = field(default_factory=list)
    state: SessionState = SessionState.RECEIVING
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @property
    def descriptor(self) -> str:
        return f"{self.uploader_id}/{self.project_id}/{self.file_name}@{self.started_at_ms}"


@dataclass
class ChunkAck:
    session_id: str
    chunk_index: int
    received_chunks: int
    total_chunks: int
    node_id: Optional[str] = None

    @property
    def complete(self) -> bool:
        return self.node_id is not None


class ChunkedUploadManager:
    """
    Holds in-progress chunked uploads for this process.

    Chunk 0 creates the file node and a session identified by a generated
    token; every later chunk must name that token and arrive in order. The
    final chunk stores the joined payload and ends the session. Sessions idle
    for longer than the TTL are handed back by reap_expired().
    """

    def __init__(
        self,
        storage: StorageService,
        session_ttl: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.storage = storage
        self.session_ttl = session_ttl if session_ttl is not None else settings.UPLOAD_SESSION_TTL_SECONDS
        self.clock = clock
        self._sessions: Dict[str, UploadSession] = {}
        self._completed: Dict[str, float] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, session_id: str) -> Optional[UploadSession]:
        return self._sessions.get(session_id)

    async def receive_chunk(
        self,
        tree_store: TreeStore,
        uploader_id: str,
        metadata: ChunkMetadata,
        data: bytes,
        session_id: Optional[str] = None,
        classifier: Optional[AutoSortClassifier] = None,
    ) -> ChunkAck:
        """Accept one chunk; the returned ack carries node_id once the file is stored"""
        self._validate(metadata)

        if metadata.chunk_index == 0:
            if session_id:
                raise InvalidStateError("Chunk 0 starts a new upload session and must not name one")
            session = await self._start_session(tree_store, uploader_id, metadata, classifier)
        else:
            if not session_id:
                raise InvalidStateError(f"Chunk {metadata.chunk_index} needs the upload session id")
            session = await self._lookup(session_id, uploader_id, metadata.project_id)

        async with session.lock:
            if session.state == SessionState.COMPLETE:
                raise InvalidStateError(f"Upload session {session.session_id} is already complete")
            if metadata.total_chunks != session.total_chunks:
                raise InvalidStateError(
                    f"Session expects {session.total_chunks} chunks, got total_chunks={metadata.total_chunks}"
                )
            expected = len(session.chunks)
            if metadata.chunk_index != expected:
                problem = "duplicate" if metadata.chunk_index < expected else "out-of-order"
                raise InvalidStateError(
                    f"Received {problem} chunk {metadata.chunk_index}; expected chunk {expected}"
                )

            session.chunks.append(bytes(data))
            session.last_activity = self.clock()
            logger.debug(
                f"Chunk {metadata.chunk_index + 1}/{session.total_chunks} "
                f"({len(data)} bytes) for {session.descriptor}"
            )

            if metadata.chunk_index == session.total_chunks - 1:
                await self._complete(tree_store, session)
                node_id = session.node_id
            else:
                node_id = None

            return ChunkAck(
                session_id=session.session_id,
                chunk_index=metadata.chunk_index,
                received_chunks=len(session.chunks),
                total_chunks=session.total_chunks,
                node_id=node_id,
            )

    async def reap_expired(self, now: Optional[float] = None) -> List[UploadSession]:
        """Remove and return sessions idle for longer than the TTL"""
        now = self.clock() if now is None else now
        async with self._lock:
            expired = [
                s for s in self._sessions.values()
                if now - s.last_activity > self.session_ttl and not s.lock.locked()
            ]
            for session in expired:
                del self._sessions[session.session_id]
            for session_id, finished in list(self._completed.items()):
                if now - finished > self.session_ttl:
                    del self._completed[session_id]

        for session in expired:
            logger.info(
                f"Reaped abandoned upload {session.session_id} ({session.descriptor}) "
                f"after {len(session.chunks)}/{session.total_chunks} chunks"
            )
        return expired

    async def requeue(self, session: UploadSession) -> None:
        """Put a reaped session back so the next sweep retries its cleanup"""
        async with self._lock:
            self._sessions.setdefault(session.session_id, session)

    def _validate(self, metadata: ChunkMetadata) -> None:
        if metadata.total_chunks < 1:
            raise InvalidStateError("total_chunks must be at least 1")
        if not 0 <= metadata.chunk_index < metadata.total_chunks:
            raise InvalidStateError(
                f"chunk_index {metadata.chunk_index} is outside 0..{metadata.total_chunks - 1}"
            )

    async def _start_session(
        self,
        tree_store: TreeStore,
        uploader_id: str,
        metadata: ChunkMetadata,
        classifier: Optional[AutoSortClassifier],
    ) -> UploadSession:
        parent_id = metadata.parent_id
        if not parent_id and classifier is not None:
            parent_id = classifier.classify_target(
                metadata.project_id, metadata.file_name, metadata.mime_type
            )

        started_at_ms = int(time.time() * 1000)
        object_path = generate_object_path(
            uploader_id, metadata.project_id, metadata.file_name, parent_id, started_at_ms
        )
        node = tree_store.create(
            metadata.project_id,
            metadata.file_name,
            NodeKind.FILE,
            parent_id=parent_id,
            object_path=object_path,
            size=metadata.file_size,
            mime_type=metadata.mime_type,
            description=metadata.description,
            tags=metadata.tags,
        )

        session = UploadSession(
            session_id=uuid.uuid4().hex,
            uploader_id=uploader_id,
            project_id=metadata.project_id,
            file_name=metadata.file_name,
            started_at_ms=started_at_ms,
            total_chunks=metadata.total_chunks,
            node_id=node.id,
            object_path=object_path,
            mime_type=metadata.mime_type,
            last_activity=self.clock(),
        )
        async with self._lock:
            self._sessions[session.session_id] = session

        logger.info(
            f"Started upload session {session.session_id} for {session.descriptor} "
            f"({metadata.total_chunks} chunks, node {node.id})"
        )
        return session

    async def _lookup(self, session_id: str, uploader_id: str, project_id: str) -> UploadSession:
        async with self._lock:
            if session_id in self._completed:
                raise InvalidStateError(f"Upload session {session_id} is already complete")
            session = self._sessions.get(session_id)
        if session is None or session.uploader_id != uploader_id or session.project_id != project_id:
            raise NotFoundError(f"Upload session not found or expired: {session_id}")
        return session

    async def _complete(self, tree_store: TreeStore, session: UploadSession) -> None:
        """Store the joined payload; on failure drop the final chunk so it can be resent"""
        payload = b"".join(session.chunks)
        try:
            await self.storage.put_object(session.object_path, payload, session.mime_type)
            tree_store.set_size(session.project_id, session.node_id, len(payload))
        except StorageFailureError:
            session.chunks.pop()
            logger.error(f"Final chunk of {session.descriptor} failed; session kept for retry")
            raise
        except NotFoundError:
            # The node was deleted while the upload was in flight
            async with self._lock:
                self._sessions.pop(session.session_id, None)
            await self.storage.delete_object(session.object_path)
            raise

        session.state = SessionState.COMPLETE
        async with self._lock:
            self._sessions.pop(session.session_id, None)
            self._completed[session.session_id] = self.clock()
        logger.info(
            f"Upload {session.session_id} complete: {len(payload)} bytes at {session.object_path}"
        )
