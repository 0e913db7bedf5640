"""
SQLAlchemy ORM models: projects and the file/folder nodes they own
"""
import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
)

from projectfiles.database import Base


def generate_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NodeKind(str, enum.Enum):
    FILE = "file"
    FOLDER = "folder"


class Project(Base):
    """A workspace owned by a single user"""
    __tablename__ = "projects"

    id = Column(String(32), primary_key=True, default=generate_id)
    owner_id = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class FileNode(Base):
    """
    A file or folder in a project's tree.

    parent_id references another node of the same project (null = root). The tree
    store keeps the parent chain acyclic; the foreign key is not declared so the
    cascade can remove a subtree in a single statement.
    """
    __tablename__ = "files"

    id = Column(String(32), primary_key=True, default=generate_id)
    project_id = Column(
        String(32),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    name = Column(String(1024), nullable=False)
    kind = Column(
        Enum(NodeKind, name="file_kind", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    parent_id = Column(String(32), nullable=True)
    object_path = Column(String(2048), nullable=True)
    size = Column(BigInteger, nullable=True)
    mime_type = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    tags = Column(Text, nullable=True)
    is_system_folder = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_files_project_parent", "project_id", "parent_id"),
    )

    def __repr__(self) -> str:
        return f"<FileNode {self.id} {self.kind.value} {self.name!r}>"
