"""Test configuration and fixtures for projectfiles."""

from typing import Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from projectfiles.core.exceptions import NotFoundError, StorageFailureError
from projectfiles.database import Base
from projectfiles.models import Project, utcnow
from projectfiles.services.project_service import ProjectService
from projectfiles.services.storage_service import StorageService
from projectfiles.services.tree_store import ProjectLocks, TreeStore

OWNER = "user_owner"
STRANGER = "user_stranger"


class InMemoryStorage(StorageService):
    """Object storage double that keeps objects in a dict."""

    def __init__(self):
        super().__init__(timeout=5)
        self.objects: Dict[str, bytes] = {}
        self.content_types: Dict[str, Optional[str]] = {}
        self.deleted: List[str] = []
        self.fail_puts = False
        self.fail_deletes = False

    async def put_object(self, key, data, content_type=None):
        if self.fail_puts:
            raise StorageFailureError(f"Storage unavailable while writing {key}")
        self.objects[key] = bytes(data)
        self.content_types[key] = content_type

    async def get_object(self, key):
        if key not in self.objects:
            raise NotFoundError(f"Object not found: {key}")
        return self.objects[key]

    async def delete_object(self, key):
        if self.fail_deletes:
            raise StorageFailureError(f"Storage unavailable while deleting {key}")
        self.objects.pop(key, None)
        self.deleted.append(key)

    async def list_keys(self, prefix=""):
        return sorted(k for k in self.objects if k.startswith(prefix))

    async def presign_upload(self, key, content_type, ttl=None):
        return f"https://storage.test/{key}?upload=1"

    async def presign_download(self, key, ttl=None, file_name=None):
        return f"https://storage.test/{key}?download={file_name or ''}"

    async def head_bucket(self):
        return None


@pytest.fixture
def engine():
    """SQLite in-memory engine shared across threads."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def tree_store(db):
    return TreeStore(db, ProjectLocks())


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def project_service(tree_store, storage):
    return ProjectService(tree_store, storage)


@pytest.fixture
def project(project_service):
    """A project owned by OWNER with the four system folders."""
    return project_service.create_project(OWNER, "Rebrand")


@pytest.fixture
def bare_project(db):
    """A project with no folders at all."""
    now = utcnow()
    project = Project(owner_id=OWNER, name="Empty", created_at=now, updated_at=now)
    db.add(project)
    db.commit()
    db.refresh(project)
    return project


@pytest.fixture
def system_folders(tree_store, project):
    """System folder ids keyed by name."""
    return {f.name: f.id for f in tree_store.system_folders(project.id)}
