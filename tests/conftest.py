"""
Shared fixtures for the ATLAS test suite.

Every test gets its own SQLite database file and uploads directory under
tmp_path. The FastAPI app is exercised through TestClient with its
dependencies overridden, so no test touches the developer's data/ or uploads/.
"""

import os
import tempfile

# Settings are read at import time; point them somewhere harmless first.
_SANDBOX = tempfile.mkdtemp(prefix="atlas-tests-")
os.environ.setdefault("ADMIN_SECRET", "test-secret")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("STORAGE_BACKEND", "local")
os.environ.setdefault("UPLOADS_DIR", os.path.join(_SANDBOX, "uploads"))
os.environ.setdefault("PUBLIC_DIR", os.path.join(_SANDBOX, "public"))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from atlas import crud
from atlas.audit import AuditLogger, RequestContext, get_audit_logger
from atlas.auth import AdminGate, get_admin_gate
from atlas.database import Base, get_db
from atlas.errors import BlobStoreError
from atlas.main import app as fastapi_app
from atlas.services import DocumentService
from atlas.storage import BlobStore, LocalBlobStore, get_blob_store

ADMIN_SECRET = "test-secret"
PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\n%%EOF\n"


# =============================================================================
# DATABASE
# =============================================================================


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


def audit_actions(session_factory):
    """Actions of all persisted audit events, in insertion order."""
    session = session_factory()
    try:
        return [event.action for event in crud.get_audit_events(session)]
    finally:
        session.close()


# =============================================================================
# COLLABORATORS
# =============================================================================


@pytest.fixture
def uploads_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def blob_store(uploads_dir):
    return LocalBlobStore(str(uploads_dir), "http://testserver")


@pytest.fixture
def audit_logger(session_factory):
    return AuditLogger(session_factory)


@pytest.fixture
def gate():
    return AdminGate(ADMIN_SECRET)


@pytest.fixture
def ctx():
    return RequestContext(ip_address="203.0.113.7", path="/api/test", user_agent="pytest")


@pytest.fixture
def service(db, blob_store, audit_logger, gate):
    return DocumentService(db, blob_store, audit_logger, gate)


class FailingPutStore(BlobStore):
    """Blob store whose writes always fail."""

    def __init__(self):
        self.puts = 0

    def put_object(self, key, data, content_type=None, overwrite=False):
        self.puts += 1
        raise BlobStoreError("bucket unreachable")

    def get_public_url(self, key):
        return f"http://blobs.invalid/{key}"

    def delete_object(self, key):
        return None


class FailingDeleteStore(LocalBlobStore):
    """Local store whose deletes always fail."""

    def delete_object(self, key):
        raise BlobStoreError("delete refused")


# =============================================================================
# API
# =============================================================================


@pytest.fixture
def app(session_factory, blob_store, audit_logger, gate):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_blob_store] = lambda: blob_store
    fastapi_app.dependency_overrides[get_audit_logger] = lambda: audit_logger
    fastapi_app.dependency_overrides[get_admin_gate] = lambda: gate
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    return TestClient(app, raise_server_exceptions=False)


def upload(client, secret=ADMIN_SECRET, filename="policy.pdf", content=PDF_BYTES, **fields):
    data = {k: v for k, v in fields.items() if v is not None}
    if secret is not None:
        data["secret"] = secret
    files = None
    if filename is not None:
        files = {"file": (filename, content, "application/pdf")}
    return client.post("/api/upload", data=data, files=files)
