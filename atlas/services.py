# atlas/services.py
"""Document lifecycle: upload, list, update and delete.

Upload writes the blob before the metadata row; delete removes the blob
(best effort) before the row. Every admin outcome is recorded through the
AuditLogger: denied, accepted, or failed after the secret was accepted.
AuditLogger failures never affect the result returned here.
"""
import os
import re
import time
import uuid
from datetime import date as date_cls
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from atlas import audit, crud
from atlas.audit import AuditLogger, RequestContext
from atlas.auth import AdminGate
from atlas.config import settings
from atlas.errors import (
    AtlasError,
    BlobStoreError,
    MetadataDeleteError,
    MetadataWriteError,
    MissingFile,
    NotFound,
    StoreUnavailable,
    Unauthorized,
)
from atlas.logging_config import logger
from atlas.models import Document as DBDocument
from atlas.storage import BlobStore

_WHITESPACE = re.compile(r"\s+")


def make_storage_key(filename: Optional[str], now_ms: Optional[int] = None, token: Optional[str] = None) -> str:
    """`<epoch-millis>-<random hex>-<filename>` with whitespace runs collapsed to `_`.

    The random part keeps same-millisecond uploads of one filename apart.
    """
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000
    if token is None:
        token = uuid.uuid4().hex[:8]
    name = os.path.basename((filename or "").replace("\\", "/"))
    name = _WHITESPACE.sub("_", name.strip()) or "file"
    return f"{now_ms}-{token}-{name}"


def coerce_document_id(value: Any) -> Optional[int]:
    """Ids arrive as JSON numbers or strings; anything else matches no document."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


class DocumentService:

    def __init__(self, db: Session, blob_store: BlobStore, audit_logger: AuditLogger, gate: AdminGate):
        self.db = db
        self.blob_store = blob_store
        self.audit = audit_logger
        self.gate = gate

    def list_documents(self) -> List[DBDocument]:
        try:
            return crud.get_all_documents(self.db)
        except SQLAlchemyError as e:
            logger.error("Could not read documents: %s", e)
            raise StoreUnavailable(str(e)) from e

    def _get_or_404(self, doc_id: Optional[int]) -> DBDocument:
        if doc_id is None:
            raise NotFound()
        try:
            document = crud.get_document(self.db, doc_id)
        except SQLAlchemyError as e:
            logger.error("Could not read document %s: %s", doc_id, e)
            raise StoreUnavailable(str(e)) from e
        if document is None:
            raise NotFound(f"Document {doc_id} not found")
        return document

    def _record_failure(self, ctx: RequestContext, action: str, error: AtlasError,
                        file_name: Optional[str] = None, extra: Optional[Dict[str, Any]] = None) -> None:
        """Audit an authorized attempt that did not complete."""
        logger.warning("%s from %s: %s (%s)", action, ctx.ip_address, type(error).__name__, error.detail)
        payload = dict(extra or {})
        payload["reason"] = type(error).__name__
        self.audit.record_admin_event(ctx, action, file_name=file_name, extra=payload)

    def upload(self, ctx: RequestContext, secret: Optional[str], data: Optional[bytes], filename: Optional[str],
               content_type: Optional[str] = None, title: Optional[str] = None, description: Optional[str] = None,
               date: Optional[str] = None, type: Optional[str] = None) -> DBDocument:
        if not self.gate.authorize(secret):
            logger.warning("Denied upload of %r from %s", filename, ctx.ip_address)
            # Fire-and-forget: audit failures are swallowed inside record_admin_event.
            self.audit.record_admin_event(ctx, audit.ADMIN_UPLOAD_DENIED, file_name=filename,
                                          extra={"reason": "invalid secret"})
            raise Unauthorized()

        try:
            document = self._store_upload(data, filename, content_type, title, description, date, type)
        except AtlasError as e:
            self._record_failure(ctx, audit.ADMIN_UPLOAD_FAILED, e, file_name=filename)
            raise

        logger.info("Document %s uploaded as %s", document.id, document.file)
        self.audit.record_admin_event(ctx, audit.ADMIN_UPLOAD_ACCEPTED, file_name=document.file,
                                      extra={"id": document.id, "title": document.title})
        return document

    def _store_upload(self, data, filename, content_type, title, description, date, type) -> DBDocument:
        if not data:
            raise MissingFile()

        key = make_storage_key(filename)
        self.blob_store.put_object(key, data, content_type=content_type, overwrite=False)
        url = self.blob_store.get_public_url(key)

        doc_data = crud.DocumentCreate(
            title=title or filename or key,
            description=description or "",
            date=date or date_cls.today().isoformat(),
            type=type or settings.DEFAULT_DOCUMENT_TYPE,
            file=key,
            url=url,
        )
        try:
            return crud.create_document(self.db, doc_data)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Metadata insert failed; blob %s is orphaned: %s", key, e)
            self._discard_orphan(key)
            raise MetadataWriteError(str(e)) from e

    def _discard_orphan(self, key: str) -> None:
        try:
            self.blob_store.delete_object(key)
        except BlobStoreError as e:
            logger.error("Could not remove orphaned blob %s, manual cleanup needed: %s", key, e)
        else:
            logger.info("Removed orphaned blob %s", key)

    def update(self, ctx: RequestContext, secret: Optional[str], doc_id: Optional[int],
               changes: Dict[str, Any]) -> DBDocument:
        if not self.gate.authorize(secret):
            logger.warning("Denied update of document %s from %s", doc_id, ctx.ip_address)
            self.audit.record_admin_event(ctx, audit.ADMIN_UPDATE_DENIED,
                                          extra={"id": doc_id, "reason": "invalid secret"})
            raise Unauthorized()

        try:
            document = self._get_or_404(doc_id)
            try:
                document = crud.update_document(self.db, document, changes)
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error("Update of document %s failed: %s", doc_id, e)
                raise MetadataWriteError(str(e), message="Update failed") from e
        except AtlasError as e:
            self._record_failure(ctx, audit.ADMIN_UPDATE_FAILED, e, extra={"id": doc_id})
            raise

        self.audit.record_admin_event(ctx, audit.ADMIN_UPDATE_ACCEPTED, file_name=document.file,
                                      extra={"id": document.id, "title": document.title})
        return document

    def delete(self, ctx: RequestContext, secret: Optional[str], doc_id: Optional[int]) -> None:
        if not self.gate.authorize(secret):
            logger.warning("Denied delete of document %s from %s", doc_id, ctx.ip_address)
            self.audit.record_admin_event(ctx, audit.ADMIN_DELETE_DENIED,
                                          extra={"id": doc_id, "reason": "invalid secret"})
            raise Unauthorized()

        try:
            document = self._get_or_404(doc_id)
        except AtlasError as e:
            self._record_failure(ctx, audit.ADMIN_DELETE_FAILED, e, extra={"id": doc_id})
            raise
        deleted_id, title, key = document.id, document.title, document.file

        if key:
            try:
                self.blob_store.delete_object(key)
            except BlobStoreError as e:
                logger.warning("Could not delete blob %s for document %s: %s", key, deleted_id, e)

        try:
            crud.delete_document(self.db, document)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Delete of document %s failed after blob removal: %s", deleted_id, e)
            error = MetadataDeleteError(str(e))
            self._record_failure(ctx, audit.ADMIN_DELETE_FAILED, error, file_name=key, extra={"id": deleted_id})
            raise error from e

        logger.info("Document %s deleted (%s)", deleted_id, key)
        self.audit.record_admin_event(ctx, audit.ADMIN_DELETE_ACCEPTED, file_name=key,
                                      extra={"id": deleted_id, "title": title})
