# atlas/audit.py
"""Audit trail of visits, downloads and admin actions.

Audit writes use their own session so a failed write can never leave the
primary operation's session in a broken state. Admin events are
fire-and-forget: failures are logged and dropped. Client events come from the
unauthenticated /api/log endpoint, where persisting the event is the whole
operation, so failures there are reported to the caller.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Request
from sqlalchemy.orm import sessionmaker

from atlas import crud
from atlas.database import SessionLocal
from atlas.errors import AuditWriteError, MissingAction
from atlas.logging_config import logger

VISIT = "visit"
DOWNLOAD = "download"
ADMIN_UPLOAD_ACCEPTED = "admin-upload-accepted"
ADMIN_UPLOAD_DENIED = "admin-upload-denied"
ADMIN_UPLOAD_FAILED = "admin-upload-failed"
ADMIN_UPDATE_ACCEPTED = "admin-update-accepted"
ADMIN_UPDATE_DENIED = "admin-update-denied"
ADMIN_UPDATE_FAILED = "admin-update-failed"
ADMIN_DELETE_ACCEPTED = "admin-delete-accepted"
ADMIN_DELETE_DENIED = "admin-delete-denied"
ADMIN_DELETE_FAILED = "admin-delete-failed"


@dataclass
class RequestContext:
    ip_address: Optional[str] = None
    path: Optional[str] = None
    user_agent: Optional[str] = None


def resolve_client_ip(request: Request) -> Optional[str]:
    """First hop of X-Forwarded-For, else the transport peer, else None."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return None


def request_context(request: Request) -> RequestContext:
    return RequestContext(
        ip_address=resolve_client_ip(request),
        path=request.url.path,
        user_agent=request.headers.get("user-agent"),
    )


class AuditLogger:

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def _persist(self, event: crud.AuditEventCreate) -> None:
        db = self.session_factory()
        try:
            crud.create_audit_event(db, event)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def record(self, event: crud.AuditEventCreate) -> None:
        """Persists an event; never raises."""
        try:
            self._persist(event)
        except Exception:
            logger.exception("Failed to record audit event %r (file=%s)", event.action, event.file_name)

    def record_admin_event(self, ctx: RequestContext, action: str, file_name: Optional[str] = None,
                           extra: Optional[Dict[str, Any]] = None) -> None:
        payload = dict(extra or {})
        if ctx.user_agent:
            payload.setdefault("userAgent", ctx.user_agent)
        self.record(crud.AuditEventCreate(
            action=action,
            ip_address=ctx.ip_address,
            path=ctx.path,
            file_name=file_name,
            extra=payload or None,
        ))

    def record_client_event(self, ctx: RequestContext, action: Optional[str], path: Optional[str] = None,
                            file_name: Optional[str] = None, extra: Optional[Dict[str, Any]] = None) -> None:
        if not action or not action.strip():
            raise MissingAction()
        payload = dict(extra or {})
        if ctx.user_agent:
            payload.setdefault("userAgent", ctx.user_agent)
        event = crud.AuditEventCreate(
            action=action.strip(),
            ip_address=ctx.ip_address,
            path=path,
            file_name=file_name,
            extra=payload or None,
        )
        try:
            self._persist(event)
        except Exception as e:
            logger.exception("Failed to record client event %r", event.action)
            raise AuditWriteError(str(e)) from e


def get_audit_logger() -> AuditLogger:
    return AuditLogger(SessionLocal)
