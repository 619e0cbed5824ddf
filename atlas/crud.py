# atlas/crud.py
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional, Union

from atlas.models import AuditEvent as DBAuditEvent
from atlas.models import Document as DBDocument
from pydantic import BaseModel, Field

# Pydantic models for request/response bodies
class DocumentCreate(BaseModel):
    title: str
    description: str = ""
    date: str
    type: str
    file: str
    url: str

class DocumentUpdate(BaseModel):
    secret: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    date: Optional[str] = None
    type: Optional[str] = None

    def changes(self) -> Dict[str, Any]:
        """Only the metadata fields the caller actually supplied."""
        return self.model_dump(exclude_unset=True, exclude_none=True, exclude={"secret"})

class DocumentDeleteRequest(BaseModel):
    id: Optional[Union[int, str]] = None
    secret: Optional[str] = None

class DocumentResponse(BaseModel):
    id: int
    title: str
    description: str
    date: str
    type: str
    file: str
    url: str

    class Config:
        from_attributes = True # Allow Pydantic to read ORM models

class AuditEventCreate(BaseModel):
    action: str
    ip_address: Optional[str] = None
    path: Optional[str] = None
    file_name: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None

class ClientLogRequest(BaseModel):
    action: Optional[str] = None
    path: Optional[str] = None
    file_name: Optional[str] = Field(None, alias="fileName")
    extra: Optional[Dict[str, Any]] = None

    class Config:
        populate_by_name = True

def create_document(db: Session, doc_data: DocumentCreate) -> DBDocument:
    """Inserts a document row; the id comes from the database's own sequence."""
    db_document = DBDocument(**doc_data.model_dump())
    db.add(db_document)
    db.commit()
    db.refresh(db_document)
    return db_document

def get_document(db: Session, doc_id: int) -> Optional[DBDocument]:
    return db.query(DBDocument).filter(DBDocument.id == doc_id).first()

def get_all_documents(db: Session) -> List[DBDocument]:
    """Retrieves all document metadata entries, oldest id first."""
    return db.query(DBDocument).order_by(DBDocument.id.asc()).all()

def update_document(db: Session, db_document: DBDocument, changes: Dict[str, Any]) -> DBDocument:
    for field, value in changes.items():
        setattr(db_document, field, value)
    db.commit()
    db.refresh(db_document)
    return db_document

def delete_document(db: Session, db_document: DBDocument) -> None:
    db.delete(db_document)
    db.commit()

def create_audit_event(db: Session, event: AuditEventCreate) -> DBAuditEvent:
    db_event = DBAuditEvent(**event.model_dump())
    db.add(db_event)
    db.commit()
    db.refresh(db_event)
    return db_event

def get_audit_events(db: Session, action: Optional[str] = None) -> List[DBAuditEvent]:
    query = db.query(DBAuditEvent)
    if action is not None:
        query = query.filter(DBAuditEvent.action == action)
    return query.order_by(DBAuditEvent.id.asc()).all()
