# atlas/main.py
import os
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.orm import Session
from sqlalchemy_utils import database_exists, create_database
from starlette.concurrency import run_in_threadpool

from atlas.audit import AuditLogger, get_audit_logger, request_context
from atlas.auth import AdminGate, get_admin_gate, warn_if_dev_secret
from atlas.config import settings
from atlas.crud import ClientLogRequest, DocumentDeleteRequest, DocumentResponse, DocumentUpdate
from atlas.database import engine, Base, get_db
from atlas.errors import AtlasError
from atlas.logging_config import logger, setup_logging
from atlas.services import DocumentService, coerce_document_id
from atlas.storage import BlobStore, get_blob_store

app = FastAPI(
    title="ATLAS Document Repository",
    description="Upload documents, list them publicly and keep an audit trail of visits, downloads and admin actions.",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.on_event("startup")
async def startup_event():
    """
    On application startup, configure logging and create database tables.
    """
    setup_logging()
    logger.info("Starting up application...")
    warn_if_dev_secret()
    # Create database tables if they don't exist
    if not database_exists(engine.url):
        create_database(engine.url)
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables checked/created.")

@app.exception_handler(AtlasError)
async def atlas_error_handler(request: Request, exc: AtlasError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": "Invalid request"})

@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})

def get_document_service(
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    audit_logger: AuditLogger = Depends(get_audit_logger),
    gate: AdminGate = Depends(get_admin_gate),
) -> DocumentService:
    return DocumentService(db, blob_store, audit_logger, gate)

@app.get("/api/documents", response_model=List[DocumentResponse])
def list_documents(service: DocumentService = Depends(get_document_service)):
    """
    Public listing of all documents, ordered by id.
    """
    return [DocumentResponse.model_validate(doc) for doc in service.list_documents()]

@app.post("/api/upload")
async def upload_document(
    request: Request,
    file: Optional[UploadFile] = File(None),
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    date: Optional[str] = Form(None),
    type: Optional[str] = Form(None),
    secret: Optional[str] = Form(None),
    service: DocumentService = Depends(get_document_service),
):
    """
    Stores the uploaded file in the blob store and records its metadata.
    """
    data = await file.read() if file is not None else None
    # Blob and database calls block; keep them off the event loop.
    document = await run_in_threadpool(
        service.upload,
        request_context(request),
        secret,
        data,
        file.filename if file is not None else None,
        content_type=file.content_type if file is not None else None,
        title=title,
        description=description,
        date=date,
        type=type,
    )
    return {"success": True, "document": DocumentResponse.model_validate(document)}

@app.put("/api/documents/{doc_id}")
def update_document(
    doc_id: str,
    body: DocumentUpdate,
    request: Request,
    service: DocumentService = Depends(get_document_service),
):
    """
    Changes only the metadata fields present in the body.
    """
    document = service.update(request_context(request), body.secret, coerce_document_id(doc_id), body.changes())
    return {"success": True, "document": DocumentResponse.model_validate(document)}

@app.post("/api/documents/delete")
def delete_document(
    body: DocumentDeleteRequest,
    request: Request,
    service: DocumentService = Depends(get_document_service),
):
    """
    Deletes the document's blob (best effort) and its metadata.
    """
    service.delete(request_context(request), body.secret, coerce_document_id(body.id))
    return {"success": True}

@app.post("/api/log")
def log_client_event(
    request: Request,
    body: Optional[ClientLogRequest] = None,
    audit_logger: AuditLogger = Depends(get_audit_logger),
):
    """
    Unauthenticated ingestion of client telemetry (page visits, download clicks).
    """
    body = body or ClientLogRequest()
    audit_logger.record_client_event(
        request_context(request),
        body.action,
        path=body.path,
        file_name=body.file_name,
        extra=body.extra,
    )
    return {"ok": True}

# Static mounts go last so they never shadow the API routes.
if settings.STORAGE_BACKEND == "local":
    app.mount("/uploads", StaticFiles(directory=settings.UPLOADS_DIR, check_dir=False), name="uploads")
if os.path.isdir(settings.PUBLIC_DIR):
    app.mount("/", StaticFiles(directory=settings.PUBLIC_DIR, html=True), name="public")

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
