# atlas/errors.py
"""Error taxonomy for the document repository.

Each error carries the HTTP status and the short message exposed at the
boundary. Internal details stay in the operational logs.
"""


class AtlasError(Exception):
    status_code: int = 500
    message: str = "Internal server error"

    def __init__(self, detail: str = None, message: str = None):
        self.detail = detail or self.message
        if message is not None:
            self.message = message
        super().__init__(self.detail)


class Unauthorized(AtlasError):
    status_code = 401
    message = "Unauthorized"


class MissingFile(AtlasError):
    status_code = 400
    message = "File is required"


class MissingAction(AtlasError):
    status_code = 400
    message = "action is required"


class NotFound(AtlasError):
    status_code = 404
    message = "Document not found"


class BlobStoreError(AtlasError):
    message = "Upload failed"


class BlobExistsError(BlobStoreError):
    """Raised when a non-overwriting put targets an existing key."""


class MetadataWriteError(AtlasError):
    message = "Upload failed"


class MetadataDeleteError(AtlasError):
    message = "Delete failed"


class StoreUnavailable(AtlasError):
    message = "Cannot read documents"


class AuditWriteError(AtlasError):
    message = "Log failed"
