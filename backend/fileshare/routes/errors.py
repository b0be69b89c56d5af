"""Translate file service exceptions into HTTP errors."""
from fastapi import HTTPException

from fileshare.services.download_accounting import FileRecordNotFound
from fileshare.services.file_access import AccessDenied, DuplicateFile, InvalidFileRequest, NotOwner
from fileshare.services.file_storage import StorageError
from fileshare.services.policy import Decision

# status, message. Messages are fixed text: never the PIN or the owner.
DECISION_STATUS: dict[Decision, tuple[int, str]] = {
    Decision.DENIED_PRIVATE: (403, "This file is private"),
    Decision.DENIED_PIN: (401, "A valid PIN is required"),
    Decision.DENIED_AUTH_REQUIRED: (401, "Sign in to download this file"),
    Decision.DENIED_EXPIRED: (410, "This link has expired"),
    Decision.DENIED_DOWNLOAD_LIMIT: (403, "Download limit reached"),
    Decision.DENIED_PER_USER_LIMIT: (403, "You have reached your download limit for this file"),
}


def http_error(e: Exception) -> HTTPException:
    if isinstance(e, FileRecordNotFound):
        return HTTPException(404, "File not found")
    if isinstance(e, AccessDenied):
        status, message = DECISION_STATUS[e.decision]
        return HTTPException(status, {"code": e.decision.value, "message": message})
    if isinstance(e, NotOwner):
        return HTTPException(403, "Only the owner can change this file")
    if isinstance(e, DuplicateFile):
        return HTTPException(409, "File id already exists")
    if isinstance(e, InvalidFileRequest):
        return HTTPException(400, str(e))
    if isinstance(e, StorageError):
        return HTTPException(502, "Storage backend error")
    return HTTPException(500, "Internal error")


FILE_ERRORS = (FileRecordNotFound, AccessDenied, NotOwner, DuplicateFile, InvalidFileRequest, StorageError)
