"""
core/errors.py -- Typed failures raised by the session layer.

Every error carries an HTTP-style status code and a stable machine-readable
code. The API layer renders them into the shared ErrorResponse envelope
without further interpretation (see api/main.py).

Unauthorized is coarse: bad credentials, expired tokens, forged
tokens, and replayed refresh tokens all surface as the same 401. The reason
is logged server-side, never returned.

Layer rule: core/ is the kernel. No imports from api/, auth/, or media/.
"""

from __future__ import annotations


class ServiceError(Exception):
    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationError(ServiceError):
    """Malformed or missing input. The client must correct the request."""

    status_code = 400
    code = "validation_error"


class UnauthorizedError(ServiceError):
    status_code = 401
    code = "unauthorized"


class NotFoundError(ServiceError):
    status_code = 404
    code = "not_found"


class ConflictError(ServiceError):
    """Username or email already taken."""

    status_code = 409
    code = "conflict"


class InternalError(ServiceError):
    status_code = 500
    code = "internal_error"


class UploadError(ServiceError):
    """The external asset store rejected or failed an upload."""

    status_code = 502
    code = "upload_failed"
