import traceback
from typing import Any, Dict, Mapping, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from src.shared.config import get_settings
from src.shared.error_codes import ERROR_CODES

# ───────────────────────── Base & Domain Exceptions ─────────────────────────
class DomainError(Exception):
    """Base class for domain-level errors. Services raise these, never HTTPException."""
    code: str = "domain_error"
    status_code: int = status.HTTP_400_BAD_REQUEST
    message: str
    details: Optional[Dict[str, Any]]

    def __init__(
        self,
        message: str = "",
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message or self.__class__.__name__)
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.message = message or self.__class__.__name__
        self.details = details


class ValidationError(DomainError):
    """Field-keyed, aggregated input or business-rule failure."""
    code = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        errors: Optional[Mapping[str, str]] = None,
        message: str = "Validation failed for one or more fields.",
        *,
        code: Optional[str] = None,
        context: Optional[str] = None,
    ) -> None:
        self.errors: Dict[str, str] = dict(errors or {})
        details: Dict[str, Any] = {"errors": self.errors}
        if context:
            details["context"] = context
        super().__init__(message, code=code, details=details)


class NotFoundError(DomainError):
    # generic; set a specific code via constructor (e.g., "sale_not_found")
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class StateConflictError(DomainError):
    code = "state_conflict"
    status_code = status.HTTP_409_CONFLICT


class ConflictError(DomainError):
    code = "conflict"
    status_code = status.HTTP_409_CONFLICT


class TenantInactiveError(DomainError):
    code = "tenant_inactive"
    status_code = status.HTTP_403_FORBIDDEN


class TransientStorageError(DomainError):
    code = "transient_storage_error"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class ConnectivityError(DomainError):
    code = "connectivity_error"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class NotConnectedError(ConnectivityError):
    code = "not_connected"


class InternalServerError(DomainError):
    code = "internal_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

# ───────────────────────────── Helpers ──────────────────────────────────────

def _problem(
    code: str,
    message: str,
    details: Optional[Dict[str, Any]],
    correlation_id: Optional[str],
) -> Dict[str, Any]:
    body: Dict[str, Any] = {"code": code, "message": message}
    if details:
        body["details"] = details
    if correlation_id:
        body["correlation_id"] = correlation_id
    return body


def _extract_correlation_id(req: Request) -> Optional[str]:
    return getattr(getattr(req, "state", None), "request_id", None)

def _http_for(code: str) -> int:
    return int(ERROR_CODES.get(code, {}).get("http", status.HTTP_500_INTERNAL_SERVER_ERROR))

def _msg_for(code: str) -> str:
    return str(ERROR_CODES.get(code, {}).get("message", code))

# ─────────────────────────── Registration ───────────────────────────

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainError)
    async def handle_domain_error(req: Request, exc: DomainError):
        return JSONResponse(
            status_code=exc.status_code,
            content=_problem(exc.code, exc.message, exc.details, _extract_correlation_id(req)),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(req: Request, exc: RequestValidationError):
        code = "validation_error"
        errors = {".".join(str(p) for p in e.get("loc", ())): e.get("msg", "") for e in exc.errors()}
        return JSONResponse(
            status_code=_http_for(code),
            content=_problem(code, _msg_for(code), {"errors": errors}, _extract_correlation_id(req)),
        )

    @app.exception_handler(Exception)
    async def handle_unhandled(req: Request, exc: Exception):
        code = "internal_error"
        details: Optional[Dict[str, Any]] = None
        settings = getattr(req.app.state, "settings", None) or get_settings()
        if settings.exposes_internals:
            details = {
                "type": exc.__class__.__name__,
                "trace": traceback.format_exception(type(exc), exc, exc.__traceback__),
            }
        return JSONResponse(
            status_code=_http_for(code),
            content=_problem(code, _msg_for(code), details, _extract_correlation_id(req)),
        )
