# Overview: JSON response envelope and app-wide error handlers.

"""
Every JSON response uses one envelope:

    {"success": bool, "message": str | None, "data": any, "errors": [str]}

Routes return api_ok(...) and raise typed exceptions; the handlers
registered here translate the error taxonomy into status codes.

SECURITY: TenantAccessError is reported exactly like NotFoundError so a
row in another organization is indistinguishable from a missing row.
Unexpected errors are logged with a traceback and return a generic message.
"""

from flask import current_app, jsonify
from sqlalchemy.orm.exc import StaleDataError
from werkzeug.exceptions import HTTPException

from .extensions import db
from .validation import ConflictError, NotFoundError, ValidationError
from .services.accounting_service import AccountingError
from .services.payment_gateway import PaymentGatewayError
from .services.permission_service import PermissionDeniedError
from .services.photo_storage import PhotoStorageError
from .services.tenant_service import TenantAccessError


def envelope(success: bool, *, data=None, message: str | None = None, errors: list[str] | None = None) -> dict:
    return {
        "success": success,
        "message": message,
        "data": data,
        "errors": errors or [],
    }


def api_ok(data=None, message: str | None = None, status: int = 200):
    return jsonify(envelope(True, data=data, message=message)), status


def api_error(message: str, status: int, *, errors: list[str] | None = None, data=None):
    return jsonify(envelope(False, data=data, message=message, errors=errors or [message])), status


def paged(items: list, total: int, limit: int, offset: int) -> dict:
    return {"items": items, "count": total, "limit": limit, "offset": offset}


def register_error_handlers(app) -> None:
    @app.errorhandler(ValidationError)
    def handle_validation(exc: ValidationError):
        db.session.rollback()
        return api_error(str(exc), 400, errors=exc.errors or [str(exc)])

    @app.errorhandler(NotFoundError)
    @app.errorhandler(TenantAccessError)
    def handle_not_found(exc):
        db.session.rollback()
        return api_error(str(exc) or "Not found", 404)

    @app.errorhandler(ConflictError)
    def handle_conflict(exc: ConflictError):
        db.session.rollback()
        return api_error(str(exc), 409, data=exc.details or None)

    @app.errorhandler(StaleDataError)
    def handle_stale(exc):
        db.session.rollback()
        current_app.logger.warning("Optimistic version conflict: %s", exc)
        return api_error("The record was modified concurrently, please retry", 409)

    @app.errorhandler(PermissionDeniedError)
    def handle_permission(exc: PermissionDeniedError):
        return api_error("Permission denied", 403, errors=[str(exc)],
                         data={"required_permission": exc.permission_code})

    @app.errorhandler(PaymentGatewayError)
    @app.errorhandler(AccountingError)
    @app.errorhandler(PhotoStorageError)
    def handle_vendor(exc):
        db.session.rollback()
        current_app.logger.error("Integration failure (%s): %s", type(exc).__name__, exc)
        return api_error(str(exc), 502)

    @app.errorhandler(HTTPException)
    def handle_http(exc: HTTPException):
        return api_error(exc.description or exc.name, exc.code or 500)

    @app.errorhandler(Exception)
    def handle_unexpected(exc):
        db.session.rollback()
        current_app.logger.exception("Unhandled error")
        return api_error("Internal server error", 500)
