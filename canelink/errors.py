# canelink/errors.py

from flask import jsonify, request
from pydantic import ValidationError
from pymongo.errors import DuplicateKeyError, PyMongoError
from werkzeug.exceptions import HTTPException


class ServiceError(Exception):
    """Raised by services; rendered as {success: false, message} with `status`."""

    def __init__(self, message="Service error", status=400, details=None):
        self.message = message
        self.status = status
        self.details = details or {}
        super().__init__(message)


def error_response(message, status=400, **extra):
    body = {"success": False, "message": message}
    body.update(extra)
    return jsonify(body), status


def _pydantic_messages(err: ValidationError):
    out = []
    for e in err.errors():
        field = ".".join(str(p) for p in e.get("loc", ()))
        out.append(f"{field}: {e.get('msg')}" if field else e.get("msg"))
    return out


def register_error_handlers(app):

    @app.errorhandler(ServiceError)
    def _service_error(e: ServiceError):
        return error_response(e.message, e.status, **e.details)

    @app.errorhandler(ValidationError)
    def _validation_error(e: ValidationError):
        return error_response("Validation failed", 400, errors=_pydantic_messages(e))

    @app.errorhandler(DuplicateKeyError)
    def _duplicate_key(e: DuplicateKeyError):
        app.logger.info("duplicate key: %s", e.details)
        return error_response("Duplicate entry", 409)

    @app.errorhandler(PyMongoError)
    def _mongo_error(e: PyMongoError):
        app.logger.error("database error: %s", e)
        return error_response("Database error", 500)

    @app.errorhandler(404)
    def _not_found(e):
        return error_response(
            "Route not found", 404, path=request.path, method=request.method
        )

    @app.errorhandler(405)
    def _not_allowed(e):
        return error_response("Method not allowed", 405)

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):
        return error_response(e.description or e.name, e.code or 500)

    @app.errorhandler(Exception)
    def _server_error(e):
        app.logger.exception("unhandled error")
        return error_response("Internal server error", 500)
