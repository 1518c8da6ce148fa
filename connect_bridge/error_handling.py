"""
Error taxonomy and Flask error handlers.

Every error reaching a client is rendered as
{"success": false, "error": <message>, "code": <code>}. Upstream and
storage details are logged server-side only.
"""

import logging
from enum import Enum
from typing import Dict, Any, Optional

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class ErrorCode(Enum):
    """Standardized API error codes."""

    # Validation (2000-2099)
    VALIDATION_MISSING_FIELD = "VAL_2001"
    VALIDATION_MALFORMED_BODY = "VAL_2002"
    VALIDATION_MALFORMED_EVENT = "VAL_2003"

    # Resources (3000-3099)
    RESOURCE_NOT_FOUND = "RES_3001"
    RESOURCE_METHOD_NOT_ALLOWED = "RES_3002"

    # Upstream services (5000-5099)
    UPSTREAM_FAILURE = "UPS_5001"

    # System (9000-9099)
    SYSTEM_INTERNAL_ERROR = "SYS_9001"
    SYSTEM_STORAGE_UNAVAILABLE = "SYS_9002"


class BridgeAPIError(Exception):
    """Base class for errors surfaced to API callers."""

    error_code = ErrorCode.SYSTEM_INTERNAL_ERROR
    http_status = 500
    default_message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(f"{self.error_code.value}: {self.message}")

    def to_dict(self) -> Dict[str, Any]:
        response = {
            'success': False,
            'error': self.message,
            'code': self.error_code.value
        }
        if self.details:
            response['details'] = self.details
        return response


class MissingField(BridgeAPIError):
    """A required input field is absent or empty."""
    error_code = ErrorCode.VALIDATION_MISSING_FIELD
    http_status = 400
    default_message = "Missing required field"

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Missing required field: {field}", {'field': field})


class MalformedBody(BridgeAPIError):
    """Request body does not match the accepted shape."""
    error_code = ErrorCode.VALIDATION_MALFORMED_BODY
    http_status = 400
    default_message = "Malformed request body"


class MalformedEvent(BridgeAPIError):
    """Webhook event cannot be parsed or verified."""
    error_code = ErrorCode.VALIDATION_MALFORMED_EVENT
    http_status = 400
    default_message = "Malformed webhook event"


class NotFound(BridgeAPIError):
    error_code = ErrorCode.RESOURCE_NOT_FOUND
    http_status = 404
    default_message = "Resource not found"


class StorageUnavailable(BridgeAPIError):
    """The mapping store cannot be read or written."""
    error_code = ErrorCode.SYSTEM_STORAGE_UNAVAILABLE
    http_status = 500
    default_message = "Something went wrong."


class UpstreamFailure(BridgeAPIError):
    """Stripe or Glide call failed. The upstream text is only logged."""
    error_code = ErrorCode.UPSTREAM_FAILURE
    http_status = 500
    default_message = "Something went wrong."


def get_request_context() -> Dict[str, Any]:
    """Request details attached to error logs."""
    try:
        return {
            'method': request.method,
            'path': request.path,
            'remote_addr': request.remote_addr,
            'endpoint': request.endpoint,
            'content_length': request.content_length
        }
    except RuntimeError:
        return {'context': 'unavailable'}


def register_error_handlers(app):
    """Register error handlers for the Flask app"""

    @app.errorhandler(BridgeAPIError)
    def handle_bridge_error(error: BridgeAPIError):
        log = logger.error if error.http_status >= 500 else logger.info
        log(
            f"{error.error_code.value} {error.http_status}: {error.message}",
            extra={'request_context': get_request_context()}
        )
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({
            'success': False,
            'error': 'The requested resource could not be found',
            'code': ErrorCode.RESOURCE_NOT_FOUND.value
        }), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({
            'success': False,
            'error': 'Method not allowed',
            'code': ErrorCode.RESOURCE_METHOD_NOT_ALLOWED.value
        }), 405

    @app.errorhandler(Exception)
    def handle_unexpected_error(e):
        if isinstance(e, HTTPException):
            code = ErrorCode.SYSTEM_INTERNAL_ERROR if e.code >= 500 else ErrorCode.VALIDATION_MALFORMED_BODY
            return jsonify({
                'success': False,
                'error': e.description,
                'code': code.value
            }), e.code

        logger.error(f'Unexpected error: {str(e)}', exc_info=True,
                     extra={'request_context': get_request_context()})
        return jsonify({
            'success': False,
            'error': 'Something went wrong.',
            'code': ErrorCode.SYSTEM_INTERNAL_ERROR.value
        }), 500
