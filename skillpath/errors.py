# errors.py
from typing import Dict, Optional


class SkillPathError(Exception):
    """Base class for every error the HTTP layer knows how to render."""

    status_code = 500
    error_code = "internal_error"
    default_message = "Internal Server Error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class Unauthorized(SkillPathError):
    status_code = 401
    error_code = "unauthorized"
    default_message = "Unauthorized"


class Forbidden(SkillPathError):
    status_code = 403
    error_code = "forbidden"
    default_message = "Forbidden"


class NotFound(SkillPathError):
    status_code = 404
    error_code = "not_found"
    default_message = "Not found"


class ValidationError(SkillPathError):
    status_code = 400
    error_code = "validation_error"
    default_message = "Invalid request"

    def __init__(self, message: Optional[str] = None, fields: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.fields = fields or {}


class Conflict(SkillPathError):
    status_code = 409
    error_code = "conflict"
    default_message = "Resource already exists"


class InternalError(SkillPathError):
    pass


class UpstreamError(SkillPathError):
    """The generative endpoint failed in a way that is not one of the kinds below."""

    status_code = 503
    error_code = "upstream_error"
    default_message = "The AI provider is unavailable. Please try again later."


class UpstreamTimeout(UpstreamError):
    status_code = 504
    error_code = "upstream_timeout"
    default_message = "The AI provider took too long to respond. Please try again."


class UpstreamFormatError(UpstreamError):
    status_code = 502
    error_code = "upstream_format_error"
    default_message = "Something went wrong with our AI provider (unexpected response format)."


class UpstreamParseError(UpstreamError):
    status_code = 424
    error_code = "upstream_parse_error"
    default_message = "Something went wrong with our AI provider (unreadable response)."
