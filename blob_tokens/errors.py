from enum import Enum
from typing import Tuple

from pydantic import ValidationError


class ErrorCode(Enum):
    # caller errors
    INVALID_REQUEST = (400, "Invalid request")
    BAD_REQUEST = (400, "Bad request")
    UNAUTHORIZED = (401, "Unauthorized access.")
    NOT_FOUND = (404, "Resource not found.")

    # operation failures
    TOKEN_GENERATION_FAILED = (500, "Failed to generate SAS token")
    LIST_BLOBS_FAILED = (500, "Failed to list blobs")
    INTERNAL_SERVER_ERROR = (500, "An error occurred while processing your request.")

    @property
    def status_code(self) -> int:
        return self.value[0]

    @property
    def msg(self) -> str:
        return self.value[1]


class BlobTokenError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(BlobTokenError, ValueError):
    pass


class InvalidRequest(BlobTokenError):
    """The caller sent something we refuse to act on. Safe to echo back."""


class AuthFailure(BlobTokenError):
    """Storage backend rejected our identity."""


class BackendUnavailable(BlobTokenError):
    """Storage backend could not be reached or answered with an error."""


class TokenGenerationFailed(BlobTokenError):
    def __init__(self, blob_name: str, msg: str = ErrorCode.TOKEN_GENERATION_FAILED.msg):
        super().__init__(msg)
        self.blob_name = blob_name
        self.msg = msg


class ListBlobsFailed(BlobTokenError):
    def __init__(self, container_name: str):
        super().__init__(ErrorCode.LIST_BLOBS_FAILED.msg)
        self.container_name = container_name


def resolve_error(exc: BaseException) -> Tuple[ErrorCode, str]:
    """
    Map any exception reaching the HTTP boundary to (ErrorCode, message).

    Only caller errors surface their own text; everything else gets the
    code's generic message.
    """
    if isinstance(exc, InvalidRequest):
        return ErrorCode.INVALID_REQUEST, str(exc) or ErrorCode.INVALID_REQUEST.msg
    if isinstance(exc, ValidationError):
        return ErrorCode.INVALID_REQUEST, _validation_message(exc)
    if isinstance(exc, TokenGenerationFailed):
        return ErrorCode.TOKEN_GENERATION_FAILED, exc.msg
    if isinstance(exc, ListBlobsFailed):
        return ErrorCode.LIST_BLOBS_FAILED, ErrorCode.LIST_BLOBS_FAILED.msg
    if isinstance(exc, BlobTokenError):
        # AuthFailure / BackendUnavailable escaping a handler unwrapped
        return ErrorCode.INTERNAL_SERVER_ERROR, ErrorCode.INTERNAL_SERVER_ERROR.msg
    if isinstance(exc, (ValueError, TypeError)):
        return ErrorCode.BAD_REQUEST, str(exc) or ErrorCode.BAD_REQUEST.msg
    if isinstance(exc, PermissionError):
        return ErrorCode.UNAUTHORIZED, ErrorCode.UNAUTHORIZED.msg
    if isinstance(exc, LookupError):
        return ErrorCode.NOT_FOUND, _lookup_message(exc)
    return ErrorCode.INTERNAL_SERVER_ERROR, ErrorCode.INTERNAL_SERVER_ERROR.msg


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or ErrorCode.INVALID_REQUEST.msg


def _lookup_message(exc: LookupError) -> str:
    # KeyError wraps its argument in quotes when stringified
    if isinstance(exc, KeyError) and exc.args:
        return str(exc.args[0])
    return str(exc) or ErrorCode.NOT_FOUND.msg
