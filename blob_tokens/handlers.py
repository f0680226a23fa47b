"""
HTTP adaptation for the token service.

Every response body is an Envelope: {success, data, message, errorCode}.
Exceptions are translated in exactly one place, `error_response`.
"""
import functools
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import azure.functions as func

from .config import Settings
from .credentials import select_credential
from .errors import InvalidRequest, resolve_error
from .models import AccessToken, AccessTokenRequest, BlobListing, Envelope, HealthStatus
from .service import TokenIssuanceService
from .storage import BlobCredentialClient

logger = logging.getLogger(__name__)

JSON = "application/json"
PREFLIGHT_METHODS = "GET, POST, OPTIONS"


def cors_headers(req: func.HttpRequest, allowed_origins: Iterable[str]) -> Dict[str, str]:
    origin = (req.headers.get("origin") or "").rstrip("/")
    if not origin or origin not in allowed_origins:
        return {}
    return {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Credentials": "true",
        "Vary": "Origin",
    }


def json_response(
    req: func.HttpRequest,
    payload: Any,
    status_code: int = 200,
    allowed_origins: Iterable[str] = (),
) -> func.HttpResponse:
    if hasattr(payload, "to_json_dict"):
        payload = payload.to_json_dict()
    return func.HttpResponse(
        json.dumps(payload),
        status_code=status_code,
        mimetype=JSON,
        headers=cors_headers(req, allowed_origins),
    )


def error_response(
    req: func.HttpRequest,
    exc: Exception,
    operation: str,
    allowed_origins: Iterable[str] = (),
) -> func.HttpResponse:
    code, message = resolve_error(exc)
    if code.status_code >= 500:
        logger.error("%s failed with %s", operation, code.name, exc_info=exc)
    else:
        logger.warning("%s rejected: %s", operation, message)
    return json_response(
        req,
        Envelope.error(message, code.name),
        status_code=code.status_code,
        allowed_origins=allowed_origins,
    )


def envelope_errors(handler):
    """Turn whatever a handler raises into an error envelope."""

    @functools.wraps(handler)
    def wrapper(self, req: func.HttpRequest, *args, **kwargs):
        try:
            return handler(self, req, *args, **kwargs)
        except Exception as e:
            return error_response(req, e, handler.__name__, self.allowed_origins)

    return wrapper


class StorageApi:
    def __init__(self, service: TokenIssuanceService, allowed_origins: Iterable[str] = ()):
        self.service = service
        self.allowed_origins = tuple(allowed_origins)

    @classmethod
    def from_settings(cls, settings: Settings) -> "StorageApi":
        selection = select_credential(settings)
        client = BlobCredentialClient.from_settings(settings, selection)
        service = TokenIssuanceService(client, settings.container_name)
        return cls(service, settings.allowed_origins)

    @envelope_errors
    def upload_token(self, req: func.HttpRequest) -> func.HttpResponse:
        body = _json_body(req)
        if not isinstance(body, dict):
            raise InvalidRequest("Request body must be a JSON object")
        request = AccessTokenRequest.model_validate(body)
        logger.info(
            "Received request for upload SAS token. FileName: %s, ContentType: %s",
            request.file_name, request.content_type,
        )
        token = self.service.issue_upload_token(request.file_name, request.content_type)
        return json_response(
            req,
            Envelope[AccessToken].ok(token, "SAS token generated successfully"),
            allowed_origins=self.allowed_origins,
        )

    @envelope_errors
    def download_token(self, req: func.HttpRequest) -> func.HttpResponse:
        blob_name = req.route_params.get("blobName")
        logger.info("Received request for download SAS token. BlobName: %s", blob_name)
        token = self.service.issue_download_token(blob_name)
        return json_response(
            req,
            Envelope[AccessToken].ok(token, "Download SAS token generated successfully"),
            allowed_origins=self.allowed_origins,
        )

    @envelope_errors
    def list_blobs(self, req: func.HttpRequest) -> func.HttpResponse:
        blobs = self.service.list_blobs()
        return json_response(
            req,
            Envelope[List[BlobListing]].ok(blobs, f"Retrieved {len(blobs)} blobs"),
            allowed_origins=self.allowed_origins,
        )

    def preflight(self, req: func.HttpRequest) -> func.HttpResponse:
        headers = cors_headers(req, self.allowed_origins)
        if headers:
            headers["Access-Control-Allow-Methods"] = PREFLIGHT_METHODS
            headers["Access-Control-Allow-Headers"] = (
                req.headers.get("access-control-request-headers") or "Content-Type"
            )
        return func.HttpResponse(status_code=204, headers=headers)


def health(req: func.HttpRequest, allowed_origins: Iterable[str] = ()) -> func.HttpResponse:
    status = HealthStatus(timestamp=datetime.now(timezone.utc))
    return json_response(req, status, allowed_origins=allowed_origins)


def _json_body(req: func.HttpRequest) -> Optional[Any]:
    try:
        return req.get_json()
    except ValueError:
        raise InvalidRequest("Request body must be valid JSON")
