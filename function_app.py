import logging, os

from functools import lru_cache

import azure.functions as func

from blob_tokens.config import Settings, configure_logging, parse_origins
from blob_tokens.handlers import StorageApi, error_response, health

app = func.FunctionApp(http_auth_level=func.AuthLevel.ANONYMOUS)


@lru_cache(maxsize=1)
def get_api() -> StorageApi:
    # built once per worker; credentials and the BlobServiceClient are reused
    settings = Settings.from_env()
    configure_logging(settings)
    api = StorageApi.from_settings(settings)
    logging.info("Storage token API initialised for container %s", settings.container_name)
    return api


def _dispatch(req: func.HttpRequest, operation: str) -> func.HttpResponse:
    try:
        api = get_api()
    except Exception as e:
        return error_response(req, e, operation, parse_origins(os.environ.get("CORS_ALLOWED_ORIGINS")))

    if req.method == "OPTIONS":
        return api.preflight(req)
    return getattr(api, operation)(req)


@app.route(route="storage/upload-token", methods=["POST", "OPTIONS"])
def upload_token(req: func.HttpRequest) -> func.HttpResponse:
    """
    POST /api/storage/upload-token

    body: { fileName, contentType }

    returns an envelope whose data is a SAS token for "<uuid>_<fileName>"
    with read/write/create permission, valid for one hour.
    """
    return _dispatch(req, "upload_token")


@app.route(route="storage/download-token/{blobName}", methods=["GET", "OPTIONS"])
def download_token(req: func.HttpRequest) -> func.HttpResponse:
    """GET /api/storage/download-token/{blobName}: read-only SAS for one blob."""
    return _dispatch(req, "download_token")


@app.route(route="storage/blobs", methods=["GET", "OPTIONS"])
def list_blobs(req: func.HttpRequest) -> func.HttpResponse:
    return _dispatch(req, "list_blobs")


@app.route(route="storage/health", methods=["GET"])
def storage_health(req: func.HttpRequest) -> func.HttpResponse:
    # never touches storage or configuration
    return health(req, parse_origins(os.environ.get("CORS_ALLOWED_ORIGINS")))
