"""
Client side of the service: fetch a token, then move bytes straight to or
from blob storage with it. The token service never sees file contents.
"""
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional
from urllib.parse import quote

import requests
from azure.storage.blob import BlobClient, ContentSettings

from .models import DEFAULT_CONTENT_TYPE, AccessToken, BlobListing, display_name
from .telemetry import LoggingTelemetry, TelemetrySink

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


class TransferError(Exception):
    def __init__(self, message: str, error_code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code


class TokenApiClient:
    def __init__(self, base_url: str, session: Optional[requests.Session] = None, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def get_upload_token(self, file_name: str, content_type: str) -> AccessToken:
        data = self._call(
            "POST", "/storage/upload-token",
            json={"fileName": file_name, "contentType": content_type},
            fallback="Failed to get upload token",
        )
        return AccessToken.model_validate(data)

    def get_download_token(self, blob_name: str) -> AccessToken:
        data = self._call(
            "GET", f"/storage/download-token/{quote(blob_name, safe='')}",
            fallback="Failed to get download token",
        )
        return AccessToken.model_validate(data)

    def list_blobs(self) -> List[BlobListing]:
        data = self._call("GET", "/storage/blobs", fallback="Failed to list blobs")
        return [BlobListing.model_validate(item) for item in data or []]

    def health(self) -> Dict[str, Any]:
        resp = self.session.get(f"{self.base_url}/storage/health", timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def _call(self, method: str, path: str, fallback: str, **kwargs) -> Any:
        resp = self.session.request(method, f"{self.base_url}{path}", timeout=self.timeout, **kwargs)
        try:
            body = resp.json()
        except ValueError:
            raise TransferError(fallback, status_code=resp.status_code)

        if not isinstance(body, dict):
            raise TransferError(fallback, status_code=resp.status_code)

        if not resp.ok or not body.get("success"):
            raise TransferError(
                body.get("message") or fallback,
                error_code=body.get("errorCode"),
                status_code=resp.status_code,
            )
        return body.get("data")


@dataclass
class FileTransfer:
    file_name: str
    size: int = 0
    progress: float = 0.0
    status: str = "pending"  # pending | uploading | completed | error
    blob_name: Optional[str] = None
    url: Optional[str] = None
    error: Optional[str] = None


class TransferDriver:
    def __init__(
        self,
        api: TokenApiClient,
        telemetry: Optional[TelemetrySink] = None,
        blob_client_factory: Callable[[str], BlobClient] = BlobClient.from_blob_url,
    ):
        self.api = api
        self.telemetry = telemetry or LoggingTelemetry()
        self._blob_client = blob_client_factory

    def list_blobs(self) -> List[BlobListing]:
        self.telemetry.track_event("ListBlobs")
        try:
            blobs = self.api.list_blobs()
        except Exception as e:
            self.telemetry.track_exception(e)
            raise
        self.telemetry.track_event("BlobsListed", {"count": len(blobs)})
        return blobs

    def upload(
        self,
        path,
        content_type: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        transfer: Optional[FileTransfer] = None,
    ) -> FileTransfer:
        path = Path(path)
        ctype = content_type or mimetypes.guess_type(path.name)[0] or DEFAULT_CONTENT_TYPE
        transfer = transfer or FileTransfer(file_name=path.name)

        try:
            size = transfer.size = path.stat().st_size
            self.telemetry.track_event("GetUploadToken", {"fileName": path.name, "contentType": ctype})
            token = self.api.get_upload_token(path.name, ctype)
            self.telemetry.track_event("UploadTokenReceived", {"fileName": path.name})

            transfer.status = "uploading"
            transfer.blob_name = token.blob_name
            self.telemetry.track_event(
                "UploadFileStart", {"fileName": path.name, "fileSize": size, "contentType": ctype}
            )

            def hook(current: int, total: Optional[int]) -> None:
                fraction = _fraction(current, total or size)
                transfer.progress = fraction
                if on_progress:
                    on_progress(fraction)
                self.telemetry.track_metric(
                    "UploadProgress", fraction * 100,
                    {"fileName": path.name, "loadedBytes": current, "totalBytes": total or size},
                )

            client = self._blob_client(token.blob_uri)
            with path.open("rb") as data:
                client.upload_blob(
                    data,
                    length=size,
                    overwrite=True,
                    content_settings=ContentSettings(content_type=ctype),
                    progress_hook=hook,
                )
        except Exception as e:
            transfer.status = "error"
            transfer.error = str(e) or type(e).__name__
            self.telemetry.track_exception(e, {"fileName": path.name})
            raise

        transfer.status = "completed"
        transfer.progress = 1.0
        transfer.url = token.resource_uri
        self.telemetry.track_event(
            "UploadFileComplete", {"fileName": path.name, "fileSize": size, "blobName": token.blob_name}
        )
        return transfer

    def upload_many(
        self,
        paths: Iterable,
        on_progress: Optional[Callable[[FileTransfer], None]] = None,
    ) -> List[FileTransfer]:
        """
        Upload files one after another. A failed file is marked as such and
        the remaining files are still attempted.
        """
        paths = list(paths)
        transfers = [FileTransfer(file_name=Path(p).name) for p in paths]
        for p, transfer in zip(paths, transfers):
            try:
                self.upload(
                    p,
                    on_progress=(lambda _f, t=transfer: on_progress(t)) if on_progress else None,
                    transfer=transfer,
                )
            except Exception as e:
                logger.warning("Upload of %s failed: %s", transfer.file_name, transfer.error or e)
        return transfers

    def download(self, blob_name: str, destination_dir, on_progress: Optional[ProgressCallback] = None) -> Path:
        try:
            target = _local_target(destination_dir, blob_name)
            self.telemetry.track_event("GetDownloadToken", {"blobName": blob_name})
            token = self.api.get_download_token(blob_name)
            self.telemetry.track_event("DownloadTokenReceived", {"blobName": blob_name})

            self.telemetry.track_event("DownloadFileStart", {"blobName": blob_name})

            def hook(current: int, total: Optional[int]) -> None:
                if on_progress:
                    on_progress(_fraction(current, total))

            client = self._blob_client(token.blob_uri)
            stream = client.download_blob(progress_hook=hook)
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open("wb") as fh:
                stream.readinto(fh)
        except Exception as e:
            self.telemetry.track_exception(e, {"blobName": blob_name})
            raise

        self.telemetry.track_event("DownloadFileComplete", {"blobName": blob_name})
        return target


def _fraction(current: int, total: Optional[int]) -> float:
    if not total:
        return 0.0
    return min(current / total, 1.0)


def _local_target(destination_dir, blob_name: str) -> Path:
    # blob names carry caller-chosen file names; keep only the final component
    name = Path(display_name(blob_name).replace("\\", "/")).name
    if name in ("", ".", ".."):
        raise TransferError(f"Cannot derive a local file name from blob {blob_name!r}")
    root = Path(destination_dir)
    target = root / name
    if root.resolve() not in target.resolve().parents:
        raise TransferError(f"Refusing to write {blob_name!r} outside {root}")
    return target
