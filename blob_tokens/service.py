import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from azure.storage.blob import BlobSasPermissions

from .errors import ErrorCode, InvalidRequest, ListBlobsFailed, TokenGenerationFailed
from .models import DEFAULT_CONTENT_TYPE, AccessToken, BlobListing
from .storage import BlobCredentialClient

logger = logging.getLogger(__name__)

CLOCK_SKEW = timedelta(minutes=5)
GRANT_DURATION = timedelta(hours=1)
DOWNLOAD_FAILURE_MSG = "Failed to generate download SAS token"


def upload_permissions() -> BlobSasPermissions:
    return BlobSasPermissions(read=True, write=True, create=True)


def download_permissions() -> BlobSasPermissions:
    return BlobSasPermissions(read=True)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenIssuanceService:
    def __init__(
        self,
        client: BlobCredentialClient,
        container_name: str,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        self._client = client
        self.container_name = container_name
        self._clock = clock
        self._new_id = id_factory

    def issue_upload_token(self, file_name: Optional[str], content_type: Optional[str] = None) -> AccessToken:
        if not file_name or not file_name.strip():
            raise InvalidRequest("FileName is required")

        blob_name = f"{self._new_id()}_{file_name}"
        logger.info(
            "Generating upload SAS token for blob %s (content type %s)",
            blob_name, content_type or DEFAULT_CONTENT_TYPE,
        )
        return self._issue(blob_name, upload_permissions())

    def issue_download_token(self, blob_name: Optional[str]) -> AccessToken:
        if not blob_name or not blob_name.strip():
            raise InvalidRequest("BlobName is required")

        # no existence check: a missing blob fails at transfer time
        logger.info("Generating download SAS token for blob %s", blob_name)
        return self._issue(blob_name, download_permissions(), DOWNLOAD_FAILURE_MSG)

    def _issue(
        self,
        blob_name: str,
        permissions: BlobSasPermissions,
        failure_msg: str = ErrorCode.TOKEN_GENERATION_FAILED.msg,
    ) -> AccessToken:
        now = self._clock()
        valid_from = now - CLOCK_SKEW
        valid_until = now + GRANT_DURATION

        try:
            udk = self._client.obtain_delegation_key(valid_from, valid_until)
            sas = self._client.sign_scoped_token(
                self.container_name, blob_name, permissions, valid_from, valid_until, udk
            )
            resource_uri = self._client.blob_url(self.container_name, blob_name)
        except Exception as e:
            logger.exception("Error generating SAS token for blob %s", blob_name)
            raise TokenGenerationFailed(blob_name, failure_msg) from e

        logger.info("Successfully generated SAS token for blob %s", blob_name)
        return AccessToken(
            sas_token=sas,
            blob_uri=f"{resource_uri}?{sas}",
            resource_uri=resource_uri,
            container_name=self.container_name,
            blob_name=blob_name,
            permissions=str(permissions),
            starts_on=valid_from,
            expires_on=valid_until,
        )

    def list_blobs(self) -> List[BlobListing]:
        logger.info("Listing blobs in container %s", self.container_name)
        try:
            blobs = [
                BlobListing(
                    name=props.name,
                    uri=self._client.blob_url(self.container_name, props.name),
                    size=props.size or 0,
                    last_modified=props.last_modified,
                    content_type=_content_type(props) or DEFAULT_CONTENT_TYPE,
                )
                for props in self._client.list_blobs(self.container_name)
            ]
        except Exception as e:
            logger.exception("Error listing blobs in container %s", self.container_name)
            raise ListBlobsFailed(self.container_name) from e

        logger.info("Successfully listed %d blobs", len(blobs))
        return blobs


def _content_type(props) -> Optional[str]:
    settings = getattr(props, "content_settings", None)
    return getattr(settings, "content_type", None) if settings is not None else None
