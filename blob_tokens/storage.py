import logging
from datetime import datetime
from typing import Iterator, Optional

from azure.core.credentials import TokenCredential
from azure.core.exceptions import AzureError, ClientAuthenticationError
from azure.storage.blob import (
    BlobProperties,
    BlobSasPermissions,
    BlobServiceClient,
    UserDelegationKey,
    generate_blob_sas,
)

from .config import Settings
from .credentials import CredentialSelection, build_token_credential
from .errors import AuthFailure, BackendUnavailable

logger = logging.getLogger(__name__)


def _translate(exc: AzureError, action: str) -> Exception:
    if isinstance(exc, ClientAuthenticationError):
        return AuthFailure(f"{action}: authentication rejected ({type(exc).__name__})")
    return BackendUnavailable(f"{action}: {type(exc).__name__}")


class BlobCredentialClient:
    """
    Thin wrapper over the storage account: user delegation keys, SAS signing
    and container enumeration. Holds no per-request state.
    """

    def __init__(self, account_name: str, service: BlobServiceClient):
        self.account_name = account_name
        self._service = service

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        selection: CredentialSelection,
        credential: Optional[TokenCredential] = None,
    ) -> "BlobCredentialClient":
        cred = credential or build_token_credential(selection)
        svc = BlobServiceClient(account_url=settings.account_url, credential=cred)
        logger.info(
            "BlobServiceClient initialized for %s with %s credential",
            settings.account_url, selection.kind,
        )
        return cls(settings.account_name, svc)

    def obtain_delegation_key(self, valid_from: datetime, valid_until: datetime) -> UserDelegationKey:
        try:
            udk = self._service.get_user_delegation_key(
                key_start_time=valid_from, key_expiry_time=valid_until
            )
        except AzureError as e:
            raise _translate(e, "get_user_delegation_key") from e
        logger.debug("User delegation key obtained, valid until %s", valid_until.isoformat())
        return udk

    def sign_scoped_token(
        self,
        container_name: str,
        blob_name: str,
        permissions: BlobSasPermissions,
        valid_from: datetime,
        valid_until: datetime,
        delegation_key: UserDelegationKey,
    ) -> str:
        return generate_blob_sas(
            account_name=self.account_name,
            container_name=container_name,
            blob_name=blob_name,
            user_delegation_key=delegation_key,
            permission=permissions,
            start=valid_from,
            expiry=valid_until,
        )

    def blob_url(self, container_name: str, blob_name: str) -> str:
        return self._service.get_blob_client(container=container_name, blob=blob_name).url

    def list_blobs(self, container_name: str) -> Iterator[BlobProperties]:
        """Enumerate the container from scratch; pages are fetched lazily."""
        container = self._service.get_container_client(container_name)
        try:
            for props in container.list_blobs():
                yield props
        except AzureError as e:
            raise _translate(e, f"list_blobs({container_name})") from e
