"""
Which Azure AD identity signs delegation keys.

Decided once at startup from configuration: a full tenant/client/secret set
selects a service principal, anything less falls back to the ambient chain
(managed identity in Azure, az login / env vars locally).
"""
import logging
from dataclasses import dataclass, field
from typing import Union

from azure.core.credentials import TokenCredential
from azure.identity import ClientSecretCredential, DefaultAzureCredential

from .config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExplicitSecretCredential:
    tenant_id: str
    client_id: str
    client_secret: str = field(repr=False)

    kind = "client_secret"


@dataclass(frozen=True)
class AmbientCredential:
    kind = "default"


CredentialSelection = Union[ExplicitSecretCredential, AmbientCredential]


def select_credential(settings: Settings) -> CredentialSelection:
    if settings.tenant_id and settings.client_id and settings.client_secret:
        return ExplicitSecretCredential(
            tenant_id=settings.tenant_id,
            client_id=settings.client_id,
            client_secret=settings.client_secret,
        )
    return AmbientCredential()


def build_token_credential(selection: CredentialSelection) -> TokenCredential:
    if isinstance(selection, ExplicitSecretCredential):
        logger.info("Using ClientSecretCredential for client %s", selection.client_id)
        return ClientSecretCredential(
            tenant_id=selection.tenant_id,
            client_id=selection.client_id,
            client_secret=selection.client_secret,
        )
    logger.info("Using DefaultAzureCredential")
    return DefaultAzureCredential()
