from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from blob_tokens.storage import BlobCredentialClient
from blob_tokens.service import TokenIssuanceService

ACCOUNT_URL = "https://acct.blob.core.windows.net"
CONTAINER = "uploads"
FIXED_NOW = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)
FAKE_SAS = "skoid=oid&sktid=tid&sp=r&st=x&se=y&sr=b&sig=c2ln"


@pytest.fixture
def credential_client():
    client = MagicMock(spec=BlobCredentialClient)
    client.account_name = "acct"
    client.obtain_delegation_key.return_value = MagicMock(name="UserDelegationKey")
    client.sign_scoped_token.return_value = FAKE_SAS
    client.blob_url.side_effect = lambda container, blob: f"{ACCOUNT_URL}/{container}/{blob}"
    client.list_blobs.return_value = iter(())
    return client


@pytest.fixture
def service(credential_client):
    return TokenIssuanceService(credential_client, CONTAINER, clock=lambda: FIXED_NOW)


@pytest.fixture
def fixed_now():
    return FIXED_NOW
