from .config import Settings
from .errors import (
    AuthFailure,
    BackendUnavailable,
    ErrorCode,
    InvalidRequest,
    ListBlobsFailed,
    TokenGenerationFailed,
)
from .models import AccessToken, AccessTokenRequest, BlobListing, Envelope
from .service import TokenIssuanceService
