import logging
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

from .errors import ConfigurationError

DEFAULT_CONTAINER = "uploads"
DEFAULT_ALLOWED_ORIGINS = ("http://localhost:4200",)


@dataclass(frozen=True)
class Settings:
    account_name: str
    container_name: str = DEFAULT_CONTAINER
    account_url: str = ""
    tenant_id: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = field(default=None, repr=False)
    allowed_origins: Tuple[str, ...] = DEFAULT_ALLOWED_ORIGINS
    log_level: str = "INFO"

    def __post_init__(self):
        if not self.account_url:
            object.__setattr__(
                self, "account_url", f"https://{self.account_name}.blob.core.windows.net"
            )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ

        account_name = env.get("STORAGE_ACCOUNT_NAME", "").strip()
        if not account_name:
            raise ConfigurationError("STORAGE_ACCOUNT_NAME is not configured")

        container = env.get("STORAGE_CONTAINER_NAME", "").strip() or DEFAULT_CONTAINER

        return cls(
            account_name=account_name,
            container_name=container,
            account_url=env.get("STORAGE_ACCOUNT_URL", "").strip().rstrip("/"),
            tenant_id=_blank_to_none(env.get("AZURE_TENANT_ID")),
            client_id=_blank_to_none(env.get("AZURE_CLIENT_ID")),
            client_secret=_blank_to_none(env.get("AZURE_CLIENT_SECRET")),
            allowed_origins=parse_origins(env.get("CORS_ALLOWED_ORIGINS")),
            log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        )


def configure_logging(settings: Settings) -> None:
    # the Functions host owns the root handlers; only set our level
    logging.getLogger("blob_tokens").setLevel(settings.log_level)


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def parse_origins(raw: Optional[str]) -> Tuple[str, ...]:
    if not raw:
        return DEFAULT_ALLOWED_ORIGINS
    origins = tuple(o.strip().rstrip("/") for o in raw.split(",") if o.strip())
    return origins or DEFAULT_ALLOWED_ORIGINS
