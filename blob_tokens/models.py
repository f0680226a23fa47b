from datetime import datetime
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

DEFAULT_CONTENT_TYPE = "application/octet-stream"

T = TypeVar("T")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class AccessTokenRequest(CamelModel):
    """Body of POST /storage/upload-token."""
    file_name: str
    content_type: Optional[str] = DEFAULT_CONTENT_TYPE

    @field_validator("content_type")
    @classmethod
    def default_content_type(cls, value: Optional[str]) -> str:
        # browsers send null for File.type they cannot guess
        if value is None or not value.strip():
            return DEFAULT_CONTENT_TYPE
        return value


class AccessToken(CamelModel):
    """
    A SAS credential scoped to one blob.

    `resource_uri` is the bare blob URL; `blob_uri` is the same URL with the
    token appended and is what clients transfer against.
    """
    sas_token: str
    blob_uri: str
    resource_uri: str
    container_name: str
    blob_name: str
    permissions: str
    starts_on: datetime
    expires_on: datetime


class BlobListing(CamelModel):
    name: str
    uri: str
    size: int = Field(default=0, ge=0)
    last_modified: Optional[datetime] = None
    content_type: str = DEFAULT_CONTENT_TYPE


class HealthStatus(CamelModel):
    status: str = "healthy"
    timestamp: datetime


class Envelope(CamelModel, Generic[T]):
    success: bool
    data: Optional[T] = None
    message: str = ""
    error_code: Optional[str] = None

    @classmethod
    def ok(cls, data: T, message: str = "") -> "Envelope[T]":
        return cls(success=True, data=data, message=message)

    @classmethod
    def error(cls, message: str, error_code: Optional[str] = None) -> "Envelope[T]":
        return cls(success=False, data=None, message=message, error_code=error_code)


def display_name(blob_name: str) -> str:
    """Strip the '<uuid>_' prefix added at upload time."""
    if "_" in blob_name:
        return blob_name.split("_", 1)[1]
    return blob_name
