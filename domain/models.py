from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class AssetStatus(str, Enum):
    UPLOADED = "Uploaded"
    READY = "Ready"
    ERROR = "Error"

    @property
    def is_terminal(self) -> bool:
        return self is not AssetStatus.UPLOADED


class MetadataRecord(BaseModel):
    """
    The per-asset descriptor stored at models/{id}/metadata.json.
    Serialized with camelCase keys (modelUrl, thumbnailUrl...) so existing
    listing clients and the render page keep working.
    """

    # Unknown keys round-trip through load and save
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, protected_namespaces=(), extra="allow"
    )

    id: str
    name: str
    model_url: Optional[str] = None
    texture_url: Optional[str] = None
    model_type: Optional[str] = None
    status: AssetStatus = AssetStatus.UPLOADED
    thumbnail_url: Optional[str] = None
    timestamp: int = 0
    version: int = 1

    def to_json(self) -> bytes:
        return self.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")

    @classmethod
    def from_json(cls, raw: bytes) -> "MetadataRecord":
        return cls.model_validate_json(raw)


# --- Storage value objects ---


@dataclass
class StoredObject:
    key: str
    url: str
    etag: Optional[str] = None


@dataclass
class StoredBlob:
    key: str
    data: bytes
    etag: Optional[str] = None


@dataclass
class BlobEntry:
    key: str
    url: str
    size: int = 0


@dataclass
class DeleteOutcome:
    """Aggregate result of a batch delete. Keys are independent; no rollback."""

    deleted: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass
class ExtractedBundle:
    model_bytes: bytes
    texture_bytes: bytes
    model_extension: str  # includes the dot, e.g. ".obj"
    model_entry_name: str = ""
    texture_entry_name: str = ""

    @property
    def model_type(self) -> str:
        return self.model_extension.lstrip(".")


# --- API Models ---


class UploadResponse(BaseModel):
    id: str
    name: str
    message: str


class RenderRequest(BaseModel):
    modelId: Optional[str] = None


class RenderResponse(BaseModel):
    id: str
    status: AssetStatus
    thumbnailUrl: Optional[str] = None


class DeleteRequest(BaseModel):
    id: Optional[str] = Field(default=None)


class DeleteResponse(BaseModel):
    id: str
    message: str
