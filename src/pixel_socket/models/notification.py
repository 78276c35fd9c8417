"""
Notification Schemas
====================

Pydantic models for images received from a Pixel Socket server.

Primary Contract (binary frame, zstd + MessagePack):
    {
        "type": "notification-from-pixel-socket",
        "payload": {
            "jobId": "abc",
            "blobData": <bytes or nil>,
            "imageLength": 100,
            "fileExtension": "png",
            "mimeType": "image/png",
            "objectUrl": <str or nil>,
            "secretToken": "...",
            "timestamp": 1707321234567,
            "promptParams": [["seed", 42], ["steps", 20]]
        }
    }

Legacy Contracts (text frames):
    {"type": "image-generated", "data": {"base64Data": ..., "mimeType": ..., "timestamp": ...}}
    {"image": "<base64>", "metadata": {"timestamp": ..., "format": ..., "mimeType": ...}}
    "<base64>" or "data:image/png;base64,<base64>"

Field names follow the wire (camelCase) through aliases; Python code
uses the snake_case attribute names.
"""

from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class NotificationPayload(BaseModel):
    """
    One image notification from the primary wire format.
    
    Absent wire fields stay None rather than defaulting to empty values.
    When blob_data is None the image lives in external object storage
    and object_url (if any) references it.
    
    Attributes:
        job_id: Identifier of the generation job
        blob_data: Raw image bytes, or None when stored externally
        image_length: Declared byte length of the image
        file_extension: Resolved file extension (declared, mime, or sniffed)
        mime_type: Declared mime type
        object_url: Object storage reference when bytes are not inlined
        secret_token: Opaque per-job auth token
        timestamp: Epoch milliseconds
        prompt_params: Ordered (key, value) generation parameters
    """
    
    model_config = ConfigDict(populate_by_name=True, frozen=True)
    
    job_id: str = Field(..., alias="jobId")
    blob_data: Optional[bytes] = Field(
        default=None, alias="blobData", strict=True, repr=False
    )
    image_length: Optional[int] = Field(default=None, alias="imageLength", ge=0)
    file_extension: Optional[str] = Field(default=None, alias="fileExtension")
    mime_type: Optional[str] = Field(default=None, alias="mimeType")
    object_url: Optional[str] = Field(default=None, alias="objectUrl")
    secret_token: Optional[str] = Field(default=None, alias="secretToken", repr=False)
    timestamp: Optional[int] = Field(default=None)
    prompt_params: Optional[List[Tuple[str, Any]]] = Field(
        default=None, alias="promptParams"
    )


class ImageMetadata(BaseModel):
    """Metadata attached to a legacy image message."""
    
    model_config = ConfigDict(populate_by_name=True, frozen=True)
    
    timestamp: Optional[int] = Field(default=None, description="Epoch milliseconds")
    format: str = Field(default="png", description="Image format token")
    mime_type: Optional[str] = Field(default=None, alias="mimeType")
    filename: Optional[str] = None
    width: Optional[int] = Field(default=None, ge=0)
    height: Optional[int] = Field(default=None, ge=0)
    generation_params: Optional[dict] = Field(default=None, alias="generationParams")
    prompt_id: Optional[str] = Field(default=None, alias="promptId")
    prompt_ids: Optional[List[str]] = Field(default=None, alias="promptIds")


class LegacyImageMessage(BaseModel):
    """
    Image decoded from one of the legacy text-frame formats.
    
    metadata is None for bare base64 frames, which carry no metadata.
    """
    
    model_config = ConfigDict(frozen=True)
    
    image: bytes = Field(..., strict=True, repr=False)
    metadata: Optional[ImageMetadata] = None
