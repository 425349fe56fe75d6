"""
Typed API responses.

Only the envelope and the fields the upload pipeline reads are declared;
everything else the server sends is kept as extra attributes, and the whole
decoded tree stays reachable through `full_response`.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, PrivateAttr


class ApiResponse(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    status: str | None = None
    message: Any = None

    _full_response: Any = PrivateAttr(default=None)

    def is_ok(self) -> bool:
        return self.status == "ok"

    @property
    def full_response(self) -> Any:
        return self._full_response


class UploadPhotoResponse(ApiResponse):
    upload_id: str | None = None
    media_id: str | None = None


class VideoUploadUrl(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    url: str
    job: str
    expires: float | None = None


class UploadJobVideoResponse(ApiResponse):
    video_upload_urls: list[VideoUploadUrl] = []


class UploadVideoResponse(ApiResponse):
    result: Any = None


class UserResponse(ApiResponse):
    user: dict | None = None
