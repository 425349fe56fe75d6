"""
API client: the request builders that sit directly on the transport.

Each method here is one small unit of work ("request an upload URL", "upload
a photo"). Multi-step flows belong to callers; the only exception is the
whole-sequence video retry, which lives in chunked_upload.
"""

import json
import mimetypes
import random
from pathlib import Path
from typing import Any, Callable

from .account import AccountSession
from .chunked_upload import UploadSession, upload_video_chunks, upload_video_data
from .config import BridgeSettings
from .constants import (
    ACCEPT_ENCODING,
    ACCEPT_LANGUAGE,
    CONNECTION_SPEED_MAX,
    CONNECTION_SPEED_MIN,
    CONTENT_TYPE,
    IMAGE_COMPRESSION,
    X_FB_HTTP_ENGINE,
    X_IG_CAPABILITIES,
    X_IG_CONNECTION_TYPE,
)
from .decoder import api_body_decode
from .errors import InvalidArgument, MalformedResponse
from .multipart import MultipartPart, encode_multipart, multipart_content_type
from .request import RequestOptions
from .responses import (
    ApiResponse,
    UploadJobVideoResponse,
    UploadPhotoResponse,
    UploadVideoResponse,
    UserResponse,
)
from .signatures import generate_upload_id, sign_body
from .transport import Transport

UPLOAD_TYPES = ("timeline", "story", "album")
SHARE_TYPES = ("share", "message", "photo")


def build_headers(user_agent: str, content_type: str = CONTENT_TYPE) -> dict[str, str]:
    """Headers the app sends on every plain API call."""
    return {
        "User-Agent": user_agent,
        "Connection": "keep-alive",
        "Accept": "*/*",
        "Accept-Encoding": ACCEPT_ENCODING,
        "X-IG-Capabilities": X_IG_CAPABILITIES,
        "X-IG-Connection-Type": X_IG_CONNECTION_TYPE,
        "X-IG-Connection-Speed": f"{random.randrange(CONNECTION_SPEED_MIN, CONNECTION_SPEED_MAX)}kbps",
        "X-FB-HTTP-Engine": X_FB_HTTP_ENGINE,
        "Content-Type": content_type,
        "Accept-Language": ACCEPT_LANGUAGE,
    }


def build_upload_headers(user_agent: str, boundary: str, proxy_keep_alive: bool = False) -> dict[str, str]:
    """Shorter header set the app uses for multipart calls outside photo upload."""
    headers = {"User-Agent": user_agent}
    if proxy_keep_alive:
        headers["Proxy-Connection"] = "keep-alive"
    headers.update({
        "Connection": "keep-alive",
        "Accept": "*/*",
        "Content-Type": multipart_content_type(boundary),
        "Accept-Language": "en-en",
    })
    return headers


def signed_multipart_fields(payload: dict, settings: BridgeSettings) -> list[MultipartPart]:
    """The two signed-body parts; the server validates them as an adjacent pair."""
    data = json.dumps(payload, separators=(",", ":"))
    return [
        MultipartPart(name="ig_sig_key_version", data=settings.signature_key_version),
        MultipartPart(name="signed_body", data=sign_body(data, settings.signature_key)),
    ]


def _read_file(path: str | Path) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise InvalidArgument(f"Unreadable file: {path}") from e


class ApiClient:
    def __init__(self, account: AccountSession, transport: Transport | None = None):
        self.account = account
        self.transport = transport or Transport(account)
        self.settings = self.transport.settings

    # ─── Plain calls ─────────────────────────────────────────────────────────

    def api(
        self,
        endpoint: str,
        post_data: str | bytes | None = None,
        requires_login: bool = True,
        assoc: bool = True,
    ) -> tuple[str | None, Any]:
        """
        Perform an API call; POST when `post_data` is given, else GET.
        Calls that are part of logging in pass `requires_login=False`.

        Returns (current csrftoken, decoded reply).
        """
        if requires_login:
            self.transport.ensure_logged_in()

        options = RequestOptions(headers=build_headers(self.account.user_agent), body=post_data or None)
        result = self.transport.api_request(
            "POST" if post_data else "GET",
            endpoint,
            options,
            debug_uploaded_body=True,
        )
        return self.account.token, api_body_decode(result.body, assoc)

    # ─── Photos ──────────────────────────────────────────────────────────────

    def upload_photo_data(
        self,
        upload_type: str,
        photo_data: bytes,
        filename: str = "photo.jpg",
        upload_id: str | None = None,
    ) -> UploadPhotoResponse:
        """
        Upload photo bytes (for videos: the cover frame). The reply carries
        the upload id that was used.
        """
        self.transport.ensure_logged_in()
        if upload_type not in UPLOAD_TYPES:
            raise InvalidArgument(f"Invalid upload type: {upload_type}")
        if not photo_data:
            raise InvalidArgument("No photo data provided")

        upload_id = upload_id or generate_upload_id()
        boundary = self.account.uuid
        parts = [
            MultipartPart(name="upload_id", data=upload_id),
            MultipartPart(name="_uuid", data=boundary),
            MultipartPart(name="_csrftoken", data=self.account.token or ""),
            MultipartPart(name="image_compression", data=IMAGE_COMPRESSION),
            MultipartPart(
                name="photo",
                data=photo_data,
                filename=filename,
                headers=(
                    "Content-Transfer-Encoding: binary",
                    "Content-Type: application/octet-stream",
                ),
            ),
        ]
        if upload_type == "album":
            parts.append(MultipartPart(name="is_sidecar", data="1"))

        result = self.transport.api_request(
            "POST",
            "upload/photo/",
            RequestOptions(
                headers=build_headers(self.account.user_agent, multipart_content_type(boundary)),
                body=encode_multipart(parts, boundary),
            ),
            debug_uploaded_bytes=True,
            decode_to=UploadPhotoResponse,
        )
        return result.object

    # ─── Videos ──────────────────────────────────────────────────────────────

    def request_video_upload_url(self, upload_id: str | None = None) -> UploadSession:
        """Ask the server where (and under which job token) to upload a new video."""
        self.transport.ensure_logged_in()

        upload_id = upload_id or generate_upload_id()
        boundary = self.account.uuid
        parts = [
            MultipartPart(name="upload_id", data=upload_id),
            MultipartPart(name="_csrftoken", data=self.account.token or ""),
            MultipartPart(name="media_type", data="2"),
            MultipartPart(name="_uuid", data=boundary),
        ]
        result = self.transport.api_request(
            "POST",
            "upload/video/",
            RequestOptions(
                headers=build_upload_headers(self.account.user_agent, boundary),
                body=encode_multipart(parts, boundary),
            ),
            debug_uploaded_body=True,
            decode_to=UploadJobVideoResponse,
        )

        urls = result.object.video_upload_urls
        if not urls:
            raise MalformedResponse("UploadJobVideoResponse: no video upload URLs", result.body, result.status)
        target = urls[3] if len(urls) > 3 else urls[-1]
        return UploadSession(upload_id=upload_id, upload_url=target.url, job=target.job, boundary=boundary)

    def upload_video_chunks(self, video_path: str | Path, session: UploadSession) -> UploadVideoResponse:
        return upload_video_chunks(self.transport, video_path, session)

    def upload_video_data(
        self,
        video_path: str | Path,
        session: UploadSession | None = None,
        max_attempts: int | None = None,
        renew_session: bool = False,
    ) -> UploadVideoResponse:
        """
        Upload a video with whole-sequence retries. Without a `session` one is
        negotiated first; `renew_session` negotiates a fresh one per attempt.
        """
        self.transport.ensure_logged_in()
        if max_attempts is None:
            max_attempts = self.settings.video_upload_attempts

        if renew_session:
            first = session

            def source(attempt: int) -> UploadSession:
                if attempt == 1 and first is not None:
                    return first
                return self.request_video_upload_url()

            chosen: UploadSession | Callable[[int], UploadSession] = source
        else:
            chosen = session or self.request_video_upload_url()

        return upload_video_data(self.transport, video_path, chosen, max_attempts)

    # ─── Profile / direct ────────────────────────────────────────────────────

    def change_profile_picture(self, photo_path: str | Path | None) -> UserResponse:
        self.transport.ensure_logged_in()
        if photo_path is None:
            raise InvalidArgument("No photo path provided.")

        boundary = self.account.uuid
        payload = {
            "_csrftoken": self.account.token,
            "_uuid": boundary,
            "_uid": self.account.username_id,
        }
        parts = signed_multipart_fields(payload, self.settings) + [
            MultipartPart(
                name="profile_pic",
                data=_read_file(photo_path),
                filename="profile_pic",
                headers=(
                    "Content-Type: application/octet-stream",
                    "Content-Transfer-Encoding: binary",
                ),
            ),
        ]
        result = self.transport.api_request(
            "POST",
            "accounts/change_profile_picture/",
            RequestOptions(
                headers=build_upload_headers(self.account.user_agent, boundary, proxy_keep_alive=True),
                body=encode_multipart(parts, boundary),
            ),
            debug_uploaded_bytes=True,
            decode_to=UserResponse,
        )
        return result.object

    def direct_share(self, share_type: str, recipients: str | list[str], share_data: dict) -> ApiResponse:
        """
        Send a direct message: "share" (text and/or media_id), "message"
        (text) or "photo" (text plus filepath).
        """
        self.transport.ensure_logged_in()

        text = share_data.get("text")
        if share_type == "share":
            endpoint = "direct_v2/threads/broadcast/media_share/?media_type=photo"
            if text is None and share_data.get("media_id") is None:
                raise InvalidArgument("You must provide either a text message or a media id.")
        elif share_type == "message":
            endpoint = "direct_v2/threads/broadcast/text/"
            if text is None:
                raise InvalidArgument("No text message provided.")
        elif share_type == "photo":
            endpoint = "direct_v2/threads/broadcast/upload_photo/"
            if share_data.get("filepath") is None:
                raise InvalidArgument("No photo path provided.")
        else:
            raise InvalidArgument("Invalid shareType parameter value.")

        if isinstance(recipients, str):
            recipients = [recipients]
        recipient_users = ",".join(f'"{r}"' for r in recipients)

        # Field order matters to the server; build it up carefully.
        boundary = self.account.uuid
        parts: list[MultipartPart] = []
        if share_type == "share":
            parts.append(MultipartPart(name="media_id", data=str(share_data.get("media_id") or "")))
        parts += [
            MultipartPart(name="recipient_users", data=f"[[{recipient_users}]]"),
            MultipartPart(name="client_context", data=boundary),
            MultipartPart(name="thread_ids", data='["0"]'),
        ]
        if share_type == "photo":
            filepath = Path(share_data["filepath"])
            mime = mimetypes.guess_type(filepath.name)[0] or "application/octet-stream"
            parts.append(
                MultipartPart(
                    name="photo",
                    data=_read_file(filepath),
                    filename="photo",
                    headers=(f"Content-Type: {mime}", "Content-Transfer-Encoding: binary"),
                )
            )
        parts.append(MultipartPart(name="text", data="" if text is None else text))

        result = self.transport.api_request(
            "POST",
            endpoint,
            RequestOptions(
                headers=build_upload_headers(self.account.user_agent, boundary, proxy_keep_alive=True),
                body=encode_multipart(parts, boundary),
            ),
            debug_uploaded_bytes=True,
            decode_to=ApiResponse,
        )
        return result.object
