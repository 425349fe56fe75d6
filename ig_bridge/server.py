#!/usr/bin/env python3
"""
Instagram Python Bridge
Local HTTP server exposing the upload pipeline to other processes.
Uses curl_cffi for the API traffic; one account session per bridge process.
"""

import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional

import uvicorn
from fastapi import Body, FastAPI, File, Form, UploadFile
from fastapi.responses import JSONResponse

from .account import AccountSession
from .client import ApiClient
from .config import settings
from .errors import BridgeError
from .logger import configure_logging, logger
from .photo_prep import prepare_photo

# Cheap authenticated endpoint used to confirm restored cookies still work.
VERIFY_ENDPOINT = "accounts/current_user/?edit=true"


def _error_response(code: str, message: str, status_code: int = 500) -> JSONResponse:
    """Structured error: { ok: false, code, message }"""
    return JSONResponse(
        status_code=status_code,
        content={"ok": False, "code": code, "message": message},
    )


def _bridge_error(e: BridgeError) -> JSONResponse:
    return _error_response(e.code, e.message, e.status_code or 500)


def build_client() -> ApiClient:
    account = AccountSession()
    account.load_cookies()
    return ApiClient(account)


def create_app(client: ApiClient | None = None) -> FastAPI:
    # Handlers stay plain `def`: the transport blocks, so FastAPI runs them in its threadpool.
    app = FastAPI(title="Instagram Upload Bridge", version="0.1.0")
    app.state.client = client or build_client()

    def api() -> ApiClient:
        return app.state.client

    @app.get("/health")
    def health():
        """Health check for callers to verify the bridge is running."""
        return {"ok": True, "service": "ig-upload-bridge"}

    @app.get("/session")
    def session_state():
        account = api().account
        return {
            "ok": True,
            "data": {
                "logged_in": account.is_logged_in(),
                "has_csrftoken": account.cookies.has_valid_csrftoken(api().settings.api_host),
                "uuid": account.uuid,
            },
        }

    @app.post("/session/verify")
    def session_verify():
        """
        Probe an authenticated endpoint with the restored cookies and mark
        the account logged in only if the server accepts them.
        """
        client = api()
        try:
            _, data = client.api(VERIFY_ENDPOINT, requires_login=False)
        except BridgeError as e:
            return _bridge_error(e)
        if isinstance(data, dict) and data.get("status") == "ok":
            user = data.get("user") or {}
            client.account.mark_logged_in(user.get("pk"))
            return {"ok": True, "data": {"logged_in": client.account.is_logged_in()}}
        client.account.mark_logged_out()
        message = data.get("message") if isinstance(data, dict) else None
        return _error_response("LOGIN_REQUIRED", str(message or "Session rejected by server"), 401)

    @app.post("/api")
    def api_call(body: dict = Body(...)):
        """
        Raw API call: { "endpoint": "...", "post_data": "...", "requires_login": true }
        """
        endpoint = body.get("endpoint")
        if not endpoint:
            return _error_response("INVALID_BODY", "endpoint required", 400)
        try:
            token, data = api().api(
                endpoint,
                post_data=body.get("post_data"),
                requires_login=body.get("requires_login", True),
            )
            return {"ok": True, "data": data, "csrftoken_present": token is not None}
        except BridgeError as e:
            return _bridge_error(e)

    @app.post("/upload/photo")
    def upload_photo(
        file: UploadFile = File(..., description="Image file to upload"),
        upload_type: str = Form("timeline"),
        upload_id: Optional[str] = Form(None),
        prepare: bool = Form(True, description="Re-encode as metadata-free JPEG first"),
    ):
        try:
            raw_bytes = file.file.read()
            if prepare:
                photo, filename = prepare_photo(raw_bytes), "photo.jpg"
            else:
                photo, filename = raw_bytes, file.filename or "photo.jpg"
            result = api().upload_photo_data(upload_type, photo, filename, upload_id)
            return {"ok": True, "data": result.full_response}
        except BridgeError as e:
            return _bridge_error(e)

    @app.post("/upload/video")
    def upload_video(
        file: UploadFile = File(..., description="Video file to upload"),
        upload_id: Optional[str] = Form(None),
        max_attempts: int = Form(settings.video_upload_attempts, ge=1, le=10),
        renew_session: bool = Form(False),
    ):
        """Negotiate an upload URL, then push the video in four chunks (with retries)."""
        suffix = Path(file.filename or "video.mp4").suffix or ".mp4"
        fd, tmp_name = tempfile.mkstemp(suffix=suffix, prefix="ig-bridge-")
        try:
            with os.fdopen(fd, "wb") as tmp:
                shutil.copyfileobj(file.file, tmp)
            client = api()
            session = client.request_video_upload_url(upload_id)
            result = client.upload_video_data(
                tmp_name,
                session,
                max_attempts=max_attempts,
                renew_session=renew_session,
            )
            return {"ok": True, "data": {"upload_id": session.upload_id, "result": result.full_response}}
        except BridgeError as e:
            return _bridge_error(e)
        finally:
            os.unlink(tmp_name)

    @app.post("/profile-picture")
    def profile_picture(file: UploadFile = File(...)):
        suffix = Path(file.filename or "profile.jpg").suffix or ".jpg"
        fd, tmp_name = tempfile.mkstemp(suffix=suffix, prefix="ig-bridge-")
        try:
            with os.fdopen(fd, "wb") as tmp:
                tmp.write(prepare_photo(file.file.read()))
            result = api().change_profile_picture(tmp_name)
            return {"ok": True, "data": result.full_response}
        except BridgeError as e:
            return _bridge_error(e)
        finally:
            os.unlink(tmp_name)

    @app.post("/direct-share")
    def direct_share(body: dict = Body(...)):
        """
        Body: { "share_type": "message", "recipients": ["123"], "text": "hi" }
        """
        share_type = body.get("share_type")
        recipients = body.get("recipients")
        if not share_type or not recipients:
            return _error_response("INVALID_BODY", "share_type and recipients required", 400)
        try:
            result = api().direct_share(share_type, recipients, body)
            return {"ok": True, "data": result.full_response}
        except BridgeError as e:
            return _bridge_error(e)

    return app


def main() -> None:
    configure_logging(settings.debug)
    logger.info(f"Starting bridge on {settings.bridge_host}:{settings.bridge_port}")
    uvicorn.run(create_app(), host=settings.bridge_host, port=settings.bridge_port, log_level="info")


if __name__ == "__main__":
    main()
