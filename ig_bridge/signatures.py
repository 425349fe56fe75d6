"""
Identity tokens and request signing.

Signed bodies are HMAC-SHA256 over the JSON payload with the app key, the hex
digest glued directly in front of the JSON.
"""

import hashlib
import hmac
import time
import uuid


def generate_uuid() -> str:
    return str(uuid.uuid4())


def generate_upload_id() -> str:
    """Upload ids are the current time in whole milliseconds."""
    return str(int(round(time.time() * 1000)))


def sign_body(data: str, key: str) -> str:
    digest = hmac.new(key.encode("utf-8"), data.encode("utf-8"), hashlib.sha256).hexdigest()
    return digest + data
