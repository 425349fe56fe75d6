"""
Bridge configuration: pydantic-settings model, overridable from the environment.

Every field maps to an IG_BRIDGE_<FIELD> environment variable (or a .env entry).
"""

import os
from pathlib import Path
from typing import Optional, Union

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import API_HOST, API_URL

_ENV_PATH = os.getenv("IG_BRIDGE_ENV", ".env")


class BridgeSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="IG_BRIDGE_",
        env_file=_ENV_PATH,
        extra="ignore",
    )

    api_url: str = API_URL
    api_host: str = API_HOST

    # Give up connecting after 30s; whole request may take up to 240s.
    connect_timeout: float = 30.0
    request_timeout: float = 240.0
    max_redirects: int = 8

    # True, False, or a path to a CA bundle.
    verify_ssl: Union[bool, str] = True
    proxy: Optional[str] = None
    output_interface: Optional[str] = None
    impersonate: str = "chrome"

    debug: bool = False
    truncated_debug: bool = True

    retry_max: int = 10
    retry_delay_ms: int = 1000
    retry_delay_enabled: bool = True
    retry_escalating: bool = False

    video_upload_attempts: int = 4

    cookies_path: Optional[Path] = None

    signature_key: str = ""
    signature_key_version: str = "4"

    bridge_host: str = "127.0.0.1"
    bridge_port: int = Field(default=37421, ge=1, le=65535)

    @field_validator("verify_ssl", mode="before")
    @classmethod
    def _verify_flag(cls, value):
        # Environment values arrive as strings; only non-flag strings are CA bundle paths.
        if isinstance(value, str) and value.strip().lower() in ("1", "0", "true", "false", "yes", "no", "on", "off"):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return value


settings = BridgeSettings()
