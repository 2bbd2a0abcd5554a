"""
Runtime configuration for the intake pipeline.

Settings are read from the environment once per process and are immutable
afterwards. The envelope key/IV default to the values shared with the
collection server; overriding them breaks compatibility with that server.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from common.envelope import ENVELOPE_IV, ENVELOPE_KEY, VERSION_TAG, EnvelopeCodec
from common.images import (
    DEFAULT_MAX_WIDTH,
    DEFAULT_QUALITY,
    MAX_NORMALIZED_BYTES,
    MAX_RAW_BYTES,
)


ENV_API_BASE_URL = "INTAKE_API_BASE_URL"
ENV_ENVELOPE_KEY = "INTAKE_ENVELOPE_KEY"
ENV_ENVELOPE_IV = "INTAKE_ENVELOPE_IV"
ENV_MAX_IMAGE_WIDTH = "INTAKE_MAX_IMAGE_WIDTH"
ENV_JPEG_QUALITY = "INTAKE_JPEG_QUALITY"
ENV_HTTP_TIMEOUT = "INTAKE_HTTP_TIMEOUT"

# Name used by the browser build of the flow
FALLBACK_ENV_API_BASE_URL = "VITE_API_BASE_URL"


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.environ.get(name)
    return val if val not in (None, "") else default


class IntakeSettings(BaseModel):
    """Immutable settings for one process."""

    model_config = ConfigDict(frozen=True)

    api_base_url: str = Field(..., description="Base URL of the collection server")
    envelope_key: str = Field(ENVELOPE_KEY, description="32-byte UTF-8 AES-256 key")
    envelope_iv: str = Field(ENVELOPE_IV, description="16-byte UTF-8 CBC IV")
    version_tag: str = Field(VERSION_TAG, description="Envelope version prefix")
    max_width: int = Field(DEFAULT_MAX_WIDTH, gt=0, description="Max JPEG width in pixels")
    jpeg_quality: float = Field(DEFAULT_QUALITY, gt=0.0, le=1.0)
    max_raw_bytes: int = Field(MAX_RAW_BYTES, gt=0, description="Reject uploads above this before decoding")
    max_normalized_bytes: int = Field(MAX_NORMALIZED_BYTES, gt=0, description="Reject converted images above this")
    timeout: float = Field(30.0, gt=0.0, description="HTTP timeout in seconds")

    @field_validator("api_base_url")
    @classmethod
    def _strip_slash(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v:
            raise ValueError("api_base_url must not be empty")
        return v

    @field_validator("envelope_key")
    @classmethod
    def _key_len(cls, v: str) -> str:
        if len(v.encode("utf-8")) != 32:
            raise ValueError("envelope_key must encode to exactly 32 bytes")
        return v

    @field_validator("envelope_iv")
    @classmethod
    def _iv_len(cls, v: str) -> str:
        if len(v.encode("utf-8")) != 16:
            raise ValueError("envelope_iv must encode to exactly 16 bytes")
        return v

    def codec(self) -> EnvelopeCodec:
        return EnvelopeCodec(self.envelope_key, self.envelope_iv, version_tag=self.version_tag)

    def endpoint_url(self, path: str) -> str:
        return f"{self.api_base_url}/{path.lstrip('/')}"

    # -------- Construction helpers --------
    @classmethod
    def from_env(cls) -> "IntakeSettings":
        base_url = _getenv(ENV_API_BASE_URL) or _getenv(FALLBACK_ENV_API_BASE_URL)
        if not base_url:
            raise RuntimeError(
                f"Missing required environment variables for intake: {ENV_API_BASE_URL}"
            )
        values = {"api_base_url": base_url}
        optional = {
            "envelope_key": ENV_ENVELOPE_KEY,
            "envelope_iv": ENV_ENVELOPE_IV,
            "max_width": ENV_MAX_IMAGE_WIDTH,
            "jpeg_quality": ENV_JPEG_QUALITY,
            "timeout": ENV_HTTP_TIMEOUT,
        }
        for field_name, env_name in optional.items():
            val = _getenv(env_name)
            if val is not None:
                values[field_name] = val
        return cls.model_validate(values)


@lru_cache(maxsize=1)
def load_settings() -> IntakeSettings:
    """Settings from the environment, loaded once per process."""
    return IntakeSettings.from_env()


__all__ = [
    "ENV_API_BASE_URL",
    "FALLBACK_ENV_API_BASE_URL",
    "IntakeSettings",
    "load_settings",
]
