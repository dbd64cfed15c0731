"""Configuration objects and constants for the Kindle pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import InputError

DEFAULT_CONVERTER = "ebook-convert"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (compatible; substack-kindle/0.1; +https://substack.com)"
)
DEFAULT_SMTP_PORT = 587
DEFAULT_MAX_IMAGE_SIDE = 1600


@dataclass
class FetchConfig:
    """Settings for retrieving remote articles."""

    timeout: float = 30.0
    user_agent: str = DEFAULT_USER_AGENT
    allow_any_host: bool = False


@dataclass
class ConversionOptions:
    """Settings controlling how content is turned into an e-book."""

    converter_command: str = DEFAULT_CONVERTER
    skip_converter: bool = False
    include_original: bool = False
    image_timeout: float = 15.0
    max_image_side: int = DEFAULT_MAX_IMAGE_SIDE
    require_body: bool = False


@dataclass(frozen=True)
class EmailConfig:
    """SMTP settings used for delivery, built once at startup."""

    sender: str
    recipient: str
    password: str
    smtp_host: str
    smtp_port: int = DEFAULT_SMTP_PORT

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EmailConfig":
        env = os.environ if environ is None else environ
        raw_port = (env.get("SMTP_PORT") or "").strip()
        if raw_port:
            try:
                port = int(raw_port)
            except ValueError as exc:
                raise InputError(f"SMTP_PORT must be a number, got {raw_port!r}") from exc
        else:
            port = DEFAULT_SMTP_PORT
        return cls(
            sender=env.get("EMAIL_FROM", ""),
            recipient=env.get("EMAIL_TO", ""),
            password=env.get("EMAIL_PASSWORD", ""),
            smtp_host=env.get("SMTP_HOST", ""),
            smtp_port=port,
        )
