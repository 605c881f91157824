"""Application configuration read from environment variables.

Values come from the process environment (a `.env` file is loaded by
`main.py` before this is read). Credentials are checked lazily by
`require_credentials()` so tests can build a config without secrets.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from services.generation.reconstruction_client import DEFAULT_POLL_INTERVAL, DEFAULT_SUBMIT_URL
from services.generation.view_backends import DEFAULT_GEMINI_IMAGE_MODEL, DEFAULT_OPENAI_IMAGE_MODEL
from services.product_url import DEFAULT_TEXT_MODEL

IMAGE_BACKENDS = ("gemini", "openai")
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class GenerationConfig:
    """Settings for the generation pipeline and its remote collaborators."""

    image_backend: str = "gemini"
    google_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    gemini_image_model: str = DEFAULT_GEMINI_IMAGE_MODEL
    gemini_text_model: str = DEFAULT_TEXT_MODEL
    openai_image_model: str = DEFAULT_OPENAI_IMAGE_MODEL
    fal_key: Optional[str] = None
    reconstruction_url: str = DEFAULT_SUBMIT_URL
    poll_interval: float = DEFAULT_POLL_INTERVAL
    max_wait: Optional[float] = 1800.0
    max_image_size: int = 1024
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "GenerationConfig":
        """Build a config from `env` (defaults to ``os.environ``)."""
        env = os.environ if env is None else env
        backend = (env.get("IMAGE_BACKEND") or "gemini").strip().lower()
        if backend not in IMAGE_BACKENDS:
            raise RuntimeError(f"IMAGE_BACKEND must be one of {', '.join(IMAGE_BACKENDS)}, got {backend!r}")

        log_level = (env.get("LOG_LEVEL") or "INFO").strip().upper()
        if log_level not in LOG_LEVELS:
            raise RuntimeError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {log_level!r}")

        max_wait = _float(env, "RECONSTRUCTION_MAX_WAIT_SECONDS", 1800.0)
        max_image_size = int(_float(env, "MAX_IMAGE_SIZE", 1024))
        if max_image_size <= 0:
            raise RuntimeError("MAX_IMAGE_SIZE must be positive")

        return cls(
            image_backend=backend,
            google_api_key=env.get("GOOGLE_API_KEY") or env.get("GEMINI_API_KEY") or None,
            openai_api_key=env.get("OPENAI_API_KEY") or None,
            gemini_image_model=env.get("GEMINI_IMAGE_MODEL") or DEFAULT_GEMINI_IMAGE_MODEL,
            gemini_text_model=env.get("GEMINI_TEXT_MODEL") or DEFAULT_TEXT_MODEL,
            openai_image_model=env.get("OPENAI_IMAGE_MODEL") or DEFAULT_OPENAI_IMAGE_MODEL,
            fal_key=env.get("FAL_KEY") or None,
            reconstruction_url=env.get("RECONSTRUCTION_URL") or DEFAULT_SUBMIT_URL,
            poll_interval=_float(env, "POLL_INTERVAL_SECONDS", DEFAULT_POLL_INTERVAL),
            max_wait=max_wait if max_wait > 0 else None,
            max_image_size=max_image_size,
            log_level=log_level,
        )

    def require_credentials(self) -> None:
        """Raise RuntimeError if a key needed by the configured services is missing."""
        if not self.fal_key:
            raise RuntimeError("FAL_KEY environment variable is not set")
        if not self.google_api_key:
            # Product URL import always uses Gemini, even with the OpenAI view backend.
            raise RuntimeError("GOOGLE_API_KEY environment variable is not set")
        if self.image_backend == "openai" and not self.openai_api_key:
            raise RuntimeError("OPENAI_API_KEY environment variable is not set")
