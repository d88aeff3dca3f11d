# picloader/schemas/models.py

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# =========================
# Configuration
# =========================

_ENV_FIELDS: dict[str, str] = {
    "PICLOADER_CACHE_DIR": "cache_dir",
    "PICLOADER_MAX_PARALLEL": "max_parallel",
    "PICLOADER_TIMEOUT_S": "timeout_s",
    "PICLOADER_TIMEOUT_ATTEMPTS": "timeout_attempts",
    "PICLOADER_USER_AGENT": "user_agent",
    "PICLOADER_MAX_WORKERS": "max_workers",
}


def normalize_max_parallel(value: int) -> int:
    """0 and anything below -1 mean "unbounded", which is spelled -1."""
    value = int(value)
    if value == 0 or value < -1:
        return -1
    return value


class LoaderSettings(BaseModel):
    """
    Configuration surface of the loader: where the cache lives, how many fetches
    may run at once, and how patient each fetch is.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    cache_dir: Path = Field(
        default=Path("data/picture_cache"),
        description="Directory holding one file per cached key, named by fingerprint.",
    )
    max_parallel: int = Field(
        -1,
        description="Max concurrent fetches during a batch preload. 0 or negative = unbounded (normalised to -1).",
    )
    timeout_s: float = Field(30.0, gt=0, description="Per-attempt timeout in seconds.")
    timeout_attempts: int = Field(
        3,
        ge=1,
        description="Total attempts per fetch; only gateway-timeout class failures trigger another attempt.",
    )
    user_agent: str = Field("picloader/0.1", description="User-Agent string used in HTTP requests.")
    chunk_size: int = Field(64 * 1024, gt=0, description="Streaming read size in bytes.")
    max_workers: int = Field(16, ge=1, description="Size of the fetch thread pool.")
    fingerprint: Literal["md5", "sha256"] = Field("md5", description="Digest used to derive storage keys.")

    @field_validator("max_parallel", mode="before")
    @classmethod
    def _normalize_max_parallel(cls, v: Any) -> int:
        return normalize_max_parallel(int(v))

    @classmethod
    def from_env(cls, **overrides: Any) -> LoaderSettings:
        """Defaults, then PICLOADER_* environment variables, then explicit overrides."""
        data: dict[str, Any] = {}
        for env_name, field_name in _ENV_FIELDS.items():
            raw = os.getenv(env_name)
            if raw is not None and raw.strip() != "":
                data[field_name] = raw.strip()
        data.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**data)


# =========================
# Results
# =========================


class PreloadSummary(BaseModel):
    """Outcome counts for one batch preload."""

    requested: int = Field(0, ge=0, description="URLs considered (after dropping empty entries).")
    skipped: int = Field(0, ge=0, description="Already cached; no fetch needed.")
    fetched: int = Field(0, ge=0, description="Fetched and written to the cache.")
    failed: int = Field(0, ge=0, description="Fetch produced nothing (error, empty payload).")
    cancelled: bool = Field(False, description="True when the batch stopped early on cancellation.")

    @property
    def settled(self) -> int:
        return self.skipped + self.fetched + self.failed


__all__ = ["LoaderSettings", "PreloadSummary", "normalize_max_parallel"]
