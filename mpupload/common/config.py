from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

ENV_FILE = Path(".env")

MIB = 1024 * 1024
LOG_FORMATS: tuple[str, ...] = ("json", "plain")


def _load_env_file() -> None:
    if not ENV_FILE.exists():
        return
    for raw_line in ENV_FILE.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "y", "on"}


def _as_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc


@dataclass
class Settings:
    S3_ENDPOINT_URL: str | None = None
    S3_REGION: str = "us-east-1"
    S3_ACCESS_KEY_ID: str | None = None
    S3_SECRET_ACCESS_KEY: str | None = None
    S3_USE_SSL: bool = True
    S3_ADDRESSING_STYLE: str = "path"
    STORAGE_NAMESPACE: str = ""
    TRANSFER_PART_SIZE_BYTES: int = 128 * MIB
    TRANSFER_MAX_WORKERS: int = 4
    TRANSFER_ALLOW_OVERWRITE: bool = True
    TRANSFER_ABORT_ON_FAILURE: bool = True
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"

    def __post_init__(self) -> None:
        if self.TRANSFER_PART_SIZE_BYTES < 1:
            raise ValueError("TRANSFER_PART_SIZE_BYTES must be at least 1.")
        if self.TRANSFER_MAX_WORKERS < 1:
            raise ValueError("TRANSFER_MAX_WORKERS must be at least 1.")
        self.LOG_FORMAT = self.LOG_FORMAT.strip().lower()
        if self.LOG_FORMAT not in LOG_FORMATS:
            raise ValueError(f"LOG_FORMAT must be one of {', '.join(LOG_FORMATS)}.")
        self.LOG_LEVEL = self.LOG_LEVEL.strip().upper()

    @classmethod
    def from_environment(cls) -> "Settings":
        _load_env_file()
        return cls(
            S3_ENDPOINT_URL=os.environ.get("S3_ENDPOINT_URL") or None,
            S3_REGION=os.environ.get("S3_REGION", cls.S3_REGION),
            S3_ACCESS_KEY_ID=os.environ.get("S3_ACCESS_KEY_ID"),
            S3_SECRET_ACCESS_KEY=os.environ.get("S3_SECRET_ACCESS_KEY"),
            S3_USE_SSL=_as_bool(os.environ.get("S3_USE_SSL"), cls.S3_USE_SSL),
            S3_ADDRESSING_STYLE=os.environ.get(
                "S3_ADDRESSING_STYLE", cls.S3_ADDRESSING_STYLE
            ),
            STORAGE_NAMESPACE=os.environ.get(
                "STORAGE_NAMESPACE", cls.STORAGE_NAMESPACE
            ),
            TRANSFER_PART_SIZE_BYTES=_as_int(
                "TRANSFER_PART_SIZE_BYTES", cls.TRANSFER_PART_SIZE_BYTES
            ),
            TRANSFER_MAX_WORKERS=_as_int(
                "TRANSFER_MAX_WORKERS", cls.TRANSFER_MAX_WORKERS
            ),
            TRANSFER_ALLOW_OVERWRITE=_as_bool(
                os.environ.get("TRANSFER_ALLOW_OVERWRITE"),
                cls.TRANSFER_ALLOW_OVERWRITE,
            ),
            TRANSFER_ABORT_ON_FAILURE=_as_bool(
                os.environ.get("TRANSFER_ABORT_ON_FAILURE"),
                cls.TRANSFER_ABORT_ON_FAILURE,
            ),
            LOG_LEVEL=os.environ.get("LOG_LEVEL", cls.LOG_LEVEL),
            LOG_FORMAT=os.environ.get("LOG_FORMAT", cls.LOG_FORMAT),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_environment()
