"""Configuration from environment variables (.env)."""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUE_VALUES


@dataclass
class Config:
    project_root: Path
    logs_dir: Path
    log_file_enabled: bool
    typesense_host: str
    typesense_port: int
    typesense_protocol: str
    typesense_api_key: str
    connection_timeout_seconds: float
    num_retries: int
    retry_interval_seconds: float
    cache_timeout_ms: int
    max_cache_entries: int

    @classmethod
    def load(cls) -> "Config":
        project_root = Path(__file__).parent.parent.parent
        logs_dir = os.getenv("MULTISEARCH_LOGS_DIR", "").strip()
        return cls(
            project_root=project_root,
            logs_dir=Path(logs_dir) if logs_dir else project_root / "logs",
            log_file_enabled=_env_bool("MULTISEARCH_LOG_FILE_ENABLED"),
            typesense_host=os.getenv("TYPESENSE_HOST", "localhost"),
            typesense_port=int(os.getenv("TYPESENSE_PORT", "8108")),
            typesense_protocol=os.getenv("TYPESENSE_PROTOCOL", "http").strip().lower(),
            typesense_api_key=os.getenv("TYPESENSE_API_KEY", ""),
            connection_timeout_seconds=float(os.getenv("TYPESENSE_CONNECTION_TIMEOUT_SECONDS", "10")),
            num_retries=int(os.getenv("TYPESENSE_NUM_RETRIES", "3")),
            retry_interval_seconds=float(os.getenv("TYPESENSE_RETRY_INTERVAL_SECONDS", "0.1")),
            cache_timeout_ms=int(os.getenv("SEARCH_CACHE_TIMEOUT_MS", "300000")),
            max_cache_entries=int(os.getenv("SEARCH_CACHE_MAX_ENTRIES", "100")),
        )

    @property
    def typesense_url(self) -> str:
        return f"{self.typesense_protocol}://{self.typesense_host}:{self.typesense_port}"

    def validate(self) -> list[str]:
        errors = []
        if self.typesense_protocol not in ("http", "https"):
            errors.append(f"Unsupported TYPESENSE_PROTOCOL: {self.typesense_protocol}")
        if self.cache_timeout_ms <= 0:
            errors.append("SEARCH_CACHE_TIMEOUT_MS must be positive")
        if self.max_cache_entries <= 0:
            errors.append("SEARCH_CACHE_MAX_ENTRIES must be positive")
        if self.num_retries < 0:
            errors.append("TYPESENSE_NUM_RETRIES must not be negative")
        if not self.typesense_api_key.strip():
            errors.append("TYPESENSE_API_KEY is not set")
        return errors


config = Config.load()
