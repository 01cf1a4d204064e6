"""
Runtime configuration for the College Gate Pass API.

Values come from environment variables and are read when ``Settings`` is
instantiated, so set the environment before importing ``settings``.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

ROOT_DIR = Path(__file__).parent.resolve()


def _split_origins(raw: str) -> List[str]:
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@dataclass
class Settings:
    """Application settings loaded from environment variables."""

    project_name: str = field(default_factory=lambda: os.getenv("PROJECT_NAME", "College Gate Pass API"))
    api_version: str = field(default_factory=lambda: os.getenv("API_VERSION", "1.0.0"))
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_file: str = field(default_factory=lambda: os.getenv("LOG_FILE", ""))

    # "file" persists to DATA_FILE, "memory" keeps the dataset in-process.
    storage_backend: str = field(default_factory=lambda: os.getenv("STORAGE_BACKEND", "file"))
    data_file: str = field(default_factory=lambda: os.getenv("DATA_FILE", "database.json"))

    cors_allowed_origins: List[str] = field(
        default_factory=lambda: _split_origins(os.getenv("CORS_ALLOWED_ORIGINS", "*"))
    )
    host: str = field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "3000")))

    request_id_prefix: str = field(default_factory=lambda: os.getenv("REQUEST_ID_PREFIX", "REQ"))

    @property
    def data_path(self) -> Path:
        """Absolute path of the JSON data file; relative paths resolve against the project root."""
        path = Path(self.data_file)
        if not path.is_absolute():
            path = ROOT_DIR / path
        return path


settings = Settings()
