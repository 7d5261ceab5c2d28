"""Application configuration via environment variables."""

import os
import tempfile
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Upload limits
    max_files: int = 20
    max_file_mb: int = 100
    max_total_mb: int = 300
    max_pages: int = 500

    # Temp workspaces for synchronous tool requests
    tmp_dir: str = "data/tmp"
    tmp_ttl_minutes: int = 20

    # Job processing
    job_root: str = os.path.join(tempfile.gettempdir(), "pdf-web-app-jobs")
    job_timeout_minutes: float = 10
    job_retention_minutes: float = 30
    cleanup_interval_seconds: float = 60

    # Request / command execution
    request_timeout_sec: int = 120
    libreoffice_cmd: Optional[str] = None

    log_level: str = "INFO"
    compute_port: int = 8000

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def max_file_bytes(self) -> int:
        return self.max_file_mb * 1024 * 1024

    @property
    def max_total_bytes(self) -> int:
        return self.max_total_mb * 1024 * 1024

    @property
    def job_timeout_seconds(self) -> float:
        return self.job_timeout_minutes * 60

    @property
    def job_retention_seconds(self) -> float:
        return self.job_retention_minutes * 60

    @property
    def command_timeout_seconds(self) -> float:
        # Capped below the job deadline for long jobs
        return min(self.job_timeout_seconds, 9 * 60)


settings = Settings()
