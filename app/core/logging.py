import logging
from typing import Any, MutableMapping, Tuple

from pythonjsonlogger.json import JsonFormatter


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger with a single JSON console handler."""
    root = logging.getLogger()
    root.setLevel(level.upper())

    # Remove any existing handlers so reloads don't duplicate output
    root.handlers = []
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    root.addHandler(handler)


class JobLogger(logging.LoggerAdapter):
    """Prefixes every line with the job id."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        return f"[job {self.extra['job_id']}] {msg}", kwargs


def job_logger(job_id: str) -> JobLogger:
    return JobLogger(logging.getLogger("app.jobs"), {"job_id": job_id})
