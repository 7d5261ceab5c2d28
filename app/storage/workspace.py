"""Per-request temporary workspaces with TTL-based cleanup.

Used by the synchronous tool endpoints; async jobs own their directories
under the job root and are reclaimed by the queue's expiry sweep instead.
"""

import logging
import os
import shutil
import time
import uuid
from typing import Optional

from app.config import settings

logger = logging.getLogger(__name__)


class TempWorkspace:
    """Allocates temp directories under one root and removes stale ones by mtime."""

    def __init__(self, base_dir: Optional[str] = None, ttl_minutes: int = 20):
        base_dir = base_dir or settings.tmp_dir
        self._base_dir = base_dir if os.path.isabs(base_dir) else os.path.join(os.getcwd(), base_dir)
        self._ttl_seconds = ttl_minutes * 60

    @property
    def base_dir(self) -> str:
        return self._base_dir

    def ensure_root(self) -> str:
        os.makedirs(self._base_dir, exist_ok=True)
        return self._base_dir

    def create_temp_dir(self, prefix: str) -> str:
        """Sweep stale entries, then create a fresh `<prefix>-<uuid>` directory."""
        self.cleanup_expired()
        path = os.path.join(self.ensure_root(), f"{prefix}-{uuid.uuid4()}")
        os.makedirs(path, exist_ok=True)
        return path

    def cleanup_expired(self) -> int:
        """Remove directories older than TTL. Returns count of removed dirs."""
        now = time.time()
        removed = 0
        if not os.path.exists(self._base_dir):
            return 0
        for entry in os.listdir(self._base_dir):
            path = os.path.join(self._base_dir, entry)
            try:
                if not os.path.isdir(path):
                    continue
                if now - os.path.getmtime(path) > self._ttl_seconds:
                    shutil.rmtree(path)
                    removed += 1
            except FileNotFoundError:
                # Removed by a concurrent sweep
                continue
            except OSError as exc:
                logger.warning("Could not remove stale temp dir %s: %s", path, exc)
        if removed:
            logger.info("Removed %d stale temp dir(s) from %s", removed, self._base_dir)
        return removed


def remove_tree(path: str) -> bool:
    """Delete a directory tree. Returns False (and logs) when deletion fails."""
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        return True
    except OSError as exc:
        logger.error("Failed to remove %s: %s", path, exc)
        return False
    return True
