"""Remove stale temp workspaces left behind by synchronous tool requests.

Usage:
    python scripts/cleanup_temp.py [--dir data/tmp] [--ttl-minutes 20]
"""

import argparse
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.append(str(project_root))

from app.config import settings  # noqa: E402
from app.storage.workspace import TempWorkspace  # noqa: E402


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Remove stale temp workspaces.")
    parser.add_argument("--dir", default=settings.tmp_dir, help="Temp root to sweep")
    parser.add_argument("--ttl-minutes", type=int, default=settings.tmp_ttl_minutes)
    args = parser.parse_args(argv)

    workspace = TempWorkspace(args.dir, ttl_minutes=args.ttl_minutes)
    removed = workspace.cleanup_expired()
    print(f"Removed {removed} stale temp dir(s) from {workspace.base_dir}")
    return removed


if __name__ == "__main__":
    main()
