from __future__ import annotations

import sys

import uvicorn

from .api import create_app
from .config import configure_logging, load_settings


def main() -> int:
    try:
        settings = load_settings()
    except RuntimeError as exc:
        print(f"[shiftroster] {exc}", file=sys.stderr)
        return 1
    configure_logging(settings.log_level)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
