"""Run the controller: ``python -m smartsole [--host HOST] [--port PORT]``."""
from __future__ import annotations

import argparse
import os
from typing import Optional

import uvicorn

from .config import Settings, get_settings


def apply_cli_overrides(host: Optional[str] = None, port: Optional[int] = None) -> Settings:
    """Push --host/--port into the environment and reload settings.

    smartsole.main reads get_settings() at import, and reload workers are
    separate processes, so the environment is the one channel both see.
    """
    if host is not None:
        os.environ["CONTROLLER_HOST"] = host
    if port is not None:
        os.environ["CONTROLLER_PORT"] = str(port)
    get_settings.cache_clear()
    return get_settings()


def main() -> None:
    settings = get_settings()
    ap = argparse.ArgumentParser(description="SmartSole diagnostic controller")
    ap.add_argument("--host", default=settings.controller_host)
    ap.add_argument("--port", type=int, default=settings.controller_port)
    ap.add_argument("--reload", action="store_true", help="Auto-reload on code changes (development)")
    args = ap.parse_args()

    settings = apply_cli_overrides(args.host, args.port)

    # Logging is configured by smartsole.main at import; keep uvicorn from overriding it
    uvicorn.run(
        "smartsole.main:app",
        host=settings.controller_host,
        port=settings.controller_port,
        reload=args.reload,
        log_config=None,
    )


if __name__ == "__main__":
    main()
