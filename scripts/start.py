#!/usr/bin/env python3
"""
Container entrypoint: release phase, then gunicorn in place of this process.

Usage:
    python scripts/start.py

PORT picks the bind port (default 8080); WEB_CONCURRENCY the worker count.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def resolve_port(raw: str | None) -> str:
    port = (raw or "").strip()
    if not port:
        print("WARNING: PORT not set, using default 8080", flush=True)
        return "8080"
    if not port.isdigit() or not 1 <= int(port) <= 65535:
        raise ValueError(f"Invalid PORT value '{port}'. Must be integer 1-65535.")
    return port


def gunicorn_argv(port: str, workers: str | None = None) -> list[str]:
    return [
        "gunicorn",
        "app.wsgi:app",
        "--bind", f"0.0.0.0:{port}",
        "--workers", (workers or "2").strip(),
        "--timeout", "60",
        "--preload",
        "--access-logfile", "-",
        "--error-logfile", "-",
    ]


def main() -> None:
    try:
        port = resolve_port(os.environ.get("PORT"))
    except ValueError as e:
        print(f"ERROR: {e}", flush=True)
        sys.exit(1)

    from scripts.release import run_release

    try:
        run_release()
    except Exception as e:
        print(f"Release failed: {e}", flush=True)
        sys.exit(1)

    argv = gunicorn_argv(port, os.environ.get("WEB_CONCURRENCY"))
    print(f"Starting gunicorn on 0.0.0.0:{port} (health check at /healthz)", flush=True)
    # exec keeps gunicorn as PID 1 so it receives container signals
    os.execvp(argv[0], argv)


if __name__ == "__main__":
    main()
