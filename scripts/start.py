#!/usr/bin/env python3
"""
Container entry point: release the database, then hand the process to gunicorn.

    python scripts/start.py [--port N] [--workers N] [--skip-release]

PORT and WEB_CONCURRENCY are read from the environment when the flags are
absent.
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

WSGI_TARGET = "app.wsgi:app"


def _bounded_int(lo: int, hi: int):
    def parse(raw: str) -> int:
        try:
            value = int(raw)
        except ValueError:
            raise argparse.ArgumentTypeError(f"{raw!r} is not an integer") from None
        if not lo <= value <= hi:
            raise argparse.ArgumentTypeError(f"{value} is outside {lo}-{hi}")
        return value

    return parse


def gunicorn_argv(port: int, workers: int) -> list[str]:
    return [
        "gunicorn",
        WSGI_TARGET,
        "--bind", f"0.0.0.0:{port}",
        "--workers", str(workers),
        "--timeout", "60",
        "--access-logfile", "-",
        "--error-logfile", "-",
    ]


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Release and serve doctrack.")
    parser.add_argument("--port", type=_bounded_int(1, 65535), default=os.environ.get("PORT") or "8080")
    parser.add_argument("--workers", type=_bounded_int(1, 64), default=os.environ.get("WEB_CONCURRENCY") or "2")
    parser.add_argument("--skip-release", action="store_true", help="serve without migrating")
    args = parser.parse_args(argv)

    if not args.skip_release:
        from scripts.release import run_release

        try:
            run_release()
        except Exception as e:
            print(f"Release failed: {e}", flush=True)
            sys.exit(1)

    cmd = gunicorn_argv(args.port, args.workers)
    print(f"=== Serving {WSGI_TARGET} on :{args.port} with {args.workers} workers ===", flush=True)
    os.execvp(cmd[0], cmd)


if __name__ == "__main__":
    main()
