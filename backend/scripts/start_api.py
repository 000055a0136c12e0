"""Serve the Trip Planner API with uvicorn.

Usage: python scripts/start_api.py [--reload]
HOST and PORT come from the environment (default 0.0.0.0:8000). Forwarded
headers are only trusted from FORWARDED_ALLOW_IPS, uvicorn's own setting.
"""
import argparse
import os
import sys

import uvicorn

BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def _port_from_env() -> int:
    raw = os.environ.get("PORT", "8000")
    if not raw.isdigit():
        raise SystemExit(f"PORT must be a number, got '{raw}'")
    return int(raw)


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the Trip Planner API")
    parser.add_argument("--reload", action="store_true", help="restart on code changes (development only)")
    args = parser.parse_args()

    sys.path.insert(0, BACKEND_DIR)
    uvicorn.run(
        "app.main:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=_port_from_env(),
        proxy_headers=True,
        reload=args.reload,
        app_dir=BACKEND_DIR,
    )


if __name__ == "__main__":
    main()
