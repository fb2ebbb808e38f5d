#!/usr/bin/env python3
"""Run the filevault backend with explicit args (avoids shell interpolation)."""
from __future__ import annotations

import argparse
from dataclasses import replace

import uvicorn

from filevault import Settings, create_app


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser()
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8005)
    parser.add_argument("--storage-path", default=None, help="Override STORAGE_PATH")
    parser.add_argument("--database-path", default=None, help="Override DATABASE_PATH")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    env = Settings.from_env()
    overrides = {}
    if args.storage_path:
        overrides["storage_path"] = args.storage_path
    if args.database_path:
        overrides["database_path"] = args.database_path
    settings = replace(env, **overrides)
    app = create_app(settings)
    uvicorn.run(app, host=args.host, port=args.port)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
