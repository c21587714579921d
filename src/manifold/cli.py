# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors
"""Command line entry point.

Usage:
    manifold check manifest.yml
    manifold openapi manifest.yml --output openapi.json
    manifold seed manifest.yml --count 20 --database-url sqlite+aiosqlite:///./manifold.db
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Any

from sqlalchemy.ext.asyncio import create_async_engine

from manifold.config import ApiOptions
from manifold.engine import ManifestEngine, build_handle
from manifold.errors import ManifoldError, ValidationError
from manifold.manifest import load_manifest, read_manifest_file
from manifold.seeder import seed

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./manifold.db"


def _print_errors(exc: ManifoldError) -> None:
    print(f"error: {exc.message}", file=sys.stderr)
    if isinstance(exc, ValidationError):
        for error in exc.errors:
            print(f"  {error.field}: {error.message}", file=sys.stderr)


def cmd_check(args: argparse.Namespace) -> int:
    document = load_manifest(read_manifest_file(args.manifest))
    print(f"{args.manifest}: OK ({len(document.entities)} entities)")
    for entity in document.entities:
        print(f"  {entity.name} -> /api/{entity.resolved_slug}")
    return 0


async def _describe(args: argparse.Namespace) -> dict[str, Any]:
    document = load_manifest(read_manifest_file(args.manifest))
    # Building the description touches no tables; the engine is never connected.
    engine = create_async_engine(DEFAULT_DATABASE_URL)
    try:
        return build_handle(document, engine, ApiOptions()).description
    finally:
        await engine.dispose()


def cmd_openapi(args: argparse.Namespace) -> int:
    output = json.dumps(asyncio.run(_describe(args)), indent=2)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as fh:
            fh.write(output + "\n")
        print(f"Wrote {args.output}")
    else:
        print(output)
    return 0


async def _seed(args: argparse.Namespace) -> dict[str, int]:
    engine = ManifestEngine(create_async_engine(args.database_url))
    try:
        handle = await engine.register(read_manifest_file(args.manifest))
        return await seed(handle, args.count, seed_value=args.seed)
    finally:
        await engine.dispose()


def cmd_seed(args: argparse.Namespace) -> int:
    counts = asyncio.run(_seed(args))
    for name, count in counts.items():
        print(f"  {name}: {count}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="manifold", description="Manifest-driven API engine")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress to stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    check = sub.add_parser("check", help="Validate a manifest file")
    check.add_argument("manifest")
    check.set_defaults(func=cmd_check)

    openapi = sub.add_parser("openapi", help="Print the description document of a manifest")
    openapi.add_argument("manifest")
    openapi.add_argument("-o", "--output", help="Write to this file instead of stdout")
    openapi.set_defaults(func=cmd_openapi)

    seed_cmd = sub.add_parser("seed", help="Insert dummy records for every entity")
    seed_cmd.add_argument("manifest")
    seed_cmd.add_argument("--count", type=int, default=10, help="Records per entity (default: 10)")
    seed_cmd.add_argument("--seed", type=int, default=None, help="Random seed for repeatable data")
    seed_cmd.add_argument(
        "--database-url",
        default=os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL),
        help="SQLAlchemy async URL (default: $DATABASE_URL or a local SQLite file)",
    )
    seed_cmd.set_defaults(func=cmd_seed)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING, stream=sys.stderr)
    try:
        return args.func(args)
    except ManifoldError as exc:
        _print_errors(exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
