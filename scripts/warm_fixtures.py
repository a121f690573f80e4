#!/usr/bin/env python3
"""
Request a list of paths through a running mock API so their fixtures get recorded.

Paths already backed by a fixture are served from disk and not fetched again.

Usage:
    python scripts/warm_fixtures.py /api/articles /api/articles/1
    python scripts/warm_fixtures.py --file paths.txt
    python scripts/warm_fixtures.py --mock-url http://localhost:4568 /api/feed?callback=cb
"""
from __future__ import annotations

import argparse
import sys

import httpx


def read_paths(path_file: str) -> list[str]:
    """One path per line; blank lines and lines starting with # are skipped."""
    with open(path_file, "r", encoding="utf-8") as f:
        lines = [line.strip() for line in f]
    return [line for line in lines if line and not line.startswith("#")]


def warm_path(client: httpx.Client, mock_url: str, path: str) -> bool:
    """Request one path. Returns True when the mock API answered successfully."""
    if not path.startswith("/"):
        path = "/" + path

    try:
        response = client.get(f"{mock_url}{path}")
    except httpx.RequestError as e:
        print(f"❌ {path}: {e}")
        print("   Is the mock API running? (python -m mock_api --config ...)")
        return False

    content_type = response.headers.get("Content-Type", "-")
    if response.is_success:
        print(f"💾 {path} -> {response.status_code} ({content_type}, {len(response.content)} bytes)")
        return True

    print(f"⛔️ {path} -> {response.status_code}")
    return False


def main():
    parser = argparse.ArgumentParser(description="Record fixtures through a running mock API")
    parser.add_argument("paths", nargs="*", help="Request paths, optionally with query strings")
    parser.add_argument("--file", help="File with one path per line")
    parser.add_argument("--mock-url", default="http://localhost:4567", help="Mock API URL")

    args = parser.parse_args()

    paths = list(args.paths)
    if args.file:
        paths.extend(read_paths(args.file))
    if not paths:
        print("❌ Error: no paths given")
        print("   Pass paths as arguments or via --file")
        sys.exit(1)

    with httpx.Client(timeout=30.0) as client:
        results = [warm_path(client, args.mock_url.rstrip("/"), path) for path in paths]

    failed = results.count(False)
    print(f"\n{len(results) - failed}/{len(results)} paths recorded or already cached")
    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()
