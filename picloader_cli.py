# picloader_cli.py

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from picloader.core.cache.fingerprint import fingerprint
from picloader.core.logging_utils import configure_logging
from picloader.core.preload.scheduler import PreloadScheduler
from picloader.schemas.models import LoaderSettings


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="picloader", description="Picture preload cache")
    p.add_argument("--cache-dir", type=str, default=None, help="Cache directory (default: PICLOADER_CACHE_DIR or data/picture_cache)")
    p.add_argument("--max-parallel", type=int, default=None, help="Max concurrent fetches; 0 or negative = unbounded")
    p.add_argument("--timeout", type=float, default=None, help="Per-attempt timeout in seconds")
    p.add_argument("--attempts", type=int, default=None, help="Total attempts per fetch")
    p.add_argument("--fingerprint", choices=("md5", "sha256"), default=None, help="Digest used for storage keys")
    p.add_argument("--log-file", type=str, default=None, help="Also log to this rotating file")
    p.add_argument("-v", "--verbose", action="store_true")

    sub = p.add_subparsers(dest="command", required=True)

    sp = sub.add_parser("preload", help="Fetch URLs into the cache")
    sp.add_argument("urls", nargs="+")

    sp = sub.add_parser("get", help="Fetch one URL and write its bytes to a file")
    sp.add_argument("url")
    sp.add_argument("--out", type=str, required=True)
    sp.add_argument("--no-cache", action="store_true", help="Bypass the cache entirely")

    sp = sub.add_parser("unload", help="Remove URLs from the cache")
    sp.add_argument("urls", nargs="+")

    sub.add_parser("clear", help="Remove every cache entry")

    sp = sub.add_parser("fingerprint", help="Print the storage key for each argument")
    sp.add_argument("keys", nargs="+")

    return p


def _settings(args: argparse.Namespace) -> LoaderSettings:
    return LoaderSettings.from_env(
        cache_dir=Path(args.cache_dir) if args.cache_dir else None,
        max_parallel=args.max_parallel,
        timeout_s=args.timeout,
        timeout_attempts=args.attempts,
        fingerprint=args.fingerprint,
    )


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    configure_logging(level=logging.DEBUG if args.verbose else logging.INFO, log_file=args.log_file)

    if args.command == "fingerprint":
        algorithm = args.fingerprint or "md5"
        for key in args.keys:
            print(f"{fingerprint(key, algorithm)}  {key}")
        return 0

    settings = _settings(args)
    with PreloadScheduler.from_settings(settings) as scheduler:
        if args.command == "preload":
            summary = scheduler.preload(args.urls)
            print(
                f"preload: requested={summary.requested} skipped={summary.skipped} "
                f"fetched={summary.fetched} failed={summary.failed}"
            )
            return 0 if summary.failed == 0 else 1

        if args.command == "get":
            data = scheduler.get(args.url, preload=not args.no_cache)
            if not data:
                print(f"get: nothing fetched for {args.url}", file=sys.stderr)
                return 1
            out = Path(args.out)
            out.parent.mkdir(parents=True, exist_ok=True)
            out.write_bytes(data)
            print(f"get: {len(data)} bytes -> {out}")
            return 0

        if args.command == "unload":
            n = scheduler.unload(args.urls)
            print(f"unload: {n} entr{'y' if n == 1 else 'ies'} removed")
            return 0

        if args.command == "clear":
            n = scheduler.clear()
            print(f"clear: {n} file(s) removed from {settings.cache_dir}")
            return 0

    return 2


if __name__ == "__main__":
    raise SystemExit(main())
