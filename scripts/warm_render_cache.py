#!/usr/bin/env python3
"""
Warm the render cache for a list of frequently requested pages.

Each URL is requested through a running render service, so misses are rendered
and stored exactly as a client request would do it. Can be run from a developer
workstation or a CI job after a deploy.
"""

import argparse
import asyncio
import json
import time
from pathlib import Path
from typing import Iterable, List, Optional
import sys
import os

import httpx


def load_urls(path: Optional[Path], extra: Iterable[str] = ()) -> List[str]:
    """Read one URL per line, skipping blanks and '#' comments, without duplicates."""
    lines: List[str] = []
    if path is not None:
        lines.extend(path.read_text().splitlines())
    lines.extend(extra)

    urls: List[str] = []
    for line in lines:
        url = line.strip()
        if not url or url.startswith("#") or url in urls:
            continue
        urls.append(url)
    return urls


async def warm(
    *,
    service_url: str,
    urls: List[str],
    ttl_ms: Optional[int],
    concurrency: int,
    timeout: float,
    dry_run: bool,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict:
    """Request every URL through the service and return the summary."""
    summary = {
        "service_url": service_url,
        "requested": len(urls),
        "warmed": 0,
        "failed": 0,
        "failures": [],
        "dry_run": dry_run,
    }
    if dry_run:
        summary["planned"] = list(urls)
        return summary

    started = time.perf_counter()
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async with httpx.AsyncClient(base_url=service_url, timeout=timeout, transport=transport) as client:

        async def warm_one(url: str) -> None:
            params = {"url": url}
            if ttl_ms is not None:
                params["ttl"] = str(ttl_ms)
            async with semaphore:
                try:
                    response = await client.get("/api/v1/html", params=params)
                    ok = response.status_code == 200 and response.json().get("status") == "OK"
                    error = None if ok else f"HTTP {response.status_code}"
                except (httpx.HTTPError, ValueError) as exc:
                    ok, error = False, str(exc) or type(exc).__name__

            if ok:
                summary["warmed"] += 1
            else:
                summary["failed"] += 1
                summary["failures"].append({"url": url, "error": error})

        await asyncio.gather(*(warm_one(url) for url in urls))

    summary["duration_seconds"] = round(time.perf_counter() - started, 3)
    return summary


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Warm the render cache for hot pages.")
    parser.add_argument("urls", nargs="*", help="URLs to warm, in addition to --urls-file")
    parser.add_argument("--service-url", default=os.getenv("RENDER_SERVICE_URL", "http://localhost:8080"), help="Render service base URL")
    parser.add_argument("--urls-file", type=Path, default=None, help="File with one URL per line")
    parser.add_argument("--ttl", type=int, default=None, help="Cache TTL in milliseconds sent with each request")
    parser.add_argument("--concurrency", type=int, default=int(os.getenv("RENDER_WARM_CONCURRENCY", 4)), help="Concurrent requests")
    parser.add_argument("--timeout", type=float, default=15.0, help="Per-request timeout in seconds")
    parser.add_argument("--dry-run", action="store_true", help="Only print the URLs that would be warmed")
    parser.add_argument("--output", type=Path, default=None, help="Optional path to write JSON summary")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    try:
        urls = load_urls(args.urls_file, args.urls)
    except OSError as exc:
        print(f"[render-warm] cannot read urls: {exc}", file=sys.stderr)
        return 1

    if not urls:
        print("[render-warm] no urls to warm", file=sys.stderr)
        return 1

    try:
        summary = asyncio.run(
            warm(
                service_url=args.service_url,
                urls=urls,
                ttl_ms=args.ttl,
                concurrency=args.concurrency,
                timeout=args.timeout,
                dry_run=args.dry_run,
            )
        )
    except KeyboardInterrupt:
        return 130

    if args.dry_run:
        print("[render-warm] DRY RUN - no requests sent")

    print(json.dumps(summary, indent=2))

    if args.output:
        args.output.write_text(json.dumps(summary, indent=2))

    return 0 if summary["failed"] == 0 else 2


if __name__ == "__main__":
    raise SystemExit(main())
