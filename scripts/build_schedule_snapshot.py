#!/usr/bin/env python3
"""
Download a GTFS static export and build the `<family>_schedule.db` snapshot.

    python scripts/build_schedule_snapshot.py lirr
    python scripts/build_schedule_snapshot.py ferry --days 14
    python scripts/build_schedule_snapshot.py njt --url file:///tmp/njt_rail_gtfs.zip
"""

import argparse
import asyncio
import sys
from pathlib import Path

import httpx
import structlog

from transit_eta.config import get_settings
from transit_eta.schedule.builder import build_snapshot
from transit_eta.utils.localtime import TimeLocalizer

logger = structlog.get_logger()

GTFS_EXPORTS = {
    "lirr": "http://web.mta.info/developers/data/lirr/google_transit.zip",
    "mnr": "http://web.mta.info/developers/data/mnr/google_transit.zip",
    "ferry": "https://nycferry.connexionz.net/rtt/public/utility/gtfs.aspx",
}


async def download(url: str) -> bytes:
    if url.startswith("file://"):
        return Path(url[len("file://"):]).read_bytes()

    async with httpx.AsyncClient(timeout=60.0, follow_redirects=True) as client:
        response = await client.get(url)
        response.raise_for_status()

    logger.info("Downloaded GTFS export", url=url, size_mb=round(len(response.content) / 1024 / 1024, 1))
    return response.content


async def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("family", choices=["lirr", "mnr", "ferry", "njt"])
    parser.add_argument("--url", help="GTFS zip to use instead of the published export")
    parser.add_argument("--days", type=int, default=30, help="Service dates to keep, starting today")
    parser.add_argument("--out", type=Path, default=None, help="Snapshot directory (defaults to SCHEDULE_DB_DIR)")
    args = parser.parse_args(argv)

    url = args.url or GTFS_EXPORTS.get(args.family)
    if url is None:
        # The NJ Transit export sits behind a developer login
        parser.error(f"no public export for {args.family}; pass --url")

    settings = get_settings()
    out_dir = args.out or settings.schedule_db_dir
    out_dir.mkdir(parents=True, exist_ok=True)

    try:
        payload = await download(url)
    except httpx.HTTPError as e:
        logger.error("Download failed", url=url, error=str(e))
        return 1

    counts = build_snapshot(
        payload,
        out_dir / f"{args.family}_schedule.db",
        window_days=args.days,
        localizer=TimeLocalizer(settings.timezone),
    )
    if not counts["services"]:
        logger.warning("Snapshot has no active service dates", family=args.family)
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
