#!/usr/bin/env python3
"""
Sync Stale Performance Snapshots

Finds artists with a Spotify id whose performance snapshot is missing or
older than 24 hours and triggers a scrape for each through the API's
/scrape-chartmasters endpoint (PERFORMANCE_SYNC_URL).

The endpoint requires a bearer token. PERFORMANCE_SYNC_TOKEN is used when
set; otherwise a short-lived token is signed for SYNC_SERVICE_USER_ID.
The endpoint only scrapes artists of teams the token's user belongs to, so
the service user must be a member of every team being synced; other
artists are counted as errors (403).

Staleness comes from the scraped_at column of the artist listing, so no
per-artist snapshot query is made.

Examples:
    python sync_stale_performance.py --dry-run
    python sync_stale_performance.py --team <uuid> --limit 10
"""

import os

from script_base import ScriptBase, run_script

import label_db
from auth_utils import generate_service_token
from config import get_settings
from performance import PerformanceSync, sync_stale_artists


def main() -> bool:
    script = ScriptBase(
        name="sync_stale_performance",
        description="Refresh stale artist performance snapshots",
        epilog="Examples:\n  python sync_stale_performance.py --dry-run\n"
               "  python sync_stale_performance.py --team <uuid> --limit 10"
    )
    script.add_team_arg()
    script.add_dry_run_arg()
    script.add_debug_arg()
    script.add_limit_arg()

    args = script.parse_args()

    script.print_header({"DRY RUN": args.dry_run})

    settings = get_settings()
    token = os.environ.get('PERFORMANCE_SYNC_TOKEN')
    if not token and not args.dry_run:
        user_id = os.environ.get('SYNC_SERVICE_USER_ID')
        if not user_id:
            script.logger.error("Set PERFORMANCE_SYNC_TOKEN or SYNC_SERVICE_USER_ID")
            return False
        token = generate_service_token(user_id)

    syncer = PerformanceSync(
        settings.performance_sync_url,
        load_snapshot=label_db.get_performance_snapshot,
        auth_token=token,
    )

    artists = label_db.list_artists_with_spotify(team_id=args.team)
    script.logger.info(f"Found {len(artists)} artists with a Spotify id")

    stats = sync_stale_artists(syncer, artists, limit=args.limit, dry_run=args.dry_run)

    script.print_summary(stats)
    return stats['errors'] == 0


if __name__ == "__main__":
    run_script(main)
