#!/usr/bin/env python3
"""
Schedule Cache Prewarm Script
Resolves the next N days through the provider chain so the first requests
of the day are served from cache (run from cron shortly after midnight).
"""

import argparse
import asyncio
import logging
from datetime import date

from config.settings import settings
from modules.core.safe_logger import init_safe_logging, log_summary
from modules.prayer_engine import InvalidInput, Location, build_engine

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description='Prewarm the prayer schedule cache for the coming days'
    )
    parser.add_argument(
        '--days',
        type=int,
        default=7,
        help='Number of days to resolve, starting today (default: 7)'
    )
    parser.add_argument(
        '--date',
        type=date.fromisoformat,
        help='First date to resolve, YYYY-MM-DD (default: today at the location)'
    )
    parser.add_argument(
        '--method',
        type=str,
        help='Calculation method name or AlAdhan id (default: PRAYER_CALCULATION_METHOD)'
    )
    parser.add_argument('--latitude', type=float, help='Override MOSQUE_LATITUDE')
    parser.add_argument('--longitude', type=float, help='Override MOSQUE_LONGITUDE')
    parser.add_argument('--timezone', type=str, help='Override MOSQUE_TIMEZONE')
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    """Main execution function"""
    args = parse_args(argv)
    init_safe_logging(settings.log_level, use_structured=settings.log_json)

    engine = build_engine(settings)
    try:
        location = None
        if args.latitude is not None or args.longitude is not None or args.timezone:
            default = engine.config.default_location
            location = Location(
                args.latitude if args.latitude is not None else default.latitude,
                args.longitude if args.longitude is not None else default.longitude,
                args.timezone or default.timezone,
            )

        logger.info(f"🔥 Prewarming {args.days} day(s) of prayer schedules")
        summary = await engine.prewarm(location, days=args.days, start_date=args.date, method=args.method)

    except InvalidInput as e:
        logger.error(f"❌ Invalid prewarm request: {e}")
        return 1

    finally:
        await engine.close()

    log_summary("Prewarm complete", {
        "start_date": summary["start_date"],
        "days": summary["days"],
        **summary["layers"],
        **{f"cache_{key}": value for key, value in engine.cache_stats().items()},
    })
    return 0


if __name__ == '__main__':
    raise SystemExit(asyncio.run(main()))
