"""
Run one price scraping batch from CLI.
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import uuid

from app.services.price_scraping_service import get_price_scraping_service
from db.session import SessionLocal


def main() -> int:
    parser = argparse.ArgumentParser(description="Scrape due tracked URLs and update material prices.")
    parser.add_argument(
        "--limit",
        dest="limit",
        type=int,
        default=None,
        help="Optional cap on the number of URLs processed.",
    )
    parser.add_argument(
        "--tracked-url-id",
        dest="tracked_url_id",
        type=uuid.UUID,
        default=None,
        help="Run a single tracked URL now instead of the due batch.",
    )
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")

    service = get_price_scraping_service()
    with SessionLocal() as db:
        if args.tracked_url_id is not None:
            result = service.run_one(db, args.tracked_url_id)
            payload = dataclasses.asdict(result)
        else:
            summary = service.run_batch(db, limit=args.limit)
            payload = dataclasses.asdict(summary)

    print(json.dumps(payload, indent=2, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
