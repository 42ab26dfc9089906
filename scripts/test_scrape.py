"""
Check a URL and price hint from CLI without touching the database.
"""

from __future__ import annotations

import argparse
import json

from app.scraping.config import get_scraping_settings
from app.scraping.engine import ScrapeEngine
from app.scraping.types import ExtractionMode


def main() -> int:
    parser = argparse.ArgumentParser(description="Scrape one product page and print the result.")
    parser.add_argument("url", help="Product page URL.")
    parser.add_argument("hint", help="Comma-joined CSS selectors locating the price.")
    parser.add_argument(
        "--best-effort",
        dest="best_effort",
        action="store_true",
        help="Evaluate every strategy instead of stopping at the first match.",
    )
    args = parser.parse_args()

    engine = ScrapeEngine(settings=get_scraping_settings())
    mode = ExtractionMode.BEST_EFFORT if args.best_effort else ExtractionMode.FAST
    outcome = engine.scrape(args.url, args.hint, mode, debug=True)

    payload = {
        "success": outcome.success,
        "price": outcome.price,
        "strategy": outcome.strategy,
        "title": outcome.title,
        "availability": outcome.availability,
        "image": outcome.image,
        "error": outcome.error,
        "error_type": outcome.error_type,
        "elapsed_ms": outcome.elapsed_ms,
        "debug_info": outcome.debug,
    }
    print(json.dumps(payload, indent=2, default=str, ensure_ascii=False))
    return 0 if outcome.success else 1


if __name__ == "__main__":
    raise SystemExit(main())
