
import argparse
import csv
import sys

from app.core.logging import configure_logging
from app.services.report_poller import PollerError, ReportPoller

COLUMNS = [
    "productTitle", "variantTitle", "sku", "vendor", "productType", "cost", "qtyOH", "extCost",
    "firstRecDate", "lastRecDate", "firstSoldDate", "lastSoldDate",
]


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Drive the markdown report job to completion and print CSV.")
    parser.add_argument("--base-url", default="http://localhost:8000")
    parser.add_argument("--shop", required=True, help="myshopify domain, e.g. example.myshopify.com")
    parser.add_argument("--qty", type=int, default=0, help="keep variants with qty sold <= this value")
    parser.add_argument("--days", type=int, default=60, help="look-back window in days")
    parser.add_argument("--full-sync", action="store_true", help="run a fresh Stocky full sync first")
    args = parser.parse_args(argv)

    logger = configure_logging()
    poller = ReportPoller(args.base_url, args.shop)

    try:
        if args.full_sync:
            sync = poller.run_full_sync(
                start_fresh=True,
                on_progress=lambda c: logger.info("full_sync offset=%s message=%s", c.get("offset"), c.get("message")),
            )
            logger.info("full_sync done offset=%s", sync.get("offset"))

        report = poller.run_markdown_report(
            args.qty,
            args.days,
            on_progress=lambda r: logger.info("report job=%s processed=%s done=%s",
                r.get("jobId"), r.get("processedOrders"), r.get("done")),
        )
    except PollerError as e:
        logger.error("poller failed: %s", e)
        return 1

    writer = csv.DictWriter(sys.stdout, fieldnames=COLUMNS, extrasaction="ignore")
    writer.writeheader()
    for row in report.get("rows") or []:
        writer.writerow(row)
    if report.get("truncated"):
        logger.warning("variant list truncated at %s", report.get("maxVariants"))
    return 0


if __name__ == "__main__":
    sys.exit(main())


# 运行（在 backend/ 目录下，或已 pip install -e .）
# python scripts/run_markdown_report.py --shop example.myshopify.com --qty 0 --days 60
