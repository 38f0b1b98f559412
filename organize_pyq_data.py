"""
Organize PYQ data: maintenance run over the previous-year-question collection

Normalizes exam codes, levels, question/answer text and tags, assigns language and
theme, splits merged bilingual questions, removes invalid records and duplicates,
ensures the read-path indexes and prints a per-exam breakdown.

Usage:
    python organize_pyq_data.py
    python organize_pyq_data.py --dry-run
    python organize_pyq_data.py --batch-size 500 --workers 8 --no-lock

Exit codes: 0 done, 1 connection/processing failure, 2 another run holds the lock
"""

import argparse
import json
import logging
import os
import sys

from dotenv import load_dotenv

load_dotenv()

from database.database import SessionLocal
from database import redis_client
from ingestion.errors import ConnectionFailure, PipelineLocked
from ingestion.pipeline import PYQPipeline, PipelineState
from ingestion.schemas import PipelineReport

log = logging.getLogger(__name__)

PYQ_BATCH_SIZE = int(os.getenv("PYQ_BATCH_SIZE", "1000"))
PYQ_MAX_WORKERS = int(os.getenv("PYQ_MAX_WORKERS", "4"))
PYQ_BACKUP_DELETIONS = os.getenv("PYQ_BACKUP_DELETIONS", "true").lower() in ("1", "true", "yes")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_LOCKED = 2


def print_report(report: PipelineReport):
    prefix = "[DRY RUN] " if report.dry_run else ""
    print("\n" + "=" * 70)
    print(f"{prefix}PYQ DATA ORGANIZATION COMPLETE")
    print("=" * 70)
    print(f"  processed:          {report.processed}")
    print(f"  updated:            {report.updated}")
    print(f"  unchanged:          {report.unchanged}")
    print(f"  deleted:            {report.deleted}")
    print(f"    invalidRemoved:   {report.invalid_removed}")
    for reason, count in sorted(report.removal_reasons.items()):
        print(f"      {reason}: {count}")
    print(f"    duplicatesRemoved: {report.duplicates_removed}")
    print(f"  multiLangSeparated: {report.multi_lang_separated}")
    print(f"  multiLangCreated:   {report.multi_lang_created}")
    if report.conflicts_skipped:
        print(f"  ⚠ conflictsSkipped: {report.conflicts_skipped}")
    print(f"  finalCount:         {report.final_count}")

    if report.by_exam:
        print("\nRecords by exam:")
        for row in report.by_exam:
            print(f"  {row.key or '(none)'}: {row.count}")
    if report.by_language:
        print("\nRecords by language:")
        for row in report.by_language:
            print(f"  {row.key or '(none)'}: {row.count}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Normalize, split, classify and deduplicate the PYQ collection",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument("--batch-size", type=int, default=PYQ_BATCH_SIZE, help="Records per batch (default: %(default)s)")
    parser.add_argument("--workers", type=int, default=PYQ_MAX_WORKERS, help="Planning threads per batch (default: %(default)s)")
    parser.add_argument("--dry-run", action="store_true", help="Show what would be done without making changes")
    parser.add_argument("--no-lock", action="store_true", help="Skip the Redis run lock and cache invalidation")
    parser.add_argument("--json", action="store_true", help="Print the final report as JSON")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s  %(levelname)s  %(message)s")

    redis_conn = None
    if not args.no_lock and redis_client.is_enabled():
        redis_conn = redis_client.get_redis()

    db = SessionLocal()
    pipeline = PYQPipeline(
        db,
        batch_size=args.batch_size,
        max_workers=args.workers,
        dry_run=args.dry_run,
        backup=PYQ_BACKUP_DELETIONS,
        redis_conn=redis_conn,
    )

    try:
        stats = pipeline.run()
    except PipelineLocked as e:
        print(f"\n⚠ {e}")
        return EXIT_LOCKED
    except ConnectionFailure as e:
        print(f"\n✗ PYQ organization failed ({pipeline.state.value}): {e}")
        print("  Batches committed before the failure are kept; re-run to finish.")
        return EXIT_FAILED
    except Exception as e:
        log.exception("Unexpected error during PYQ organization")
        print(f"\n✗ PYQ organization failed ({pipeline.state.value}): {e}")
        return EXIT_FAILED
    finally:
        db.close()

    report = PipelineReport.from_statistics(stats, state=PipelineState.DONE.value, dry_run=args.dry_run)
    if args.json:
        print(json.dumps(report.model_dump(), indent=2))
    else:
        print_report(report)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
