import argparse
import json
import sys
from pathlib import Path

from .database import SessionLocal
from .integrations.receipt_parser import ReceiptParseError, parse_receipt_file
from .services.receipt_check import InvalidYearMonthError, ReceiptCheckService


def run_check(year_month: str, billing_ids=None) -> int:
    db = SessionLocal()
    try:
        response = ReceiptCheckService.run_check(db, year_month, billing_ids, performed_by="cli")
    except InvalidYearMonthError as e:
        print(f"ERROR: {e}")
        return 2
    finally:
        db.close()

    if response.message:
        print(response.message)
        return 0

    for result in response.results:
        print(f"[{result.status.upper():5}] {result.billing_id} {result.patient_name}")
        for msg in result.errors:
            print(f"    E: {msg}")
        for msg in result.warnings:
            print(f"    W: {msg}")
        if result.unresolved_codes:
            print(f"    unresolved codes: {', '.join(result.unresolved_codes)}")

    s = response.summary
    print(f"total={s.total} ok={s.ok} warn={s.warn} error={s.error}")
    return 1 if s.error else 0


def run_parse(path: str) -> int:
    try:
        parsed = parse_receipt_file(Path(path).read_bytes())
    except (OSError, ReceiptParseError) as e:
        print(f"ERROR: {e}")
        return 2
    print(json.dumps(parsed.model_dump(), ensure_ascii=False, indent=2))
    return 0


def run_rules() -> int:
    db = SessionLocal()
    try:
        counts = ReceiptCheckService.rule_counts(db)
    finally:
        db.close()
    for table, count in counts.items():
        print(f"{table:32} {count}")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Dental receipt compliance tools")
    sub = parser.add_subparsers(dest="command", required=True)

    check = sub.add_parser("check", help="Check paid billing rows of a month")
    check.add_argument("year_month", help="Billing month (YYYY-MM)")
    check.add_argument("--billing-id", action="append", dest="billing_ids", help="Check only this billing id (repeatable)")

    parse = sub.add_parser("parse", help="Decode a receipt export file to JSON")
    parse.add_argument("path", help="Path to the receipt file")

    sub.add_parser("rules", help="Show loaded rule counts")

    args = parser.parse_args(argv)
    if args.command == "check":
        return run_check(args.year_month, args.billing_ids)
    if args.command == "parse":
        return run_parse(args.path)
    return run_rules()


if __name__ == "__main__":
    sys.exit(main())
