import argparse
from datetime import date, datetime
import logging

from qcreport.config import get_settings
from qcreport.db_models import build_session_factory
from qcreport.pipeline import ReportRunner, previous_month, yesterday
from qcreport.scheduler import start_scheduler


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build checklist compliance reports")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="build one monthly report")
    run_parser.add_argument("--month", type=int, choices=range(1, 13), metavar="1-12", help="Report month (default: previous month)")
    run_parser.add_argument("--year", type=int, help="Report year (default: year of the previous month)")

    daily_parser = subparsers.add_parser("daily", help="build one daily quality summary")
    daily_parser.add_argument("--date", type=date.fromisoformat, help="Summary day as YYYY-MM-DD (default: yesterday, US Eastern)")

    for report_parser in (run_parser, daily_parser):
        report_parser.add_argument("--run-key", required=False, help="Idempotency key for this report")
        report_parser.add_argument(
            "--trigger-source",
            default="manual",
            choices=["manual", "scheduled"],
            help="Metadata label for how this report was triggered",
        )

    schedule_parser = subparsers.add_parser("schedule", help="start monthly and daily scheduler")
    schedule_parser.add_argument("--run-now", action="store_true", help="also build both reports immediately")

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    session_factory = build_session_factory(settings.database_url)
    if args.command == "schedule":
        start_scheduler(settings, session_factory, run_now=args.run_now)
        return

    runner = ReportRunner(settings, session_factory)
    if args.command == "daily":
        day = args.date or yesterday()
        run_key = args.run_key or f"daily-{day.isoformat()}"
        result = runner.run_daily(day=day, run_key=run_key, trigger_source=args.trigger_source)
    else:
        now = datetime.now()
        if args.month is None:
            month, year = previous_month(now)
            year = args.year or year
        else:
            month, year = args.month, args.year or now.year
        run_key = args.run_key or f"{year:04d}-{month:02d}"
        result = runner.run(month=month, year=year, run_key=run_key, trigger_source=args.trigger_source)

    print(
        "run_id={run_id} run_key={run_key} kind={kind} trigger={trigger} status={status} total={total} not_comply={not_comply} needs_review={needs_review} failed_types={failed} reused={reused} report={report}".format(
            run_id=result.run_id,
            run_key=result.run_key,
            kind=result.kind,
            trigger=result.trigger_source,
            status=result.status,
            total=result.grand_total,
            not_comply=result.not_comply,
            needs_review=result.needs_review,
            failed=result.failed_types,
            reused=result.reused_existing_run,
            report=result.report_path,
        )
    )
    if result.status == "failed":
        raise SystemExit(1)


if __name__ == "__main__":
    main()
