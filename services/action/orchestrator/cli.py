"""Command-line entry point for the orchestrator scheduler jobs.

Cron or a systemd timer runs one subcommand per tick::

    hearth-orchestrator --config ~/.config/hearth/hearth.yml daily fam-1 fam-2
    hearth-orchestrator weekly fam-1
    hearth-orchestrator sweep
"""

from __future__ import annotations

import argparse
from datetime import datetime
from pathlib import Path
from typing import Sequence

from packages.hearth_shared.config import load_settings
from packages.hearth_shared.logging import configure_logging, get_logger
from services.action.orchestrator.jobs import (
    JobItemResult,
    run_daily_tick,
    run_mitigation_sweep,
    run_weekly_tick,
)
from services.action.orchestrator.service import build_orchestrator_service

_LOGGER = get_logger(__name__)


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run Hearth orchestrator jobs.")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a Hearth YAML config (defaults to ~/.config/hearth/hearth.yml).",
    )
    parser.add_argument(
        "--now",
        type=datetime.fromisoformat,
        default=None,
        help="Timezone-aware ISO-8601 instant to run as (defaults to the current time).",
    )
    subparsers = parser.add_subparsers(dest="job", required=True)
    for name, help_text in (
        ("daily", "Build today's plan for each family."),
        ("weekly", "Build the weekly brief for each family."),
    ):
        job = subparsers.add_parser(name, help=help_text)
        job.add_argument("family_ids", nargs="+", help="Families to process.")
    subparsers.add_parser("sweep", help="Clear expired mitigations.")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = load_settings(config_path=args.config)
    configure_logging(
        level=settings.logging.level,
        json_output=settings.logging.json_output,
        service=settings.logging.service,
        environment=settings.logging.environment,
    )
    service = build_orchestrator_service(settings=settings)

    if args.job == "sweep":
        result = run_mitigation_sweep(service.mitigation_controller(), now=args.now)
        return 1 if result.error is not None or result.failed else 0

    results: list[JobItemResult]
    if args.job == "daily":
        results = run_daily_tick(service, args.family_ids, now=args.now)
    else:
        results = run_weekly_tick(service, args.family_ids, now=args.now)
    failed = [item.family_id for item in results if not item.ok]
    if failed:
        _LOGGER.error("%s job failed for %d of %d families", args.job, len(failed), len(results))
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
