"""Run a reconciliation job against the configured entity store.

Usage:
    python scripts/run_reconciliation.py skills --dry-run
    python scripts/run_reconciliation.py skills --option deprecate_legacy=true
    python scripts/run_reconciliation.py departments \
        --option 'changes=[{"old_name": "Fabricacion", "new_name": "Producción"}]'
    python scripts/run_reconciliation.py --list
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from connectors.entity_store.client import EntityStoreClient
from core.audit.events import build_audit_logger
from core.config import get_settings
from core.errors import ReconciliationError
from core.observability.logging import configure_logging, get_logger
from reconciliation.jobs import list_jobs, run_job

logger = get_logger(__name__)


def parse_options(pairs: List[str]) -> Dict[str, Any]:
    """Parse ``key=value`` pairs; values are decoded as JSON when possible."""
    options: Dict[str, Any] = {}
    for pair in pairs or []:
        key, sep, raw = pair.partition("=")
        if not sep or not key.strip():
            raise argparse.ArgumentTypeError(f"Invalid option '{pair}', expected key=value")
        try:
            options[key.strip()] = json.loads(raw)
        except json.JSONDecodeError:
            options[key.strip()] = raw
    return options


async def run(job: str, dry_run: bool, options: Dict[str, Any]) -> dict:
    settings = get_settings()
    async with EntityStoreClient(settings.store, settings.service_token) as store:
        report = await run_job(
            store,
            job,
            dry_run=dry_run,
            options=options,
            write_delay=settings.write_delay_seconds,
            page_size=settings.store.page_size,
            audit=build_audit_logger(settings.audit_dir),
            actor="cli",
        )
    return report.to_response()


def main(argv: List[str] = None) -> int:
    parser = argparse.ArgumentParser(description="Run a workforce reconciliation job")
    parser.add_argument("job", nargs="?", help="Job name (see --list)")
    parser.add_argument("--dry-run", action="store_true", help="Plan only, write nothing")
    parser.add_argument(
        "--option", "-o",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Job option (repeatable); VALUE is parsed as JSON when possible",
    )
    parser.add_argument("--list", action="store_true", help="List available jobs and exit")
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.log_json, include_temporal=False)

    if args.list:
        print(json.dumps(list_jobs(), indent=2, ensure_ascii=False))
        return 0
    if not args.job:
        parser.error("job is required")

    try:
        options = parse_options(args.option)
    except argparse.ArgumentTypeError as e:
        parser.error(str(e))

    try:
        result = asyncio.run(run(args.job, args.dry_run, options))
    except ReconciliationError as e:
        logger.error(f"Reconciliation failed: {e}")
        print(json.dumps({"error": str(e)}, ensure_ascii=False))
        return 1

    print(json.dumps(result, indent=2, ensure_ascii=False, default=str))
    return 0 if not result.get("errors") else 2


if __name__ == "__main__":
    sys.exit(main())
