#!/usr/bin/env python3
"""
Operator CLI for the weekly settlement core.

Usage:
    python3 scripts/settle.py init-db
    python3 scripts/settle.py breakdown --tenant <uuid> --settlement <uuid> [--subclub <uuid> ...]
    python3 scripts/settle.py finalize  --tenant <uuid> --settlement <uuid> [--actor <uuid>]
    python3 scripts/settle.py void      --tenant <uuid> --settlement <uuid> --reason "..."
    python3 scripts/settle.py close     --tenant <uuid> --settlement <uuid>
    python3 scripts/settle.py agent-rate --tenant <uuid> --settlement <uuid> --agent-metric <uuid> --rate 25
    python3 scripts/settle.py match     --tenant <uuid> --period 2024-06-03

Every command prints one JSON document on stdout.  The database URL and
the other settings come from $SETTLEMENT_CONFIG (see
settlement_config/defaults.yaml); --db-url overrides the URL.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from uuid import UUID

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _uuid(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a UUID: {value!r}") from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Weekly club settlement operations.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--db-url", type=str, default=None, help="Override the configured database URL")
    parser.add_argument("--config", type=str, default=None, help="Settings YAML (default: $SETTLEMENT_CONFIG)")
    parser.add_argument("--verbose", action="store_true", help="Emit structured logs on stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the settlement tables")

    for name, help_text in (
        ("breakdown", "Print the settlement breakdown"),
        ("finalize", "DRAFT -> FINAL"),
        ("void", "FINAL -> VOID"),
        ("close", "Carry agent balances into the next period"),
        ("agent-rate", "Set an agent's rakeback rate and apply it to its players"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("--tenant", type=_uuid, required=True)
        cmd.add_argument("--settlement", type=_uuid, required=True)
        cmd.add_argument("--actor", type=_uuid, default=None)
        if name == "breakdown":
            cmd.add_argument(
                "--subclub", type=_uuid, action="append", default=None,
                help="Restrict to these subclub ids (repeatable)",
            )
        if name == "void":
            cmd.add_argument("--reason", type=str, required=True)
        if name == "agent-rate":
            cmd.add_argument("--agent-metric", type=_uuid, required=True)
            cmd.add_argument("--rate", type=str, required=True, help="Percent, 0-100")

    match = sub.add_parser("match", help="Suggest entities for pending bank lines")
    match.add_argument("--tenant", type=_uuid, required=True)
    match.add_argument("--period", type=str, required=True, help="Period start, YYYY-MM-DD")

    return parser


def run(args: argparse.Namespace) -> object:
    from settlement_config import get_active_config
    from settlement_kernel.db.engine import create_tables, init_engine_from_url, session_scope
    from settlement_kernel.services.rate_service import RateService
    from settlement_kernel.services.settlement_service import SettlementService
    from settlement_kernel.utils.cache import CacheService
    from settlement_services import BankReconciliationService, BreakdownService, CarryForwardService

    config = get_active_config(args.config)
    db = config.database
    init_engine_from_url(
        args.db_url or db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
        statement_timeout_ms=db.statement_timeout_ms,
    )

    if args.command == "init-db":
        create_tables()
        return {"created": True}

    cache = CacheService(
        default_ttl=config.cache.breakdown_ttl_seconds,
        max_entries=config.cache.max_entries,
    )
    with session_scope() as session:
        if args.command == "breakdown":
            service = BreakdownService(
                session,
                cache=cache,
                cache_ttl=config.cache.breakdown_ttl_seconds,
                default_fees=config.fees.as_mapping(),
            )
            return service.get_breakdown(args.tenant, args.settlement, args.subclub).to_dict()
        if args.command == "finalize":
            return SettlementService(session, cache=cache).finalize(
                args.tenant, args.settlement, actor_id=args.actor
            ).to_dict()
        if args.command == "void":
            return SettlementService(session, cache=cache).void(
                args.tenant, args.settlement, args.reason, actor_id=args.actor
            ).to_dict()
        if args.command == "close":
            return CarryForwardService(session).close_period(args.tenant, args.settlement).to_dict()
        if args.command == "agent-rate":
            rates = RateService(
                session,
                settlements=SettlementService(session, cache=cache),
                chunk_size=config.batch.chunk_size,
            )
            outcome = rates.propagate_agent_rate(
                args.tenant, args.settlement, args.agent_metric, args.rate, actor_id=args.actor
            )
            return {"ok": outcome.ok, "failed": outcome.failed, "errors": list(outcome.errors)}
        if args.command == "match":
            service = BankReconciliationService(
                session, match_settings=config.matching.as_context_kwargs()
            )
            return [s.to_dict() for s in service.auto_match(args.tenant, args.period)]

    raise ValueError(f"unknown command {args.command!r}")


def main() -> int:
    args = build_parser().parse_args()

    from settlement_kernel.exceptions import SettlementKernelError
    from settlement_kernel.logging_config import configure_logging

    if args.verbose:
        configure_logging(level=logging.INFO, stream=sys.stderr)
    else:
        logging.disable(logging.CRITICAL)

    try:
        result = run(args)
    except SettlementKernelError as exc:
        print(json.dumps({"error": exc.code, "message": exc.message}), file=sys.stderr)
        return 2
    except (FileNotFoundError, ValueError) as exc:
        print(json.dumps({"error": "CONFIG_ERROR", "message": str(exc)}), file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
