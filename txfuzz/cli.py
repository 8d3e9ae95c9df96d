"""
Command line entry point

    txfuzz targets
    txfuzz run IDENTITY HOST:PORT [--continuous] [--max-code N]

Ctrl-C requests cooperative cancellation; the session is released before
the process exits.
"""
import argparse
import asyncio
import signal
import sys
from typing import List, Optional

import structlog

from txfuzz.config import settings
from txfuzz.engine.campaign import CampaignController
from txfuzz.engine.tcp_transport import TcpSessionProvider
from txfuzz.logging import setup_logging
from txfuzz.models import FuzzResult

logger = structlog.get_logger()


def _print_result(result: FuzzResult) -> None:
    print(
        f"[{result.severity.value.upper()}] code={result.transaction_code} "
        f"input={result.input_label} -> {result.outcome_label}",
        flush=True,
    )


def cmd_targets(args: argparse.Namespace) -> int:
    provider = TcpSessionProvider(targets=args.target or None)
    candidates = CampaignController(provider).list_targets()
    if not candidates:
        print("No targets configured (set TXFUZZ_TARGETS or pass --target)")
        return 0
    for candidate in candidates:
        print(f"{candidate.identity}\t{candidate.endpoint_name}")
    return 0


async def _run_campaign(args: argparse.Namespace) -> int:
    controller = CampaignController(
        TcpSessionProvider(transaction_timeout_ms=args.timeout_ms),
        max_transaction_code=args.max_code,
        inter_trial_delay_ms=args.trial_delay_ms,
    )
    controller.state.ledger.subscribe(_print_result)

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, controller.cancel)
        handler_installed = True
    except (NotImplementedError, RuntimeError):
        handler_installed = False
        logger.debug("signal_handler_unavailable")

    try:
        status = await controller.run_campaign(
            args.identity,
            args.endpoint,
            continuous=args.continuous,
        )
    finally:
        if handler_installed:
            loop.remove_signal_handler(signal.SIGINT)

    print(
        f"Campaign {status.phase.value}: {status.result_count} result(s), "
        f"crash found: {status.crash_found}, rounds: {status.round}"
    )
    return 1 if status.crash_found else 0


def cmd_run(args: argparse.Namespace) -> int:
    return asyncio.run(_run_campaign(args))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="txfuzz",
        description="Boundary-value fuzzer for transaction-code endpoints",
    )
    parser.add_argument("--log-level", default=settings.log_level, help="Log level")
    sub = parser.add_subparsers(dest="command", required=True)

    targets = sub.add_parser("targets", help="List configured targets")
    targets.add_argument(
        "--target",
        action="append",
        help="Extra identity=host:port entry (repeatable)",
    )
    targets.set_defaults(func=cmd_targets)

    run = sub.add_parser("run", help="Fuzz one target")
    run.add_argument("identity", help="Target identity")
    run.add_argument("endpoint", help="Target endpoint (host:port)")
    run.add_argument(
        "--continuous",
        action="store_true",
        help="Repeat rounds until a crash is found",
    )
    run.add_argument("--max-code", type=int, default=None, help="Highest transaction code")
    run.add_argument("--timeout-ms", type=int, default=None, help="Per-transaction timeout")
    run.add_argument("--trial-delay-ms", type=int, default=None, help="Delay between trials")
    run.set_defaults(func=cmd_run)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging("cli", level=args.log_level.upper(), json_output=False)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
