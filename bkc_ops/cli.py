#!/usr/bin/env python3
"""
bkc-ops command line: run deployment steps, the full pipeline, and the
maintenance operations against one network
"""

import argparse
import logging
import sys
import time
from typing import Callable, List, Optional

import schedule
from dotenv import load_dotenv

from . import __version__
from .chain import ChainClient, Web3ChainClient
from .config import NETWORKS, Settings
from .errors import DeploymentError
from .ledger import AddressLedger
from .notify import Notifier
from .pacing import build_limiter
from .steps import (
    PIPELINE,
    AddLiquidity,
    ManageRules,
    SalesReportStep,
    StepContext,
    UpdatePrices,
    run_step,
)
from .tiers import TierRegistry

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

ClientFactory = Callable[[Settings], ChainClient]


class _BelowError(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < logging.ERROR


def setup_logging(log_file: Optional[str] = None, verbose: bool = False) -> None:
    """Progress to stdout, errors to stderr, everything to log_file if set"""
    formatter = logging.Formatter(LOG_FORMAT)

    out = logging.StreamHandler(sys.stdout)
    out.addFilter(_BelowError())
    err = logging.StreamHandler(sys.stderr)
    err.setLevel(logging.ERROR)
    handlers: List[logging.Handler] = [out, err]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        handlers=handlers,
        force=True,
    )
    # web3 request logging is far too chatty at DEBUG
    logging.getLogger("web3").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bkc-ops",
        description="Backchain deployment and maintenance control plane",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  bkc-ops steps
  bkc-ops --network sepolia pipeline
  bkc-ops --network sepolia pipeline --start-at create-pools
  bkc-ops run configure-hub
  bkc-ops --network arbitrum update-prices --multiplier 150/100 --dry-run
  bkc-ops sales-report --csv sales.csv --every 60
  bkc-ops --network arbitrum add-liquidity --renounce-ownership
  bkc-ops manage-rules --rules rules-config.json
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--ledger", help="Address ledger path (default: $BKC_LEDGER_PATH)")
    parser.add_argument("--network", choices=sorted(NETWORKS), help="Target network (default: $BKC_NETWORK)")
    parser.add_argument("--rpc-url", help="RPC endpoint override")
    parser.add_argument("--timeout", type=int, help="Confirmation timeout in seconds")
    parser.add_argument("--delay-ms", type=int, help="Delay before every transaction after the first")
    parser.add_argument("--tier-id-base", type=int, choices=(0, 1), help="First PublicSale tier id")
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("steps", help="List pipeline steps in order")
    sub.add_parser("ledger", help="Print the address ledger")

    run = sub.add_parser("run", help="Run individual steps")
    run.add_argument("step_names", nargs="+", metavar="STEP", help="Step name(s), see 'steps'")
    run.add_argument("--force", action="store_true", help="Allow replacing existing deployments")

    pipeline = sub.add_parser("pipeline", help="Run the full deployment pipeline")
    pipeline.add_argument("--start-at", metavar="STEP", help="Resume from this step")
    pipeline.add_argument("--force", action="store_true", help="Allow replacing existing deployments")

    prices = sub.add_parser("update-prices", help="Reprice every configured sale tier")
    prices.add_argument("--multiplier", help="N/D multiplier (default: $BKC_PRICE_MULTIPLIER)")
    prices.add_argument("--dry-run", action="store_true", help="Compute new prices without submitting")

    sales = sub.add_parser("sales-report", help="Minted count per sale tier")
    sales.add_argument("--csv", metavar="PATH", help="Also write the report as CSV")
    sales.add_argument("--every", type=int, metavar="MIN", help="Repeat every MIN minutes until interrupted")

    liquidity = sub.add_parser("add-liquidity", help="Seed the NFT AMM pools with unsold boosters after the sale")
    liquidity.add_argument("--renounce-ownership", action="store_true",
                           help="Renounce RewardBoosterNFT ownership afterwards (irreversible)")

    rules = sub.add_parser("manage-rules", help="Apply hub rules from the rules file")
    rules.add_argument("--rules", metavar="PATH", help="Rules file (default: $BKC_RULES_PATH)")

    return parser


def build_context(settings: Settings, client: ChainClient, force: bool = False) -> StepContext:
    return StepContext(
        client=client,
        settings=settings,
        limiter=build_limiter(settings.tx_delay_ms),
        registry=TierRegistry(id_base=settings.tier_id_base),
        force=force,
    )


def _cmd_steps() -> int:
    for position, step in enumerate(PIPELINE.steps, 1):
        flags = " [test networks only]" if step.testnet_only else ""
        print(f"{position}. {step.name:<18} {step.description}{flags}")
    print("\nMaintenance: update-prices, sales-report, add-liquidity, manage-rules")
    return 0


def _cmd_ledger(settings: Settings) -> int:
    ledger = AddressLedger.load(settings.ledger_path)
    print(ledger.dumps(), end="")
    return 0


def _sales_once(ctx: StepContext, csv_path: Optional[str]) -> None:
    result = run_step(SalesReportStep(), ctx)
    report = result.outputs["sales"]
    print(report.format())
    if csv_path:
        report.to_frame().to_csv(csv_path, index=False)
        logger.info(f"Sales report written to {csv_path}")


def _cmd_sales_report(args, ctx: StepContext, notifier: Notifier) -> int:
    _sales_once(ctx, args.csv)
    if not args.every:
        return 0

    def job():
        try:
            _sales_once(ctx, args.csv)
        except DeploymentError as e:
            logger.error(f"Scheduled sales report failed: {e}")
            if notifier.enabled:
                notifier.send_alert(f"Scheduled sales report failed: {e}")

    schedule.every(args.every).minutes.do(job)
    logger.info(f"Starting scheduled sales report (every {args.every} min)...")
    try:
        while True:
            schedule.run_pending()
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Sales report stopped by user")
    finally:
        schedule.clear()
    return 0


def _dispatch(args, settings: Settings, client: ChainClient, notifier: Notifier) -> int:
    ctx = build_context(settings, client, force=getattr(args, "force", False))

    if args.command == "run":
        steps = [PIPELINE.get(name) for name in args.step_names]
        for step in steps:
            run_step(step, ctx)
        return 0

    if args.command == "pipeline":
        results = PIPELINE.run(ctx, start_at=args.start_at)
        ran = [r.step for r in results if not r.skipped]
        logger.info(f"\n🎉🎉🎉 PIPELINE COMPLETE on {settings.network}: {', '.join(ran)} 🎉🎉🎉")
        return 0

    if args.command == "update-prices":
        run_step(UpdatePrices(args.multiplier, args.dry_run), ctx)
        return 0

    if args.command == "sales-report":
        return _cmd_sales_report(args, ctx, notifier)

    if args.command == "add-liquidity":
        run_step(AddLiquidity(args.renounce_ownership), ctx)
        return 0

    if args.command == "manage-rules":
        run_step(ManageRules(args.rules), ctx)
        return 0

    raise ValueError(f"Unhandled command {args.command}")


def main(argv: Optional[List[str]] = None, client_factory: ClientFactory = Web3ChainClient.from_settings) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    load_dotenv()
    settings = Settings.from_env().with_overrides(
        network=args.network,
        ledger_path=args.ledger,
        rpc_url=args.rpc_url,
        confirmation_timeout=args.timeout,
        tx_delay_ms=args.delay_ms,
        tier_id_base=args.tier_id_base,
        log_file=args.log_file,
    )
    setup_logging(settings.log_file, args.verbose)
    notifier = Notifier(settings)

    if args.command == "steps":
        return _cmd_steps()

    if args.command == "run":
        unknown = [name for name in args.step_names if name not in PIPELINE.names()]
        if unknown:
            parser.error(f"unknown step(s): {', '.join(unknown)}. Known: {', '.join(PIPELINE.names())}")
    if args.command == "pipeline" and args.start_at and args.start_at not in PIPELINE.names():
        parser.error(f"unknown step '{args.start_at}'. Known: {', '.join(PIPELINE.names())}")

    try:
        if args.command == "ledger":
            return _cmd_ledger(settings)
        with client_factory(settings) as client:
            return _dispatch(args, settings, client, notifier)
    except DeploymentError as e:
        logger.error(f"❌ {type(e).__name__}: {e}")
        if notifier.enabled:
            notifier.send_alert(f"{args.command} failed: {e}", {"Error": type(e).__name__})
        return 1
    except Exception as e:
        logger.exception(f"❌ Unexpected failure during {args.command}: {e}")
        if notifier.enabled:
            notifier.send_alert(f"{args.command} failed unexpectedly: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
