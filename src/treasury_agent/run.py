"""
CLI runner for treasury-agent.

Usage:
    python -m treasury_agent.run [OPTIONS]

    # One agent tick (drain the queue or discover a coin)
    python -m treasury_agent.run --once

    # One executor tick (execute a passed proposal)
    python -m treasury_agent.run --execute

    # Re-submit a failed suggestion
    python -m treasury_agent.run --retry suggestion_abc123
"""

import argparse
import asyncio
import logging
import sys
from datetime import timedelta
from pathlib import Path

from .config import AgentConfig, ConfigurationError
from .executor import ProposalExecutor
from .markers import RunMarker
from .orchestrator import Orchestrator
from .services import AgentServices, open_store

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("treasury-agent")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2


async def run_agent(config: AgentConfig) -> int:
    orchestrator = Orchestrator.from_services(AgentServices.from_config(config))
    report = await orchestrator.run_once()
    logger.info(f"Agent run finished: {report.outcome.value} {report.message}")
    if report.receipt:
        logger.info(f"Transaction: {report.receipt.tx_hash}")
    return EXIT_OK


async def run_executor(config: AgentConfig) -> int:
    executor = ProposalExecutor.from_services(AgentServices.from_config(config))
    report = await executor.run_once()
    logger.info(f"Executor run finished: {report.outcome.value} {report.message}")
    return EXIT_OK


async def retry(config: AgentConfig, suggestion_id: str) -> int:
    orchestrator = Orchestrator.from_services(AgentServices.from_config(config))
    report = await orchestrator.retry_failed(suggestion_id)
    logger.info(f"Retry finished: {report.message}")
    return EXIT_OK


def dry_run(config: AgentConfig) -> int:
    """Report what the next tick would do without changing anything."""
    store = open_store(config)
    stats = store.stats()
    logger.info(
        f"Queue: {stats.pending} pending, {stats.processing} processing, "
        f"{stats.failed} failed ({stats.total} total)"
    )

    marker = RunMarker(config.agent_marker_path, timedelta(minutes=config.cooldown_minutes))
    remaining = marker.cooldown_remaining()
    if remaining is not None:
        logger.info(f"Dry run: would skip (cooldown, {remaining.total_seconds() / 60:.1f} min left)")
        return EXIT_OK

    pending = store.next_pending()
    if pending is not None:
        logger.info(
            f"Dry run: would process {pending.id}: "
            f"{pending.coin_symbol or pending.coin_name or pending.coin_address}"
        )
    else:
        logger.info("Dry run: queue empty, would run discovery")
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="treasury-agent: DAO treasury proposal agent",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # One agent tick
    python -m treasury_agent.run --once

    # One executor tick
    python -m treasury_agent.run --execute

    # Use a specific config file
    python -m treasury_agent.run --config datasette.yaml --once
        """,
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=Path("datasette.yaml"),
        help="Path to config file (default: datasette.yaml)",
    )
    parser.add_argument(
        "--queue",
        type=Path,
        help="Override queue file path from config",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run one agent tick and exit",
    )
    parser.add_argument(
        "--execute",
        action="store_true",
        help="Run one executor tick and exit",
    )
    parser.add_argument(
        "--retry",
        metavar="SUGGESTION_ID",
        help="Re-submit a failed suggestion",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what the next tick would do without making changes",
    )

    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    config = AgentConfig.from_yaml(args.config)
    if args.queue:
        config.queue_path = args.queue

    logger.info(f"Config loaded from {args.config}")
    logger.info(f"Queue: {config.suggestions_path}")

    if args.dry_run:
        return dry_run(config)

    if args.retry:
        job = retry(config, args.retry)
    elif args.execute:
        job = run_executor(config)
    elif args.once:
        job = run_agent(config)
    else:
        parser.print_help()
        return EXIT_OK

    try:
        return asyncio.run(job)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG
    except Exception:
        logger.exception("Run failed")
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
