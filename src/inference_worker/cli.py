"""
Command-line entry point: run a worker session over stdio.

Reads one JSON request per line from stdin and writes one JSON response per
line to stdout. Logs go to stderr.

Usage:
    inference-worker --engine simulated --latency-scale 0.1
    echo '{"kind": "loadModel", "correlationId": "1", "modelPath": "m1"}' | inference-worker
"""

import argparse
import asyncio
import sys
from typing import List, Optional, TextIO

from .config import ENGINES, LIFECYCLE_POLICIES, WorkerConfig
from .engines.factory import EngineFactory
from .transport.transports import JsonLinesTransport
from .utils.logging_config import get_logger, setup_logging
from .worker.session import WorkerSession

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="inference-worker",
        description="Run the inference worker protocol over stdin/stdout (JSON lines).",
    )
    parser.add_argument("--engine", choices=ENGINES, help="compute engine (default: from env or 'simulated')")
    parser.add_argument("--policy", choices=LIFECYCLE_POLICIES, help="overlapping load/unload handling")
    parser.add_argument("--latency-scale", type=float, help="multiplier for simulated engine delays")
    parser.add_argument("--log-level", help="log level (DEBUG, INFO, WARNING, ...)")
    return parser


async def run_worker(
    config: WorkerConfig,
    reader: Optional[TextIO] = None,
    writer: Optional[TextIO] = None,
) -> dict:
    """
    Serve requests until the input stream closes.

    Returns:
        The session status taken just before shutdown.
    """
    engine = EngineFactory(config).create_from_config()
    transport = JsonLinesTransport(reader, writer)
    async with WorkerSession(engine, transport, config) as session:
        await session.serve()
        status = session.get_status()
    return status


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = WorkerConfig.from_env(
            engine=args.engine,
            lifecycle_policy=args.policy,
            latency_scale=args.latency_scale,
            log_level=args.log_level,
        )
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    setup_logging(config.log_level)
    try:
        status = asyncio.run(run_worker(config))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
    logger.info("Worker exited (last status: %s)", status)
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
