"""Command line entry point: ``failover-monitor init`` and ``failover-monitor monitor``."""

from __future__ import annotations

import argparse
import asyncio
import os
import signal
from pathlib import Path
from typing import Optional, Sequence

import structlog

from failover_monitor import __version__
from failover_monitor.config import DEFAULT_CONFIG_PATH, MonitorConfig, load_config, write_default_config
from failover_monitor.engine import MonitorEngine
from failover_monitor.log import LogBuffer, configure_logging
from failover_monitor.storage.sqlite_store import SQLiteStore, SQLiteTaskStore


logger = structlog.get_logger(__name__)


def _default_config_path() -> str:
    return os.getenv("FAILOVER_MONITOR_CONFIG", DEFAULT_CONFIG_PATH)


def cmd_init(args: argparse.Namespace) -> int:
    path = Path(args.config)
    if path.exists() and not args.force:
        print(f"Config already exists: {path} (use --force to overwrite)")
        return 1
    write_default_config(path)
    print(f"Wrote default config to {path}")
    print("Edit the targets, webhook URL and DNS token, then run: failover-monitor monitor")
    return 0


def build_engine(config: MonitorConfig, config_path: str) -> MonitorEngine:
    """Build an engine for ``config``, backed by SQLite when ``db_path`` is set.

    A config saved in the database is used only when the YAML file is missing.
    """
    if not config.db_path:
        return MonitorEngine(config)

    store = SQLiteStore(config.db_path)
    if not os.path.exists(config_path):
        stored = store.load()
        if stored is not None:
            logger.info("Using config stored in database", db_path=config.db_path)
            config = stored
    store.save(config)
    return MonitorEngine(config, config_store=store, task_store=SQLiteTaskStore(store))


async def run_monitor(config: MonitorConfig, config_path: str, once: bool) -> int:
    engine = build_engine(config, config_path)

    if once:
        await engine.run_once()
        for target, state in sorted(engine.state.snapshot_all().items()):
            logger.info("Target state", target=target, failure_count=state.failure_count, is_down=state.is_down)
        return 0

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass

    await engine.start()
    try:
        await stop.wait()
    finally:
        logger.info("Shutting down")
        await engine.stop()
    return 0


def cmd_monitor(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    level = args.log_level or config.log.level
    configure_logging(level, json_output=config.log.json_output, buffer=LogBuffer(config.log.buffer_size))

    logger.info("Failover monitor starting", version=__version__, config=args.config, mode=config.mode)
    return asyncio.run(run_monitor(config, args.config, once=bool(args.once)))


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="failover-monitor", description="Health monitoring and DNS failover")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    p_init = sub.add_parser("init", help="Write a default YAML config")
    p_init.add_argument("--config", default=_default_config_path(), help="Path to YAML config")
    p_init.add_argument("--force", action="store_true", help="Overwrite an existing file")
    p_init.set_defaults(func=cmd_init)

    p_mon = sub.add_parser("monitor", help="Probe targets until interrupted")
    p_mon.add_argument("--config", default=_default_config_path(), help="Path to YAML config")
    p_mon.add_argument("--once", action="store_true", help="Run one probe cycle and exit")
    p_mon.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL"),
        help="Logging level (INFO, WARNING, ...)",
    )
    p_mon.set_defaults(func=cmd_monitor)

    args = parser.parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
