import argparse
import logging
import os
import signal
import sys
from datetime import datetime
from pathlib import Path
from typing import List

from spillover.config import AppConfig, load_config, validate_directories
from spillover.defaults import DEFAULT_CONFIG_NAME, HISTORY_FILE
from spillover.errors import ConfigError, SpilloverError
from spillover.lock import STALE_POLICY_CLASSES, LockGuard
from spillover.logger import MoveHistory, setup_logging, tail_log
from spillover.loop import SUFFICIENT_SPACE, MigrationLoop
from spillover.models import ErrorReport, MoveResult
from spillover.monitor import TmuxMonitor
from spillover.mover import TransferEngine
from spillover.notify import Notifier
from spillover.scanner import LeafScanner
from spillover.selector import Selector
from spillover.space import SpaceMonitor
from spillover.verify import VERIFIERS

log = logging.getLogger("spillover")

SCRIPT_DIR = Path(__file__).resolve().parent

EPILOG = """\
examples:
  spillover                     Run with default config
  spillover -d                  Run with debug logging
  spillover -c custom.json      Run with custom config
  spillover -t                  Test configuration
  spillover --dry-run           Simulate operations safely
"""


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="spillover",
        description=(
            "Monitor free space on a fast storage root and move its oldest leaf "
            "directories to slower destinations when space runs low."
        ),
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("-c", "--config", type=Path, default=SCRIPT_DIR / DEFAULT_CONFIG_NAME,
                   help="config file (default: %(default)s)")
    p.add_argument("-d", "--debug", action="store_true", help="enable debug logging")
    p.add_argument("-t", "--test", action="store_true", help="validate config and exit")
    p.add_argument("--dry-run", action="store_true", help="simulate moves without touching files")
    return p


def _raise_interrupt(signum, frame):
    raise KeyboardInterrupt(signal.Signals(signum).name)


def install_signal_handlers() -> None:
    for name in ("SIGTERM", "SIGHUP"):
        sig = getattr(signal, name, None)
        if sig is not None:
            signal.signal(sig, _raise_interrupt)


def build_loop(cfg: AppConfig) -> MigrationLoop:
    m = cfg.migration
    scanner = LeafScanner(min_age_days=m.min_age_days, max_depth=m.max_search_depth)
    engine = TransferEngine(cfg.mappings, dry_run=m.dry_run, verifier=VERIFIERS[cfg.verifier]())
    monitor = TmuxMonitor(cfg.monitor_session) if cfg.monitor_session else None
    return MigrationLoop(
        cfg.mappings,
        m,
        SpaceMonitor(cfg.first_source),
        Selector(scanner),
        engine,
        monitor=monitor,
        log_target=cfg.log_file,
    )


def record_history(cfg: AppConfig, run_id: str, results: List[MoveResult]) -> None:
    path = cfg.history_dir / HISTORY_FILE
    try:
        count = MoveHistory(path).record(run_id, results)
    except (OSError, ValueError) as e:
        log.warning("Could not write move history to %s: %s", path, e)
        return
    if count:
        log.debug("Recorded %d moves in %s", count, path)


def fail(message: str, notifier: Notifier | None, log_file: Path | None, exc_info: bool = False) -> int:
    log.error(message, exc_info=exc_info)
    if notifier is not None:
        notifier.notify_error(ErrorReport(message, tail_log(log_file)))
    return 1


def run(args: argparse.Namespace) -> int:
    setup_logging(args.debug)
    try:
        cfg = load_config(args.config, dry_run=args.dry_run)
    except ConfigError as e:
        return fail(str(e), None, None)

    setup_logging(args.debug, cfg.log_file)
    log.info("Starting spillover (PID: %d)", os.getpid())
    if cfg.migration.dry_run:
        log.info("DRY RUN mode: no files will be moved or deleted")

    notifier = Notifier(cfg.email_enabled, cfg.email_recipient)
    lock = LockGuard(
        cfg.lock_file,
        stale_seconds=cfg.stale_lock_seconds,
        policy=STALE_POLICY_CLASSES[cfg.stale_policy](),
    )
    run_id = datetime.now().strftime("%Y%m%d-%H%M%S")
    loop = None
    try:
        with lock:
            validate_directories(cfg.mappings)
            if args.test:
                log.info("Configuration test passed successfully")
                return 0

            loop = build_loop(cfg)
            log.info("Initialization complete")
            summary = loop.run()
    except SpilloverError as e:
        return fail(str(e), notifier, cfg.log_file)
    except KeyboardInterrupt as e:
        return fail(f"Run interrupted ({str(e) or 'SIGINT'})", notifier, cfg.log_file)
    except Exception as e:
        return fail(f"Unexpected error: {e!r}", notifier, cfg.log_file, exc_info=True)
    finally:
        if loop is not None:
            record_history(cfg, run_id, loop.results)
        log.info("Cleaning up...")

    if summary.stop_reason == SUFFICIENT_SPACE:
        return 0
    if summary.moved_count > 0:
        log.info(
            "Cleanup completed: moved %d directories, freed ~%d KB, free space now %d%%",
            summary.moved_count, summary.total_freed_kb, summary.final_free_pct,
        )
    else:
        log.info("No directories were moved")
    notifier.notify_summary(summary)
    return 0


def main(argv: List[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    install_signal_handlers()
    return run(args)


if __name__ == "__main__":
    sys.exit(main())
