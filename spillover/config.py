import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Tuple

from .defaults import (
    DEFAULT_HISTORY_DIR,
    DEFAULT_LOCK_FILE,
    DEFAULT_LOG_FILE,
    DEFAULT_LOW_SPACE_PCT,
    DEFAULT_MAX_MOVES_PER_RUN,
    DEFAULT_MIN_AGE_DAYS,
    DEFAULT_MONITOR_SESSION,
    DEFAULT_STALE_LOCK_SECONDS,
    DEFAULT_STALE_POLICY,
    DEFAULT_TARGET_SPACE_PCT,
    DEFAULT_VERIFIER,
)
from .errors import ConfigError
from .lock import STALE_POLICY_CLASSES
from .models import MigrationConfig, SourceMapping
from .utils import resolve_against, validate_source_dest
from .verify import VERIFIERS

log = logging.getLogger(__name__)

STALE_POLICIES = tuple(STALE_POLICY_CLASSES)


@dataclass(frozen=True)
class AppConfig:
    """Everything a run needs, loaded once from the JSON config file."""
    mappings: Tuple[SourceMapping, ...]
    migration: MigrationConfig
    lock_file: Path
    log_file: Path
    history_dir: Path
    stale_lock_seconds: int = DEFAULT_STALE_LOCK_SECONDS
    stale_policy: str = DEFAULT_STALE_POLICY
    verifier: str = DEFAULT_VERIFIER
    email_enabled: bool = False
    email_recipient: str = ""
    monitor_session: str = DEFAULT_MONITOR_SESSION
    source_file: Path | None = field(default=None, compare=False)

    @property
    def first_source(self) -> Path:
        return self.mappings[0].source_root


def load_config(path: Path, dry_run: bool = False) -> AppConfig:
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read configuration file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration in {path} must be a JSON object")

    log.info("Loading configuration from: %s", path)
    base = path.resolve().parent
    mappings = parse_pairs(data.get("pairs", []))

    low = _int(data, "low_space_threshold", DEFAULT_LOW_SPACE_PCT, 0, 100)
    target = _int(data, "target_space_threshold", DEFAULT_TARGET_SPACE_PCT, 0, 100)
    if target < low:
        raise ConfigError(
            f"target_space_threshold ({target}) must not be below low_space_threshold ({low})"
        )
    depth = data.get("max_search_depth")
    if depth is not None:
        depth = _int(data, "max_search_depth", 0, None, None)
        if depth <= 0:
            depth = None

    migration = MigrationConfig(
        low_space_pct=low,
        target_space_pct=target,
        max_moves_per_run=_int(data, "max_moves_per_run", DEFAULT_MAX_MOVES_PER_RUN, 1, None),
        min_age_days=_int(data, "min_age_days", DEFAULT_MIN_AGE_DAYS, 0, None),
        max_search_depth=depth,
        dry_run=dry_run or bool(data.get("dry_run", False)),
    )

    policy = str(data.get("stale_lock_policy", DEFAULT_STALE_POLICY)).lower()
    if policy not in STALE_POLICIES:
        raise ConfigError(f"Unknown stale_lock_policy '{policy}' (expected one of {STALE_POLICIES})")
    verifier = str(data.get("verify", DEFAULT_VERIFIER)).lower()
    if verifier not in VERIFIERS:
        raise ConfigError(f"Unknown verify strategy '{verifier}' (expected one of {tuple(VERIFIERS)})")

    email = data.get("email") or {}
    if not isinstance(email, dict):
        raise ConfigError("'email' must be an object with 'enabled' and 'recipient'")

    cfg = AppConfig(
        mappings=tuple(mappings),
        migration=migration,
        lock_file=resolve_against(str(data.get("lock_file", DEFAULT_LOCK_FILE)), base),
        log_file=resolve_against(str(data.get("log_file", DEFAULT_LOG_FILE)), base),
        history_dir=resolve_against(str(data.get("history_dir", DEFAULT_HISTORY_DIR)), base),
        stale_lock_seconds=_int(data, "stale_lock_seconds", DEFAULT_STALE_LOCK_SECONDS, 0, None),
        stale_policy=policy,
        verifier=verifier,
        email_enabled=bool(email.get("enabled", False)),
        email_recipient=str(email.get("recipient", "") or ""),
        monitor_session=str(data.get("monitor_session", DEFAULT_MONITOR_SESSION) or ""),
        source_file=path,
    )
    log.info("Configuration loaded successfully: %d source-destination pairs", len(mappings))
    return cfg


def parse_pairs(raw: Any) -> List[SourceMapping]:
    """Accepts ``{"source": ..., "destination": ...}`` objects or ``"source:destination"`` strings."""
    if not isinstance(raw, list) or not raw:
        raise ConfigError("No source-destination pairs configured")

    mappings: List[SourceMapping] = []
    seen: Dict[Path, str] = {}
    for i, item in enumerate(raw, 1):
        if isinstance(item, str):
            source, sep, destination = item.rpartition(":")
            if not sep:
                raise ConfigError(
                    f"Invalid source-destination pair format: '{item}' (expected 'source:destination')"
                )
        elif isinstance(item, dict):
            source = item.get("source", "")
            destination = item.get("destination", "")
        else:
            raise ConfigError(f"Invalid source-destination pair #{i}: {item!r}")

        source, destination = str(source or "").strip(), str(destination or "").strip()
        if not source or not destination:
            raise ConfigError(f"Empty source or destination in pair #{i}: {item!r}")

        src = Path(source).expanduser()
        if src in seen:
            raise ConfigError(f"Duplicate source directory: '{source}'")
        seen[src] = source
        mappings.append(SourceMapping(src, Path(destination).expanduser()))
        log.debug("Parsed pair %d: '%s' -> '%s'", i, source, destination)
    return mappings


def validate_directories(mappings) -> None:
    """
    Check every source is a readable directory and every destination exists
    (created if missing) and is writable. All problems are logged, then
    reported together in one ConfigError.
    """
    problems: List[str] = []
    for m in mappings:
        src, dest = m.source_root, m.dest_root
        if not src.is_dir():
            problems.append(f"Source directory does not exist: {src}")
        elif not os.access(src, os.R_OK | os.X_OK):
            problems.append(f"No read permission for source directory: {src}")

        if not dest.is_dir():
            log.warning("Destination directory does not exist, creating: %s", dest)
            try:
                dest.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                problems.append(f"Failed to create destination directory: {dest} ({e.strerror or e})")
        if dest.is_dir() and not os.access(dest, os.W_OK | os.X_OK):
            problems.append(f"No write permission for destination directory: {dest}")

        if src.is_dir() and dest.is_dir():
            try:
                validate_source_dest(src, dest)
            except ConfigError as e:
                problems.append(str(e))
        log.debug("Validated pair: %s -> %s", src, dest)

    for p in problems:
        log.error(p)
    if problems:
        raise ConfigError(
            f"Directory validation failed with {len(problems)} errors: " + "; ".join(problems)
        )
    log.info("Directory validation passed for %d pairs", len(mappings))


def _int(data: Dict[str, Any], key: str, default: int, lo: int | None, hi: int | None) -> int:
    value = data.get(key, default)
    if isinstance(value, bool):
        raise ConfigError(f"'{key}' must be an integer, got {value!r}")
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"'{key}' must be an integer, got {value!r}") from None
    if lo is not None and value < lo:
        raise ConfigError(f"'{key}' must be >= {lo}, got {value}")
    if hi is not None and value > hi:
        raise ConfigError(f"'{key}' must be <= {hi}, got {value}")
    return value
