from __future__ import annotations

import argparse
import os
import signal
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import psycopg2
from dotenv import load_dotenv

from registry_import.assistant.openai_mapper import OpenAIMappingAssistant
from registry_import.config.loader import DEFAULT_CONFIG_PATH, ConfigError, ImportConfig, load_config
from registry_import.db.registry import InMemoryRegistry, PostgresRegistry, RegistryError, RegistryStore
from registry_import.excel.template import write_template
from registry_import.geo.nominatim import NominatimGeocoder
from registry_import.logging.init import log_summary, set_debug, setup_logging
from registry_import.models.field_mapping import IGNORED
from registry_import.models.target_fields import FIELD_NAMES
from registry_import.services.column_mapper import ASSISTANT, HEURISTIC
from registry_import.services.enrichment import Enricher
from registry_import.services.importer import BatchImporter
from registry_import.services.orchestrator import ProcessingError, preview_mapping, run_import
from registry_import.services.summary import render_summary_line

"""CLI entrypoint.

Subcommands:
- import FILE    run the pipeline and print the SUMMARY line
- inspect FILE   show columns, the proposed mapping and the first rows
- template OUT   write the empty import template
- rollback ID    delete one batch
- rollback-all   delete every imported record (requires --yes)

Exit codes: 0 every row committed, 2 some rows not committed, 1 fatal.
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1


def _resolve_dsn(cfg: ImportConfig) -> str:
    """DSN from DATABASE_URL / PGDSN / PG* env vars, falling back to the config file."""
    db_cfg = cfg.database
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def _db_connection(cfg: ImportConfig) -> Iterator[Any]:  # pragma: no cover (thin wrapper)
    """psycopg2 connection; every registry statement commits on its own."""
    conn = psycopg2.connect(_resolve_dsn(cfg))
    try:
        conn.autocommit = False
        yield conn
    finally:
        conn.close()


def _db_disabled() -> bool:
    # tests and offline runs: DISABLE_DB_CONNECT=1 -> in-memory registry
    return os.getenv("DISABLE_DB_CONNECT") == "1"


@contextmanager
def _registry(cfg: ImportConfig, logger: Any) -> Iterator[RegistryStore]:
    if _db_disabled():
        logger.debug("DB connect disabled via DISABLE_DB_CONNECT=1 -> in-memory registry")
        yield InMemoryRegistry()
        return
    with _db_connection(cfg) as conn:
        registry = PostgresRegistry(conn)
        registry.ensure_schema()
        yield registry


def _dry_run_registry(cfg: ImportConfig, logger: Any) -> InMemoryRegistry:
    """In-memory registry seeded with the live identity snapshot when reachable."""
    if _db_disabled():
        return InMemoryRegistry()
    try:
        with _db_connection(cfg) as conn:
            existing = PostgresRegistry(conn).query_identity()
    except (psycopg2.Error, RegistryError) as e:
        logger.info(f"dry-run: registry not reachable, duplicate check uses an empty snapshot: {e}")
        return InMemoryRegistry()
    return InMemoryRegistry(existing=existing)


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env using python-dotenv; its values win over the process environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_overrides(pairs: list[str]) -> dict[str, str]:
    """``COL=FIELD`` strings -> {column: field}. FIELD may be "skip"."""
    override: dict[str, str] = {}
    for item in pairs:
        column, sep, target = item.rpartition("=")
        if not sep or not column.strip() or not target.strip():
            raise ValueError(f"invalid --map value (expected COLUMN=FIELD): {item!r}")
        target = target.strip()
        if target != IGNORED and target not in FIELD_NAMES:
            raise ValueError(f"unknown field in --map: {target!r}")
        override[column.strip()] = target
    return override


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="registry-import", description="Spreadsheet -> company registry bulk importer")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="YAML config path")
    sub = p.add_subparsers(dest="command", required=True)

    imp = sub.add_parser("import", help="Import a spreadsheet")
    imp.add_argument("file", type=Path)
    imp.add_argument("--strategy", choices=[HEURISTIC, ASSISTANT], default=None, help="Column mapping strategy")
    imp.add_argument("--map", dest="overrides", action="append", default=[], metavar="COL=FIELD",
                     help="Correct one column mapping (FIELD may be 'skip'); repeatable")
    imp.add_argument("--no-geocode", action="store_true", help="Disable address geocoding")
    imp.add_argument("--dry-run", action="store_true", help="Run against an in-memory registry")

    ins = sub.add_parser("inspect", help="Show columns, proposed mapping and first rows")
    ins.add_argument("file", type=Path)
    ins.add_argument("--strategy", choices=[HEURISTIC, ASSISTANT], default=None)
    ins.add_argument("--rows", type=int, default=3, help="Number of rows to print")

    tpl = sub.add_parser("template", help="Write the empty import template")
    tpl.add_argument("out", type=Path)

    rb = sub.add_parser("rollback", help="Delete every record of one import batch")
    rb.add_argument("batch_id")

    rba = sub.add_parser("rollback-all", help="Delete every record in the registry")
    rba.add_argument("--yes", action="store_true", help="Confirm deleting everything")
    return p.parse_args(argv)


def _make_enricher(cfg: ImportConfig) -> Enricher:
    g = cfg.geocoding
    geocoder = NominatimGeocoder(
        base_url=g.base_url,
        user_agent=g.user_agent,
        timeout_seconds=g.timeout_seconds,
        region_suffix=g.region_suffix,
    )
    return Enricher(geocoder, delay_seconds=g.delay_seconds, workers=g.workers)


@contextmanager
def _cancel_on_interrupt() -> Iterator[threading.Event]:
    """First Ctrl-C stops the run between rows; a second one aborts."""
    cancel = threading.Event()
    if threading.current_thread() is not threading.main_thread():
        yield cancel
        return

    def _handler(signum: int, frame: Any) -> None:
        if cancel.is_set():
            raise KeyboardInterrupt
        cancel.set()

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield cancel
    finally:
        signal.signal(signal.SIGINT, previous)


def _cmd_import(args: argparse.Namespace, cfg: ImportConfig, logger: Any) -> int:
    try:
        override = _parse_overrides(args.overrides)
    except ValueError as e:
        logger.error(f"args: {e}")
        return EXIT_FATAL

    strategy = args.strategy or cfg.mapping.strategy
    assistant = OpenAIMappingAssistant(model=cfg.mapping.model) if strategy == ASSISTANT else None
    enricher = _make_enricher(cfg) if cfg.geocoding.enabled and not args.no_geocode else None

    try:
        with _cancel_on_interrupt() as cancel:
            if args.dry_run:
                result = run_import(
                    args.file, cfg, _dry_run_registry(cfg, logger),
                    enricher=enricher, assistant=assistant, strategy=strategy,
                    override=override, dry_run=True, cancel=cancel,
                )
            else:
                with _registry(cfg, logger) as registry:
                    result = run_import(
                        args.file, cfg, registry,
                        enricher=enricher, assistant=assistant, strategy=strategy,
                        override=override, cancel=cancel,
                    )
    except ProcessingError as e:
        logger.error(f"processing: {e}")
        return EXIT_FATAL
    except (psycopg2.Error, RegistryError) as e:
        logger.error(f"database: {e}")
        return EXIT_FATAL

    if result.mapping_fallback:
        logger.warning("assistant mapping was unavailable; keyword mapping used")
    mode = "dry-run" if result.dry_run else ("mock" if _db_disabled() else "live")
    logger.info(f"mode={mode} file={result.filename} rows={result.total_rows}")

    # log_summary adds the "SUMMARY " prefix itself
    log_summary(render_summary_line(result)[len("SUMMARY "):])

    if result.summary.success == result.total_rows:
        return EXIT_SUCCESS_ALL
    return EXIT_PARTIAL_FAILURE


def _cmd_inspect(args: argparse.Namespace, cfg: ImportConfig) -> int:
    strategy = args.strategy or cfg.mapping.strategy
    assistant = OpenAIMappingAssistant(model=cfg.mapping.model) if strategy == ASSISTANT else None
    try:
        preview = preview_mapping(args.file, cfg, strategy=strategy, assistant=assistant)
    except ProcessingError as e:
        print(f"inspect: {e}")
        return EXIT_FATAL

    sheet, resolution = preview.sheet, preview.resolution
    print(f"FILE: {args.file.name} SHEET: {sheet.sheet_name} rows={len(sheet.rows)}")
    print(f"  columns={sheet.columns}")
    print(f"  strategy={resolution.strategy}" + (f" (fallback: {resolution.fallback_reason})" if resolution.fell_back else ""))
    mapped = resolution.mapping.as_dict()
    for column in sheet.columns:
        print(f"    {column!r} -> {mapped.get(column, IGNORED)}")
    missing = resolution.mapping.missing_required_fields()
    if missing:
        print(f"  missing_required={missing}")
    for row in sheet.sample(max(args.rows, 0)):
        safe = {k: (v.isoformat() if hasattr(v, "isoformat") else v) for k, v in row.values.items()}
        print(f"  row {row.row_index}: {safe}")
    return EXIT_SUCCESS_ALL


def _cmd_rollback(args: argparse.Namespace, cfg: ImportConfig, logger: Any) -> int:
    if args.command == "rollback-all" and not args.yes:
        logger.error("rollback-all deletes every registry record; pass --yes to confirm")
        return EXIT_FATAL
    try:
        with _registry(cfg, logger) as registry:
            importer = BatchImporter(registry)
            if args.command == "rollback":
                deleted = importer.rollback(args.batch_id)
                logger.info(f"rollback batch={args.batch_id} deleted_rows={deleted}")
            else:
                deleted = importer.rollback_all()
                logger.info(f"rollback-all deleted_rows={deleted}")
    except (psycopg2.Error, RegistryError) as e:
        logger.error(f"database: {e}")
        return EXIT_FATAL
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # [] from tests must not fall through to sys.argv (pytest flags)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    if args.debug:
        set_debug(True)
        logger.debug("debug mode enabled")

    if args.command == "template":
        try:
            out = write_template(args.out)
        except (OSError, ValueError) as e:
            logger.error(f"template: {e}")
            return EXIT_FATAL
        logger.info(f"template written: {out}")
        return EXIT_SUCCESS_ALL

    try:
        cfg = load_config(args.config, missing_ok=args.config == DEFAULT_CONFIG_PATH)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.command == "import":
        return _cmd_import(args, cfg, logger)
    if args.command == "inspect":
        return _cmd_inspect(args, cfg)
    return _cmd_rollback(args, cfg, logger)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
