from __future__ import annotations

import argparse
import os
import sys
import time
from contextlib import closing
from pathlib import Path
from typing import Any

import psycopg2
from dotenv import load_dotenv

from workbook_migration.client.controller import MigrationController, MigrationPhase
from workbook_migration.config.loader import ConfigError, DatabaseConfig, MigrationConfig, load_config
from workbook_migration.db.weekly_store import InMemoryWeeklyStore, PostgresWeeklyStore, WeeklyStore
from workbook_migration.logging.error_log import ErrorLogBuffer
from workbook_migration.logging.init import log_summary, set_debug, setup_logging
from workbook_migration.services.migration_service import MigrationService
from workbook_migration.services.orchestrator import MigrationOrchestrator
from workbook_migration.services.progress import ProgressHub, ProgressTracker
from workbook_migration.services.summary import render_dry_run_lines, render_summary_line

"""CLI entrypoint.

    python -m workbook_migration.cli WORKBOOK [--dry-run] [--config PATH] [--debug]

Flow: load .env + config -> connect (or mock mode) -> dry run preview ->
import with progress bar -> SUMMARY line.

Exit codes:
    0  all tables imported (or dry run finished)
    2  partial failure (one or more tables failed)
    1  fatal (config, unreadable / rejected workbook, import aborted)
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

DEFAULT_CONFIG_PATH = Path("config/migration.yml")


def _resolve_dsn(db_cfg: DatabaseConfig) -> str:
    """Resolve connection settings.

    優先順位 (.env は main() 冒頭で上書き読み込み済み):
        1. DATABASE_URL / PGDSN (DSN 全体)
        2. 個別 PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
        3. config の database セクション (不足分のフォールバック)
    """
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


def _connect(db_cfg: DatabaseConfig) -> Any:  # pragma: no cover (thin wrapper; tested via integration)
    conn = psycopg2.connect(_resolve_dsn(db_cfg))
    # BEGIN / COMMIT はテーブル単位で store が明示発行
    conn.autocommit = True
    return conn


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env; override=True lets .env win over existing environment variables."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Weekly workbook -> PostgreSQL migration")
    p.add_argument("workbook", help="Path to the .xlsx workbook")
    p.add_argument("--dry-run", action="store_true", help="Preview only; nothing is written")
    p.add_argument("--config", default=str(DEFAULT_CONFIG_PATH), help="Config YAML path")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    return p.parse_args(argv)


def _run(args: argparse.Namespace, cfg: MigrationConfig, store: WeeklyStore, mode: str) -> int:
    logger = setup_logging()
    workbook_path = Path(args.workbook)
    data = workbook_path.read_bytes()

    orchestrator = MigrationOrchestrator(
        store,
        data_source=cfg.data_source,
        sample_size=cfg.sample_size,
        error_log=ErrorLogBuffer(),
    )
    service = MigrationService(
        orchestrator,
        progress=ProgressHub(),
        job_ttl=cfg.job_ttl,
        max_workbook_bytes=cfg.max_workbook_bytes,
    )
    controller = MigrationController(service)
    logger.info(f"mode={mode} workbook={workbook_path.name}")

    started = time.perf_counter()
    try:
        if not controller.upload(data, workbook_path.name):
            logger.error(f"dry run: {controller.error}")
            return EXIT_FATAL
        preview = controller.preview
        if preview is None:
            logger.error("dry run: no preview returned")
            return EXIT_FATAL
        for line in render_dry_run_lines(preview):
            print(line)
        if args.dry_run:
            log_summary(
                f"dry_run records={preview.total_records} warnings={preview.total_warnings}"
            )
            return EXIT_SUCCESS_ALL

        subscription = controller.start_import(timeout=cfg.progress_timeout_seconds)
        if subscription is None:
            logger.error(f"import: {controller.error}")
            return EXIT_FATAL
        with ProgressTracker(preview.total_records) as tracker:
            controller.follow(subscription, on_event=tracker.update_from_event)
    finally:
        service.shutdown(wait=True)

    result = controller.result
    if controller.phase is not MigrationPhase.COMPLETE or result is None:
        logger.error(f"import: {controller.error or 'no completion event received'}")
        return EXIT_FATAL

    for table in result.tables:
        if table.failed:
            logger.warning(table.warnings[0])
    summary_line = render_summary_line(result, time.perf_counter() - started)
    # log_summary が "SUMMARY " を付与する
    log_summary(summary_line[len("SUMMARY "):])
    return EXIT_PARTIAL_FAILURE if result.failed_tables else EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # 空リスト [] (テストからの呼び出し) で sys.argv が混入しないよう None のときのみ読む
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    try:
        cfg = load_config(Path(args.config))
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.debug:
        set_debug(True)
        logger.debug("debug mode enabled")

    workbook_path = Path(args.workbook)
    if not workbook_path.is_file():
        logger.error(f"workbook not found: {workbook_path}")
        return EXIT_FATAL

    # dry run は DB 不要。DISABLE_DB_CONNECT=1 でも mock mode
    if args.dry_run or os.getenv("DISABLE_DB_CONNECT") == "1":
        return _run(args, cfg, InMemoryWeeklyStore(), "mock")

    try:
        conn = _connect(cfg.database)
    except psycopg2.Error as db_e:
        logger.info(f"DB connection failed -> fallback to mock mode: {db_e}")
        return _run(args, cfg, InMemoryWeeklyStore(), "mock")

    with closing(conn), conn.cursor() as cur:
        return _run(args, cfg, PostgresWeeklyStore(cur), "live")


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
