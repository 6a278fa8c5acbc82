from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path

from ..db.weekly_store import WeeklyStore
from ..excel.reader import SheetMissingError, Workbook, WorkbookLoadError, load_workbook
from ..excel.sheets import SHEET_PARSERS, ParseContext, ParsedGroups, SheetParser
from ..logging.error_log import ErrorLogBuffer
from ..models.error_record import WORKBOOK_SCOPE, ErrorRecord
from ..models.progress_event import ProgressEvent
from ..models.records import RecordGroup, WeeklyRecord
from ..models.results import DryRunResult, MigrationResult, TableImportResult, TableSummary
from .progress import ProgressHub

"""Migration orchestration: parse, preview (dry run) and import.

Import flow for one job:
1. parsing event (0/0), then a fresh parse of the workbook bytes
2. parsing event carrying the total record count
3. one importing event per table in TABLE_IMPORTERS order, then that
   table's upserts inside its own transaction
4. complete event carrying the MigrationResult

Failure isolation:
- parser failure   -> empty groups for that parser + workbook-level warning
- missing sheet    -> parser skipped (listed in skipped_sheets, not a warning)
- table failure    -> rollback of that table, zero counts, one warning
- fatal (load etc) -> single error event, success=False
``import_data`` never raises.
"""

__all__ = [
    "ParserOutcome",
    "ParsedWorkbook",
    "TableImporter",
    "TABLE_IMPORTERS",
    "TABLE_IMPORT_ORDER",
    "MigrationOrchestrator",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParserOutcome:
    """Result of one parser run: its groups, or the error that replaced them."""
    parser: str
    groups: ParsedGroups = field(default_factory=dict)
    error: str | None = None
    skipped_sheets: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ParsedWorkbook:
    groups: dict[RecordGroup, list[WeeklyRecord]]
    outcomes: list[ParserOutcome]

    @property
    def workbook_warnings(self) -> list[str]:
        return [f"{o.parser} parser failed: {o.error}" for o in self.outcomes if not o.ok]

    @property
    def skipped_sheets(self) -> list[str]:
        return [name for o in self.outcomes for name in o.skipped_sheets]

    @property
    def total_records(self) -> int:
        return sum(len(records) for records in self.groups.values())


def latest_week(records: Sequence[WeeklyRecord]) -> date | None:
    return max((r.week_date for r in records), default=None)


@dataclass(frozen=True)
class TableImporter:
    """Upserts one record group into its table by natural key."""
    group: RecordGroup

    @property
    def table_name(self) -> str:
        return self.group.table_name

    def import_records(
        self, store: WeeklyStore, records: Sequence[WeeklyRecord], data_source: str
    ) -> TableImportResult:
        inserted = 0
        updated = 0
        warnings: list[str] = []
        for record in records:
            key = record.key_row()
            existing = store.find_by_natural_key(self.table_name, key)
            values = record.value_row()
            values["data_source"] = data_source
            store.upsert(self.table_name, key, values)
            if existing is None:
                inserted += 1
            else:
                updated += 1
            warnings.extend(record.warnings)
        return TableImportResult(
            table_name=self.table_name, inserted=inserted, updated=updated, warnings=warnings
        )


# 固定順序: テストで直接検証する
TABLE_IMPORTERS: tuple[TableImporter, ...] = (
    TableImporter(RecordGroup.FINANCIAL),
    TableImporter(RecordGroup.PROJECTS),
    TableImporter(RecordGroup.SALES),
    TableImporter(RecordGroup.LEADS),
    TableImporter(RecordGroup.GOOGLE_REVIEWS),
    TableImporter(RecordGroup.TEAM_PERFORMANCE),
    TableImporter(RecordGroup.REVENUE),
    TableImporter(RecordGroup.CASH_POSITION),
    TableImporter(RecordGroup.STAFF_PRODUCTIVITY),
    TableImporter(RecordGroup.PHONE),
    TableImporter(RecordGroup.MARKETING),
)

TABLE_IMPORT_ORDER: tuple[str, ...] = tuple(i.table_name for i in TABLE_IMPORTERS)


class MigrationOrchestrator:
    def __init__(
        self,
        store: WeeklyStore | None = None,
        progress: ProgressHub | None = None,
        *,
        parsers: Sequence[SheetParser] = SHEET_PARSERS,
        importers: Sequence[TableImporter] = TABLE_IMPORTERS,
        data_source: str = "backfilled",
        sample_size: int = 3,
        error_log: ErrorLogBuffer | None = None,
    ) -> None:
        self.store = store
        self.progress = progress
        self.parsers = tuple(parsers)
        self.importers = tuple(importers)
        self.data_source = data_source
        self.sample_size = sample_size
        self.error_log = error_log

    # ------------------------------------------------------------------ parse
    def run_parsers(self, workbook: Workbook, job_id: str = "") -> ParsedWorkbook:
        """Run every parser in order, isolating each one's failure."""
        groups: dict[RecordGroup, list[WeeklyRecord]] = {g: [] for g in RecordGroup}
        outcomes: list[ParserOutcome] = []
        for parser in self.parsers:
            context = ParseContext(reference_week=latest_week(groups[RecordGroup.FINANCIAL]))
            if job_id:
                self._publish(job_id, ProgressEvent.parsing(f"Parsing {parser.label}...", sheet=parser.label))
            try:
                parsed = parser.parse(workbook, context)
            except SheetMissingError as e:
                logger.info(f"{parser.name}: sheet not found, skipped ({e.sheet_name})")
                outcomes.append(ParserOutcome(parser=parser.name, skipped_sheets=(e.sheet_name,)))
                continue
            except Exception as e:
                logger.error(f"{parser.name} parser failed: {e}")
                self._record_error(job_id, parser.name, "PARSER_ERROR", str(e))
                outcomes.append(ParserOutcome(parser=parser.name, error=str(e)))
                continue
            counts = {g.table_name: len(r) for g, r in parsed.items()}
            logger.debug(f"{parser.name}: parsed {counts}")
            for group, records in parsed.items():
                groups[group].extend(records)
            outcomes.append(ParserOutcome(parser=parser.name, groups=parsed))
        return ParsedWorkbook(groups=groups, outcomes=outcomes)

    def parse_workbook(self, source: bytes | str | Path) -> DryRunResult:
        """Dry run: parse and summarise without touching the store.

        Raises:
            WorkbookLoadError: the workbook cannot be read
        """
        workbook = load_workbook(source)
        parsed = self.run_parsers(workbook)
        self._flush_errors()
        tables = [self._summarize(importer, parsed.groups[importer.group]) for importer in self.importers]
        result = DryRunResult(
            tables=tables,
            workbook_warnings=parsed.workbook_warnings,
            skipped_sheets=parsed.skipped_sheets,
        )
        logger.info(f"dry run: records={result.total_records} warnings={result.total_warnings}")
        return result

    def _summarize(self, importer: TableImporter, records: list[WeeklyRecord]) -> TableSummary:
        return TableSummary(
            table_name=importer.table_name,
            record_count=len(records),
            sample_records=[r.sample_row() for r in records[: self.sample_size]],
            warnings=[w for r in records for w in r.warnings],
        )

    # ----------------------------------------------------------------- import
    def import_data(self, source: bytes | str | Path, job_id: str) -> MigrationResult:
        """Parse and upsert every table, publishing progress on ``job_id``."""
        try:
            return self._run_import(source, job_id)
        except Exception as e:
            message = f"Import failed: {e}"
            logger.error(message)
            error_type = "WORKBOOK_LOAD_ERROR" if isinstance(e, WorkbookLoadError) else "UNEXPECTED_ERROR"
            self._record_error(job_id, WORKBOOK_SCOPE, error_type, str(e))
            self._publish(job_id, ProgressEvent.error(message))
            return MigrationResult.fatal(message)
        finally:
            self._flush_errors()

    def _run_import(self, source: bytes | str | Path, job_id: str) -> MigrationResult:
        self._publish(job_id, ProgressEvent.parsing("Loading workbook..."))
        store = self.store
        if store is None:
            raise RuntimeError("no store configured")
        workbook = load_workbook(source)
        parsed = self.run_parsers(workbook, job_id)
        total = parsed.total_records
        self._publish(job_id, ProgressEvent.parsing(f"Parsed {total} records from workbook", total=total))

        results: list[TableImportResult] = []
        written = 0
        warnings = len(parsed.workbook_warnings)
        for importer in self.importers:
            records = parsed.groups[importer.group]
            self._publish(
                job_id,
                ProgressEvent.importing(importer.table_name, current=written, total=total, warnings=warnings),
            )
            result = self._import_table(store, importer, records, job_id)
            results.append(result)
            written += len(records)
            warnings += len(result.warnings)

        migration = MigrationResult(
            success=not any(r.failed for r in results),
            tables=results,
            workbook_warnings=parsed.workbook_warnings,
        )
        logger.info(
            f"import finished job_id={job_id} inserted={migration.total_inserted} "
            f"updated={migration.total_updated} failed_tables={len(migration.failed_tables)}"
        )
        self._publish(job_id, ProgressEvent.complete(migration, total=total))
        return migration

    def _import_table(
        self, store: WeeklyStore, importer: TableImporter, records: list[WeeklyRecord], job_id: str
    ) -> TableImportResult:
        try:
            with store.transaction():
                result = importer.import_records(store, records, self.data_source)
        except Exception as e:
            message = f"Error importing {importer.table_name}: {e}"
            logger.error(message)
            self._record_error(job_id, importer.table_name, "TABLE_IMPORT_ERROR", str(e))
            return TableImportResult(
                table_name=importer.table_name, inserted=0, updated=0, warnings=[message], failed=True
            )
        logger.info(
            f"{importer.table_name}: inserted={result.inserted} updated={result.updated} "
            f"warnings={len(result.warnings)}"
        )
        return result

    # ---------------------------------------------------------------- helpers
    def _publish(self, job_id: str, event: ProgressEvent) -> None:
        if self.progress is not None:
            self.progress.publish(job_id, event)

    def _record_error(self, job_id: str, scope: str, error_type: str, message: str) -> None:
        if self.error_log is not None:
            self.error_log.append(ErrorRecord.create(job_id, scope, error_type, message))

    def _flush_errors(self) -> None:
        if self.error_log is None:
            return
        try:
            path = self.error_log.flush()
        except OSError as e:
            logger.warning(f"failed to write error log: {e}")
            return
        if path is not None:
            logger.info(f"error log written: {path}")

