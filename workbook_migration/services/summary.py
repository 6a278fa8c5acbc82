from __future__ import annotations

from ..models.results import DryRunResult, MigrationResult

"""Summary rendering for the CLI.

SUMMARY line format:
SUMMARY tables={n} failed_tables={f} inserted={i} updated={u} warnings={w} elapsed_sec={s}
"""

__all__ = [
    "format_elapsed",
    "render_summary_line",
    "render_dry_run_lines",
]


def format_elapsed(seconds: float) -> str:
    """Plain decimal rendering (never scientific notation)."""
    if seconds == 0:
        return "0"
    if seconds == int(seconds):
        return str(int(seconds))
    if seconds < 0.01:
        return f"{seconds:.6f}".rstrip("0").rstrip(".")
    return f"{seconds:.3f}".rstrip("0").rstrip(".")


def render_summary_line(result: MigrationResult, elapsed_seconds: float) -> str:
    """Render the SUMMARY line for a finished import.

    Examples:
        >>> from workbook_migration.models.results import TableImportResult
        >>> result = MigrationResult(
        ...     success=True,
        ...     tables=[TableImportResult("financial_weekly", 2, 0, [])],
        ... )
        >>> render_summary_line(result, 2.0)
        'SUMMARY tables=1 failed_tables=0 inserted=2 updated=0 warnings=0 elapsed_sec=2'
    """
    return (
        f"SUMMARY tables={len(result.tables)} "
        f"failed_tables={len(result.failed_tables)} "
        f"inserted={result.total_inserted} "
        f"updated={result.total_updated} "
        f"warnings={result.total_warnings} "
        f"elapsed_sec={format_elapsed(elapsed_seconds)}"
    )


def render_dry_run_lines(preview: DryRunResult, *, max_warnings: int = 20) -> list[str]:
    lines = [f"DRY RUN records={preview.total_records} warnings={preview.total_warnings}"]
    for table in preview.tables:
        lines.append(
            f"  {table.table_name:<30} records={table.record_count:<6} warnings={len(table.warnings)}"
        )
    if preview.skipped_sheets:
        lines.append(f"  skipped sheets: {', '.join(preview.skipped_sheets)}")
    warnings = preview.all_warnings
    for warning in warnings[:max_warnings]:
        lines.append(f"  ! {warning}")
    if len(warnings) > max_warnings:
        lines.append(f"  ... {len(warnings) - max_warnings} more warnings")
    return lines
