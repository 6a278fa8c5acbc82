"""Command line interface (``python -m workbook_migration.cli``)."""
