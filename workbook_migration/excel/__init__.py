"""Workbook loading, cell extraction and sheet parsers."""
