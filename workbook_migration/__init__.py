"""Workbook migration engine: weekly business workbook -> PostgreSQL."""

__version__ = "0.1.0"
