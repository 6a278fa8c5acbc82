"""Orchestration, progress reporting and job bookkeeping."""
