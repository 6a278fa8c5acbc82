"""Persistence layer for the weekly tables."""
