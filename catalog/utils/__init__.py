"""Shared utilities: logging, metrics and slug generation."""
