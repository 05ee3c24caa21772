"""Shared utilities: logging and monitoring."""
