"""Shared utilities: logging, time helpers, timezone math and validators."""
