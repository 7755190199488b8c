"""Logging, metrics and clock helpers."""
