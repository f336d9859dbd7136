"""Logging and metrics for fabtrail."""
