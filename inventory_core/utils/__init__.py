"""Shared async and logging helpers."""
