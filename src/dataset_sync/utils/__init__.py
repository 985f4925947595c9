"""Utility helpers for dataset-sync."""
