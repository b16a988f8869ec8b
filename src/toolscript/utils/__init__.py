"""Utility helpers for toolscript."""
