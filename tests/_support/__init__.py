"""Shared test helpers (importable as ``tests._support``)."""
