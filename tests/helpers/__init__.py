"""Shared helpers for the VoltTest test suite."""
