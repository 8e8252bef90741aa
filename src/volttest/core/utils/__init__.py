"""Utility helpers shared by the VoltTest core.

- io/: directory helpers, YAML reading, file locks
- merge: layered configuration merging
"""
from __future__ import annotations

from .merge import deep_merge, merge_arrays

__all__ = ["deep_merge", "merge_arrays"]
