"""Reconciliation module for three-way AWB weight comparison."""
from reconciler.comparison_engine import (
    ComparisonEngine,
    ComparisonResult,
    ComparisonRow,
    ComparisonStats,
    compare,
)

__all__ = ["ComparisonEngine", "ComparisonResult", "ComparisonRow", "ComparisonStats", "compare"]
