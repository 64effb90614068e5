"""Guarded mutation of JSONL sources: plan, preview, backup, atomic rewrite."""

from devsql.mutation.ops import (
    AffectedRow,
    MutationGuard,
    MutationPlan,
    MutationResult,
    Outcome,
)
from devsql.mutation.writer import atomic_write, backup_path_for, render, take_backup

__all__ = [
    "AffectedRow",
    "MutationGuard",
    "MutationPlan",
    "MutationResult",
    "Outcome",
    "atomic_write",
    "backup_path_for",
    "render",
    "take_backup",
]
