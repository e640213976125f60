"""
Civitas — Retention
====================
Policy-driven automatic archival of resolved requests.

- policies: category → retention duration, policy administration
- sweep: one pass of automatic archival
- scheduler: daily background trigger, on-demand runs
"""

from civitas.retention.policies import RetentionPolicyEngine, add_months
from civitas.retention.scheduler import RetentionScheduler
from civitas.retention.sweep import (
    ForceArchiveResult,
    RetentionSweeper,
    SweepResult,
)

__all__ = [
    "RetentionPolicyEngine",
    "add_months",
    "RetentionSweeper",
    "SweepResult",
    "ForceArchiveResult",
    "RetentionScheduler",
]
