"""
Read-time RBAC filtering of snapshots.

A published ``Snapshot`` carries everything; each caller gets a filtered
copy containing only items whose ``module_access`` intersects the caller's
granted modules. Items without any module tags are visible only to the
``*`` module, which grants everything. Source health, degraded metric
labels and self-metrics are operational data and are never filtered.
"""

from __future__ import annotations

from typing import Iterable, Optional

from tactical_hub.models.snapshot import CategorySummary, Snapshot
from tactical_hub.taxonomy.metric_taxonomy import worst_status

WILDCARD_MODULE = "*"


def normalize_modules(modules: Optional[Iterable[str]]) -> frozenset[str]:
    if modules is None:
        return frozenset()
    if isinstance(modules, str):
        modules = [modules]
    return frozenset(m.strip() for m in modules if m and m.strip())


def can_view(module_access: frozenset[str], caller_modules: frozenset[str]) -> bool:
    if WILDCARD_MODULE in caller_modules:
        return True
    return bool(module_access & caller_modules)


def _filter_category(summary: CategorySummary, caller: frozenset[str]) -> Optional[CategorySummary]:
    visible = tuple(m for m in summary.metrics if can_view(m.module_access, caller))
    if not visible:
        return None
    if len(visible) == len(summary.metrics):
        return summary
    return summary.model_copy(update={
        "metrics": visible,
        "point_count": sum(m.count for m in visible),
        "status": worst_status(m.status for m in visible),
    })


def filter_snapshot(snapshot: Snapshot, caller_modules: Iterable[str]) -> Snapshot:
    """Return the part of ``snapshot`` visible to ``caller_modules``."""
    caller = normalize_modules(caller_modules)
    if WILDCARD_MODULE in caller:
        return snapshot

    categories = []
    for summary in snapshot.categories:
        filtered = _filter_category(summary, caller)
        if filtered is not None:
            categories.append(filtered)

    return snapshot.model_copy(update={
        "categories": tuple(categories),
        "latest_points": tuple(p for p in snapshot.latest_points if can_view(p.module_access, caller)),
        "alerts": tuple(a for a in snapshot.alerts if can_view(a.module_access, caller)),
        "predictions": tuple(p for p in snapshot.predictions if can_view(p.module_access, caller)),
        "insights": tuple(i for i in snapshot.insights if can_view(i.module_access, caller)),
        "recommendations": tuple(
            r for r in snapshot.recommendations if can_view(r.module_access, caller)
        ),
    })
