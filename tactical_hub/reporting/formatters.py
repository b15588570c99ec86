"""
ASCII terminal formatters for CLI commands.

All formatters accept hub models and return plain multi-line strings
suitable for ``typer.echo()``.

No third-party dependencies (no ``rich``, no ``colorama``).

Staleness banners
-----------------
Every snapshot output starts with a banner so readers can tell at a glance
whether they are looking at live or stale data::

  [LIVE]  cycle 42 at 2026-01-01T12:00:00+00:00 (running)
  [STALE] since 2026-01-01T12:05:00+00:00 (stopped)  <- hub no longer ingesting
"""

from __future__ import annotations

from tactical_hub.models.forecast import Prediction
from tactical_hub.models.recommendation import Recommendation
from tactical_hub.models.snapshot import Snapshot

_STATUS_MARK = {"healthy": "OK ", "warning": "WRN", "critical": "CRT"}


def format_stale_banner(snapshot: Snapshot) -> str:
    if snapshot.stale_since is not None:
        return (
            f"  [STALE] since {snapshot.stale_since.isoformat()} "
            f"({snapshot.hub_state.value}) -- data is no longer being refreshed"
        )
    return (
        f"  [LIVE]  cycle {snapshot.cycle} at {snapshot.generated_at.isoformat()} "
        f"({snapshot.hub_state.value})"
    )


def format_snapshot(snapshot: Snapshot) -> str:
    """Format a snapshot as category tables plus alerts and sources.

    Layout::

        === Snapshot snap-000003 ===
          [LIVE]  cycle 3 at ... (running)
          Overall: healthy   Sources: 2/2 healthy   Buffered: 48

          [SYSTEM_HEALTH] healthy, 24 points
            St   Metric                      Latest       Mean     Change
            OK   system_health/cpu_usage      42.00      41.20     +2.1%
    """
    perf = snapshot.performance
    lines: list[str] = []
    lines.append("")
    lines.append(f"=== Snapshot {snapshot.snapshot_id} ===")
    lines.append(format_stale_banner(snapshot))
    lines.append(
        f"  Overall: {snapshot.overall_status.value:<9} "
        f"Sources: {perf.active_sources}/{perf.total_sources} healthy   "
        f"Buffered: {perf.buffered_points}   Latency: {perf.aggregation_latency_ms:.1f}ms"
    )

    if not snapshot.categories:
        lines.append("")
        lines.append("  (no data buffered yet)")

    for category in snapshot.categories:
        lines.append("")
        lines.append(
            f"  [{category.category.value.upper()}] {category.status.value}, "
            f"{category.point_count} points"
        )
        lines.append(
            f"    {'St':<4} {'Metric':<40} {'Latest':>12} {'Mean':>12} {'Change':>8}"
        )
        for m in category.metrics:
            label = f"{m.source.value}/{m.metric}"
            lines.append(
                f"    {_STATUS_MARK[m.status.value]:<4} {label:<40} "
                f"{m.latest_value:>12.2f} {m.mean:>12.2f} {m.change_pct:>+7.1%}"
            )

    if snapshot.alerts:
        lines.append("")
        lines.append(f"  Alerts ({len(snapshot.alerts)})")
        for alert in snapshot.alerts:
            lines.append(
                f"    {alert.level.value.upper():<8} {alert.state.value:<12} "
                f"{alert.alert_id}  {alert.message}"
            )

    degraded = [s for s in snapshot.sources if s.state.value != "healthy"]
    if degraded:
        lines.append("")
        lines.append("  Sources not healthy")
        for s in degraded:
            lines.append(
                f"    {s.name:<24} {s.state.value:<9} failures={s.consecutive_failures}  "
                f"{s.last_error or ''}"
            )

    if snapshot.degraded_metrics:
        lines.append("")
        lines.append(f"  Degraded metrics: {', '.join(snapshot.degraded_metrics)}")

    if snapshot.recommendations:
        lines.append("")
        lines.append(format_recommendations(list(snapshot.recommendations)))

    return "\n".join(lines)


def format_prediction(prediction: Prediction) -> str:
    """Format a prediction as a step table with bands and confidence."""
    lines: list[str] = []
    lines.append("")
    lines.append(
        f"=== Forecast {prediction.source.value}/{prediction.metric} "
        f"({prediction.model_type.value}) ==="
    )
    lines.append(
        f"  Current: {prediction.current_value:.4f}   Trend: {prediction.trend.value}   "
        f"Change: {prediction.change_pct:+.2%}   Confidence: {prediction.confidence_score:.1f}"
    )
    lines.append("")
    lines.append(
        f"    {'Step':>4}  {'Timestamp':<26} {'Lower':>12} {'Predicted':>12} "
        f"{'Upper':>12} {'Conf':>6}"
    )
    lines.append("    " + "-" * 78)
    for p in prediction.points:
        lines.append(
            f"    {p.step:>4}  {p.timestamp.isoformat():<26} {p.lower_bound:>12.4f} "
            f"{p.predicted_value:>12.4f} {p.upper_bound:>12.4f} {p.confidence:>6.1f}"
        )
    return "\n".join(lines)


def format_recommendations(recommendations: list[Recommendation]) -> str:
    lines = [f"  Recommendations ({len(recommendations)})"]
    if not recommendations:
        lines.append("    (none)")
    for rank, rec in enumerate(recommendations, 1):
        lines.append(
            f"    {rank:>2}. [{rec.priority.value.upper():<8}] {rec.title} "
            f"({rec.category.value}, {rec.urgency.value}, "
            f"conf {rec.confidence_score:.0f}, score {rec.priority_score:.1f})"
        )
    return "\n".join(lines)
