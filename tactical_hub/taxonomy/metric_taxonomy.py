"""
Metric taxonomy for the tactical analytics hub.

Three orthogonal dimensions describe every data point:
  - ``SourceKind``     - the *where*: which upstream feed produced it?
  - ``MetricCategory`` - the *what*:  which dashboard section does it feed?
  - ``HealthStatus``   - the *how bad*: threshold classification at ingest.

``MetricFamily`` groups metric *names* by business meaning (revenue, cost,
risk, ...) so the recommendation heuristics can reason about direction
without a hard-coded list of every metric a source might emit.

This module has NO imports from any other ``tactical_hub`` package.
"""

from enum import StrEnum


class SourceKind(StrEnum):
    """Upstream feed a data point was collected from."""

    SYSTEM_HEALTH = "system_health"
    BUSINESS_ANALYTICS = "business_analytics"
    WORKFLOW_PERFORMANCE = "workflow_performance"
    CUSTOMER_INTELLIGENCE = "customer_intelligence"
    SECURITY_COMPLIANCE = "security_compliance"
    INFRASTRUCTURE = "infrastructure"


class MetricCategory(StrEnum):
    """Dashboard section a metric is summarised under."""

    SYSTEM_HEALTH = "system_health"
    BUSINESS = "business"
    WORKFLOW = "workflow"
    SECURITY = "security"
    CUSTOMER = "customer"
    INFRASTRUCTURE = "infrastructure"


class HealthStatus(StrEnum):
    """Threshold classification of a single value."""

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def severity(self) -> int:
        return _STATUS_SEVERITY[self]


_STATUS_SEVERITY: dict[HealthStatus, int] = {
    HealthStatus.HEALTHY: 0,
    HealthStatus.WARNING: 1,
    HealthStatus.CRITICAL: 2,
}


def worst_status(statuses) -> HealthStatus:
    """Return the most severe status in ``statuses`` (HEALTHY when empty)."""
    worst = HealthStatus.HEALTHY
    for status in statuses:
        if status.severity > worst.severity:
            worst = status
    return worst


class Trend(StrEnum):
    """Direction of a series over the forecast horizon."""

    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class AggregationPeriod(StrEnum):
    """Calendar bucket for grouping buffered history (UTC)."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class ModelType(StrEnum):
    """Statistical model family served for a (source, metric) pair."""

    TREND = "trend"
    """Ordinary least-squares line through the retained history."""

    EXPONENTIAL_SMOOTHING = "exponential_smoothing"
    """Holt-Winters level/trend/season smoothing."""

    ANOMALY = "anomaly"
    """Rolling mean with z-score bands; used for noisy, trendless metrics."""

    ENSEMBLE = "ensemble"
    """Smoothing + moving-average baseline weighted by inverse rolling MAE."""


class MetricFamily(StrEnum):
    """Business meaning of a metric name."""

    REVENUE = "revenue"
    COST = "cost"
    RISK = "risk"
    OPERATIONS = "operations"
    GROWTH = "growth"
    OTHER = "other"


# First matching keyword wins; order matters ("failed_auth" before "auth").
_FAMILY_KEYWORDS: list[tuple[str, MetricFamily]] = [
    ("revenue",        MetricFamily.REVENUE),
    ("mrr",            MetricFamily.REVENUE),
    ("arr",            MetricFamily.REVENUE),
    ("sales",          MetricFamily.REVENUE),
    ("conversion",     MetricFamily.REVENUE),
    ("order_value",    MetricFamily.REVENUE),
    ("cost",           MetricFamily.COST),
    ("expense",        MetricFamily.COST),
    ("spend",          MetricFamily.COST),
    ("cac",            MetricFamily.COST),
    ("error",          MetricFamily.RISK),
    ("churn",          MetricFamily.RISK),
    ("failed_auth",    MetricFamily.RISK),
    ("incident",       MetricFamily.RISK),
    ("violation",      MetricFamily.RISK),
    ("threat",         MetricFamily.RISK),
    ("response_time",  MetricFamily.OPERATIONS),
    ("latency",        MetricFamily.OPERATIONS),
    ("execution_time", MetricFamily.OPERATIONS),
    ("queue",          MetricFamily.OPERATIONS),
    ("cpu",            MetricFamily.OPERATIONS),
    ("memory",         MetricFamily.OPERATIONS),
    ("disk",           MetricFamily.OPERATIONS),
    ("success_rate",   MetricFamily.OPERATIONS),
    ("uptime",         MetricFamily.OPERATIONS),
    ("active_users",   MetricFamily.GROWTH),
    ("customers",      MetricFamily.GROWTH),
    ("signups",        MetricFamily.GROWTH),
    ("engagement",     MetricFamily.GROWTH),
    ("satisfaction",   MetricFamily.GROWTH),
]

# Metrics where a *falling* value is the bad direction.
_HIGHER_IS_BETTER: tuple[str, ...] = (
    "success_rate", "uptime", "satisfaction", "compliance_score", "health_score",
)


def classify_metric(metric: str) -> MetricFamily:
    """Map a metric name to its ``MetricFamily`` by keyword."""
    name = metric.lower()
    for keyword, family in _FAMILY_KEYWORDS:
        if keyword in name:
            return family
    return MetricFamily.OTHER


def adverse_trend(metric: str) -> Trend:
    """Return the direction in which ``metric`` is getting worse."""
    family = classify_metric(metric)
    name = metric.lower()
    if family in (MetricFamily.REVENUE, MetricFamily.GROWTH):
        return Trend.DOWN
    if any(keyword in name for keyword in _HIGHER_IS_BETTER):
        return Trend.DOWN
    return Trend.UP
