"""
Recommendation and insight taxonomy.

Tagged enums used by the insight generator, the recommendation engine and
the alert manager. ``Priority`` and ``AlertLevel`` support ordering so that
callers can compare severities directly::

    Priority.CRITICAL > Priority.LOW      # True

This module has NO imports from any other ``tactical_hub`` package.
"""

from enum import StrEnum


class InsightKind(StrEnum):
    """Pattern family an insight was derived from."""

    TREND = "trend"
    ANOMALY = "anomaly"
    CORRELATION = "correlation"


class RecommendationCategory(StrEnum):
    REVENUE_OPTIMIZATION = "revenue_optimization"
    COST_REDUCTION = "cost_reduction"
    MARKET_OPPORTUNITY = "market_opportunity"
    RISK_MITIGATION = "risk_mitigation"
    OPERATIONAL_EFFICIENCY = "operational_efficiency"


class _RankedEnum(StrEnum):
    """StrEnum whose members compare by declaration rank, not by string."""

    @property
    def rank(self) -> int:
        return list(type(self)).index(self)

    def __lt__(self, other):
        if isinstance(other, type(self)):
            return self.rank < other.rank
        return NotImplemented

    def __le__(self, other):
        if isinstance(other, type(self)):
            return self.rank <= other.rank
        return NotImplemented

    def __gt__(self, other):
        if isinstance(other, type(self)):
            return self.rank > other.rank
        return NotImplemented

    def __ge__(self, other):
        if isinstance(other, type(self)):
            return self.rank >= other.rank
        return NotImplemented


class Priority(_RankedEnum):
    """Recommendation priority, lowest first."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Urgency(StrEnum):
    IMMEDIATE = "immediate"
    SHORT_TERM = "short_term"
    LONG_TERM = "long_term"


class ActionType(StrEnum):
    MONITOR = "monitor"
    INVESTIGATE = "investigate"
    IMPLEMENT = "implement"
    OPTIMIZE = "optimize"
    PIVOT = "pivot"


class AlertLevel(_RankedEnum):
    """Alert severity, lowest first."""

    WARNING = "warning"
    CRITICAL = "critical"


class AlertState(StrEnum):
    """Alert lifecycle: active -> acknowledged -> resolved."""

    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


class RiskTolerance(StrEnum):
    CONSERVATIVE = "conservative"
    MODERATE = "moderate"
    AGGRESSIVE = "aggressive"


class CompanySize(StrEnum):
    STARTUP = "startup"
    SMALL = "small"
    MEDIUM = "medium"
    ENTERPRISE = "enterprise"
