"""Distribution layer: JSON payload access to a running hub."""

from tactical_hub.distribution.service import DashboardService, error_payload

__all__ = ["DashboardService", "error_payload"]
