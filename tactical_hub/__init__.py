"""Tactical analytics hub: real-time metric aggregation, forecasting, insights and recommendations."""

__version__ = "0.1.0"
