"""Delivery monitoring and analytics.

Example:
    ```python
    from hookwire.monitor import Monitor

    monitor = Monitor(store, settings)
    stats = await monitor.endpoint_stats("whk_abc123")
    ```
"""

from .analytics import Monitor, recommendations
from .models import (
    DashboardSummary,
    DeliveryRecord,
    EndpointHealth,
    EndpointPerformance,
    EndpointStats,
    ExportFormat,
    FailedDelivery,
    HealthStatus,
    PerformanceReport,
)

__all__ = [
    "DashboardSummary",
    "DeliveryRecord",
    "EndpointHealth",
    "EndpointPerformance",
    "EndpointStats",
    "ExportFormat",
    "FailedDelivery",
    "HealthStatus",
    "Monitor",
    "PerformanceReport",
    "recommendations",
]
