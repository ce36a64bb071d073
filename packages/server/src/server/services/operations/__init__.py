"""Operational service components."""

from server.services.operations.anomaly_monitor import (
    AnomalyAlert,
    AnomalyMonitorService,
    emit_anomaly_alerts,
    get_alert_delivery_stats,
    reset_alert_delivery_stats,
)

__all__ = [
    "AnomalyAlert",
    "AnomalyMonitorService",
    "emit_anomaly_alerts",
    "get_alert_delivery_stats",
    "reset_alert_delivery_stats",
]
