"""Redis key helpers."""

from shared.keys.allowlists import (
    ALLOWLIST_PREFIX,
    ANOMALY_ALERT_PREFIX,
    KEY_PREFIX,
    allowlist_key,
    anomaly_alert_key,
)

__all__ = [
    "KEY_PREFIX",
    "ALLOWLIST_PREFIX",
    "ANOMALY_ALERT_PREFIX",
    "allowlist_key",
    "anomaly_alert_key",
]
