"""Redis keys for gauge allowlists.

Redis key structure:
    ratewatch:allowlist:route   -> STRING (JSON array of route templates)
    ratewatch:allowlist:ip      -> STRING (JSON array of client IPs)
    ratewatch:alerts:anomaly:{anomaly_id} -> STRING (webhook cooldown marker)
"""

KEY_PREFIX = "ratewatch"
ALLOWLIST_PREFIX = f"{KEY_PREFIX}:allowlist"
ANOMALY_ALERT_PREFIX = f"{KEY_PREFIX}:alerts:anomaly"


def allowlist_key(kind: str) -> str:
    """Build the allowlist key for ``route`` or ``ip``."""
    return f"{ALLOWLIST_PREFIX}:{kind}"


def anomaly_alert_key(anomaly_id: str) -> str:
    """Build the webhook cooldown key for one anomaly."""
    return f"{ANOMALY_ALERT_PREFIX}:{anomaly_id}"
