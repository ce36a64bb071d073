from __future__ import annotations

from collections.abc import Iterator

import pytest

from ratewatch.config import get_settings


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch) -> Iterator[None]:
    for name in ("URL", "API_KEY", "METRICS_API_KEY", "POLL_INTERVAL_MS", "WINDOW_SECONDS"):
        monkeypatch.delenv(f"RATEWATCH_{name}", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
