from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Optional
from urllib.error import URLError
from urllib.request import Request, urlopen

from config import Settings, get_settings

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("open_er_api", "frankfurter")


@dataclass(frozen=True)
class RateTable:
    provider: str
    base: str
    rates: dict[str, float]  # units of each code per 1 base
    fetched_at: datetime


_cache: dict[tuple[str, str], tuple[float, RateTable]] = {}
_cache_lock = Lock()


def clear_cache() -> None:
    with _cache_lock:
        _cache.clear()


class FxRateService:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or get_settings()
        self.clock = clock

    @property
    def provider(self) -> str:
        return (self.settings.fx_provider or "open_er_api").lower()

    def rate_table(self, base: Optional[str] = None, *, force: bool = False) -> RateTable:
        """Pivot rate table for ``base``, served from cache within the TTL."""
        provider = self.provider
        if provider not in SUPPORTED_PROVIDERS:
            raise ValueError(f"Unsupported FX provider: {provider}")
        base = (base or self.settings.base_currency).upper()
        key = (provider, base)
        now = self.clock()

        with _cache_lock:
            cached = _cache.get(key)
        if cached and not force and now - cached[0] < self.settings.fx_cache_ttl_secs:
            return cached[1]

        if provider == "frankfurter":
            table = _fetch_frankfurter(base, timeout=self.settings.fx_timeout_secs)
        else:
            table = _fetch_open_er_api(base, timeout=self.settings.fx_timeout_secs)

        with _cache_lock:
            _cache[key] = (now, table)
        logger.info(
            f"fx_refresh: provider={provider} base={base} currencies={len(table.rates)}"
        )
        return table

    def rates(self, base: Optional[str] = None) -> dict[str, float]:
        return self.rate_table(base).rates


def _get_json(url: str, *, timeout: float, provider: str) -> dict:
    req = Request(url, headers={"Accept": "application/json"})
    try:
        with urlopen(req, timeout=timeout) as resp:
            payload = json.loads(resp.read().decode("utf-8"))
    except (URLError, TimeoutError, json.JSONDecodeError) as exc:
        raise RuntimeError(f"Failed to fetch FX rates from {provider}") from exc
    if not isinstance(payload, dict):
        raise RuntimeError("Unexpected FX provider response")
    return payload


def _parse_rates(raw: object, base: str) -> dict[str, float]:
    if not isinstance(raw, dict) or not raw:
        raise RuntimeError("Unexpected FX provider response")
    try:
        rates = {str(code).upper(): float(value) for code, value in raw.items()}
    except (TypeError, ValueError) as exc:
        raise RuntimeError("Unexpected FX provider response") from exc
    rates[base] = 1.0
    return rates


def _fetch_open_er_api(base: str, *, timeout: float) -> RateTable:
    payload = _get_json(
        f"https://open.er-api.com/v6/latest/{base}",
        timeout=timeout,
        provider="open_er_api",
    )
    if payload.get("result") != "success":
        raise RuntimeError(
            f"FX provider open_er_api returned {payload.get('result')!r} for {base}"
        )
    return RateTable(
        provider="open_er_api",
        base=base,
        rates=_parse_rates(payload.get("rates"), base),
        fetched_at=datetime.now(timezone.utc),
    )


def _fetch_frankfurter(base: str, *, timeout: float) -> RateTable:
    payload = _get_json(
        f"https://api.frankfurter.app/latest?from={base}",
        timeout=timeout,
        provider="frankfurter",
    )
    return RateTable(
        provider="frankfurter",
        base=base,
        rates=_parse_rates(payload.get("rates"), base),
        fetched_at=datetime.now(timezone.utc),
    )
