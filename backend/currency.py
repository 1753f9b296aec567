from __future__ import annotations

import logging
import threading
import time
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import requests

from .money import normalize_currency, round_money, to_decimal

logger = logging.getLogger(__name__)


class RateFetchError(Exception):
    pass


def _rate(rates: Mapping[str, Any], code: str) -> Optional[Decimal]:
    value = rates.get(code)
    if value is None:
        return None
    try:
        return to_decimal(value)
    except (ValueError, InvalidOperation):
        return None


def convert(amount: Any, from_currency: Optional[str], to_currency: Optional[str], rates: Mapping[str, Any]) -> Decimal:
    """
    Convert ``amount`` between two currencies of a rate table.

    Rates are relative to a common anchor. When either rate is missing, or the
    source rate is zero, the amount is returned rounded but unconverted so a
    partial rate table never breaks a balance view.
    """
    source = normalize_currency(from_currency)
    target = normalize_currency(to_currency)
    if source == target:
        return round_money(amount)

    rates = {normalize_currency(code): value for code, value in (rates or {}).items()}
    source_rate = _rate(rates, source)
    target_rate = _rate(rates, target)
    if source_rate is None or target_rate is None or source_rate == 0:
        logger.debug("No usable rate for %s->%s, leaving amount unconverted", source, target)
        return round_money(amount)

    return round_money(to_decimal(amount) * target_rate / source_rate)


class ExchangeRateClient:
    """Fetches `latest` tables from exchangerate-api v6 and caches them per base."""

    def __init__(
        self,
        api_key: Optional[str],
        api_url: str = "https://v6.exchangerate-api.com/v6",
        cache_seconds: int = 3600,
        timeout: float = 10,
        clock: Callable[[], float] = time.monotonic,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key
        self.api_url = api_url.rstrip("/")
        self.cache_seconds = cache_seconds
        self.timeout = timeout
        self._clock = clock
        self._session = session or requests.Session()
        self._cache: Dict[str, Tuple[float, Dict[str, Decimal]]] = {}
        self._lock = threading.Lock()

    def get_rates(self, base: str) -> Dict[str, Decimal]:
        base = normalize_currency(base)
        with self._lock:
            cached = self._cache.get(base)
            if cached and self._clock() - cached[0] < self.cache_seconds:
                return dict(cached[1])

        rates = self._fetch(base)
        with self._lock:
            self._cache[base] = (self._clock(), rates)
        return dict(rates)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def _fetch(self, base: str) -> Dict[str, Decimal]:
        if not self.api_key:
            raise RateFetchError("exchange_rate_api_key_missing")

        url = f"{self.api_url}/{self.api_key}/latest/{base}"
        response = self._session.get(url, timeout=self.timeout)
        if not response.ok:
            raise RateFetchError(f"exchange_rate_http_{response.status_code}")

        try:
            payload = response.json()
        except ValueError:
            raise RateFetchError("exchange_rate_invalid_response") from None

        conversion_rates = payload.get("conversion_rates") if isinstance(payload, dict) else None
        if not isinstance(conversion_rates, dict):
            raise RateFetchError("exchange_rate_invalid_response")

        rates: Dict[str, Decimal] = {}
        for code, value in conversion_rates.items():
            try:
                rates[normalize_currency(code)] = to_decimal(value)
            except (ValueError, InvalidOperation):
                logger.warning("Skipping malformed rate %r for %s", value, code)
        rates[base] = Decimal("1")
        logger.info("Fetched %d exchange rates for base %s", len(rates), base)
        return rates
