"""Exchange rates from the Frankfurter API (ECB reference rates)."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import date
from typing import Callable

import httpx

logger = logging.getLogger(__name__)


@dataclass
class ExchangeRate:
    rate: float
    date: date
    from_currency: str
    to_currency: str


@dataclass
class _CacheEntry:
    rate: float
    date: date
    fetched_at: float


class RateCache:
    """Time-to-live cache for currency pairs.

    Expired entries are kept so they can be served when the upstream API is
    unavailable.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[tuple[str, str], _CacheEntry] = {}

    def get(self, pair: tuple[str, str], allow_stale: bool = False) -> _CacheEntry | None:
        entry = self._entries.get(pair)
        if entry is None:
            return None
        if allow_stale or self._clock() - entry.fetched_at < self.ttl_seconds:
            return entry
        return None

    def put(self, pair: tuple[str, str], rate: float, rate_date: date) -> None:
        self._entries[pair] = _CacheEntry(rate=rate, date=rate_date, fetched_at=self._clock())


def convert_amount(amount: float, rate: float) -> float:
    return round(amount * rate, 2)


class ExchangeRateService:
    def __init__(
        self,
        base_url: str,
        cache: RateCache,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.cache = cache
        self.timeout = timeout
        self._transport = transport

    async def get_rate(self, from_currency: str, to_currency: str) -> ExchangeRate | None:
        """Rate converting 1 ``from_currency`` into ``to_currency``.

        Returns None when no fresh or cached rate is available.
        """
        from_currency = from_currency.upper()
        to_currency = to_currency.upper()
        if from_currency == to_currency:
            return ExchangeRate(1.0, date.today(), from_currency, to_currency)

        pair = (from_currency, to_currency)
        cached = self.cache.get(pair)
        if cached is not None:
            return ExchangeRate(cached.rate, cached.date, from_currency, to_currency)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(
                    f"{self.base_url}/latest",
                    params={"from": from_currency, "to": to_currency},
                )
                response.raise_for_status()
                payload = response.json()
            rate = payload["rates"][to_currency]
            rate_date = date.fromisoformat(payload["date"])
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.warning("Exchange rate lookup %s->%s failed: %s", from_currency, to_currency, e)
            stale = self.cache.get(pair, allow_stale=True)
            if stale is not None:
                return ExchangeRate(stale.rate, stale.date, from_currency, to_currency)
            return None

        self.cache.put(pair, float(rate), rate_date)
        return ExchangeRate(float(rate), rate_date, from_currency, to_currency)


def build_exchange_rate_service(settings) -> ExchangeRateService:
    return ExchangeRateService(
        base_url=settings.exchange_rate_api_url,
        cache=RateCache(ttl_seconds=settings.exchange_rate_cache_ttl),
        timeout=settings.exchange_rate_timeout,
    )
