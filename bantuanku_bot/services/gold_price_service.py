"""Gold price per gram for the zakat nisab.

Scraped from the public Pluang gold page (Next.js embeds the quote in the
`__NEXT_DATA__` script). Successful quotes are cached for an hour; any failure
falls back to the price configured in settings.
"""

import json
import re
import time
from typing import Callable, Optional

import httpx

from bantuanku_bot.logging_config import get_logger

logger = get_logger("gold_price")

DEFAULT_GOLD_PRICE_PER_GRAM = 1_000_000
DEFAULT_CACHE_SECONDS = 3600

_NEXT_DATA_RE = re.compile(r'<script id="__NEXT_DATA__"[^>]*>(.*?)</script>', re.S)


class GoldPriceError(Exception):
    pass


def parse_pluang_page(html: str) -> int:
    match = _NEXT_DATA_RE.search(html or "")
    if not match:
        raise GoldPriceError("__NEXT_DATA__ not found")
    try:
        data = json.loads(match.group(1))
        raw = data["props"]["pageProps"]["goldAssetPerformance"]["currentMidPrice"]
    except (ValueError, KeyError, TypeError) as e:
        raise GoldPriceError(f"Unexpected gold page shape: {e}") from e

    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        price = int(raw)
    else:
        # Indonesian formatting: "1.450.000,25"
        digits = re.sub(r"[^0-9]", "", str(raw).split(",")[0])
        price = int(digits) if digits else 0
    if price <= 0:
        raise GoldPriceError(f"Invalid gold price: {raw!r}")
    return price


class GoldPriceService:
    def __init__(
        self,
        url: str = "https://pluang.com/asset/gold",
        cache_seconds: float = DEFAULT_CACHE_SECONDS,
        timeout_seconds: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.url = url
        self.cache_seconds = cache_seconds
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self._cached_price: Optional[int] = None
        self._cached_until = 0.0

    async def get_price_per_gram(self, fallback: int = DEFAULT_GOLD_PRICE_PER_GRAM) -> int:
        now = self._clock()
        if self._cached_price is not None and now < self._cached_until:
            return self._cached_price

        try:
            price = await self._fetch()
        except Exception as e:
            logger.warning(
                "Gold price fetch failed, using fallback",
                extra={"context": {"error": str(e), "fallback": fallback}},
            )
            return fallback

        self._cached_price = price
        self._cached_until = now + self.cache_seconds
        logger.info("Gold price refreshed", extra={"context": {"price_per_gram": price}})
        return price

    async def _fetch(self) -> int:
        async with httpx.AsyncClient(timeout=self.timeout_seconds, follow_redirects=True) as client:
            response = await client.get(self.url, headers={"User-Agent": "Mozilla/5.0 (bantuanku-bot)"})
        if response.status_code != 200:
            raise GoldPriceError(f"Gold page returned {response.status_code}")
        return parse_pluang_page(response.text)
