from __future__ import annotations

import json
import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from backend.app.config import FxSettings
from backend.app.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)


SOURCE_CARD = "dolarapi_tarjeta"
SOURCE_OFFICIAL_PLUS_TAXES = "dolarapi_oficial_plus_taxes"
SOURCE_ENV_PLUS_TAXES = "env_fallback_plus_taxes"


@dataclass(frozen=True)
class RateQuote:
    rate: float
    source: str
    taxes_applied_percent: Optional[float] = None


def _phase_timeout(budget_seconds: float) -> httpx.Timeout:
    # httpx caps each phase (pool, connect, write, read) separately. With a
    # quarter of the budget per phase and the body read against the full
    # budget, one quote holds the caller for at most 1.25 x budget_seconds.
    return httpx.Timeout(budget_seconds / 4)


def _build_httpx_client(timeout_seconds: float) -> httpx.Client:
    return httpx.Client(timeout=_phase_timeout(timeout_seconds))


def _positive(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number <= 0:
        return None
    return number


def convert(amount: float, rate: float) -> float:
    return round(amount * rate, 2)


class CurrencyConverter:
    """
    Foreign -> home currency rate resolution.

    Order: card quote, else (official quote or configured constant) grossed
    up by the configured taxes. Quote fetches never raise to the caller: a
    timeout or bad payload only moves us to the next fallback.
    """

    def __init__(self, settings: FxSettings, *, client: Optional[httpx.Client] = None):
        self.settings = settings
        self._client = client or _build_httpx_client(settings.timeout_seconds)

    def fetch_quote(self, url: str) -> float:
        budget = self.settings.timeout_seconds
        deadline = time.monotonic() + budget
        try:
            with self._client.stream(
                "GET",
                url,
                timeout=_phase_timeout(budget),
                headers={"Cache-Control": "no-store"},
            ) as response:
                response.raise_for_status()
                body = bytearray()
                for chunk in response.iter_bytes():
                    body.extend(chunk)
                    if time.monotonic() > deadline:
                        raise UpstreamUnavailable(f"rate quote exceeded {budget}s: {url}")
            payload = json.loads(bytes(body))
        except (httpx.HTTPError, ValueError) as exc:
            raise UpstreamUnavailable(f"rate quote unavailable: {url}") from exc

        rate = _positive(payload.get("venta")) if isinstance(payload, dict) else None
        if rate is None:
            raise UpstreamUnavailable(f"rate quote has no usable 'venta': {url}")
        return rate

    def _soft_quote(self, url: str) -> Optional[float]:
        try:
            return self.fetch_quote(url)
        except UpstreamUnavailable as exc:
            logger.warning("fx_quote_unavailable url=%s reason=%s", url, exc.message)
            return None

    def resolve_foreign_rate(self) -> RateQuote:
        card_rate = self._soft_quote(self.settings.card_rate_url)
        if card_rate is not None:
            return RateQuote(rate=card_rate, source=SOURCE_CARD)

        official = self._soft_quote(self.settings.official_rate_url)
        if official is not None:
            base, source = official, SOURCE_OFFICIAL_PLUS_TAXES
        else:
            base, source = self.settings.official_rate, SOURCE_ENV_PLUS_TAXES

        taxes = self.settings.total_tax_percent
        effective = base * (1 + taxes / 100)
        logger.info("fx_rate_synthesized source=%s base=%s taxes_percent=%s rate=%s", source, base, taxes, effective)
        return RateQuote(rate=effective, source=source, taxes_applied_percent=taxes)

    def convert(self, amount: float, rate: float) -> float:
        return convert(amount, rate)
