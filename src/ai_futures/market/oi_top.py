"""Open-interest momentum ranking client."""

from __future__ import annotations

import time
from typing import Any

import httpx

from ai_futures.types import OITopData
from ai_futures.utils.logging import get_logger


class OITopError(Exception):
    """Raised when the OI ranking cannot be fetched or decoded."""


class OITopClient:
    """Fetch the OI growth ranking from an HTTP endpoint.

    Accepts either a bare JSON list of rows or ``{"data": {"positions": [...]}}``.
    Results are cached in memory for ``cache_ttl_seconds``.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 30.0,
        cache_ttl_seconds: float = 60.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._cache_ttl_seconds = cache_ttl_seconds
        self._transport = transport
        self._cached: dict[str, OITopData] | None = None
        self._cached_at = 0.0
        self._logger = get_logger("ai_futures.market.oi_top")

    def fetch_oi_top(self) -> dict[str, OITopData]:
        now = time.monotonic()
        if self._cached is not None and now - self._cached_at < self._cache_ttl_seconds:
            return dict(self._cached)

        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.get(self._url)
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise OITopError(f"oi_top_fetch_failed: {exc}") from exc

        ranking = parse_oi_top_payload(payload)
        self._cached = ranking
        self._cached_at = now
        self._logger.info("oi_top_fetched", count=len(ranking))
        return dict(ranking)


def parse_oi_top_payload(payload: Any) -> dict[str, OITopData]:
    """Decode ranking rows into ``{symbol: OITopData}``.

    Rows without a symbol are skipped. A missing rank falls back to the row's
    position in the list.
    """
    rows = payload
    if isinstance(payload, dict):
        data = payload.get("data", payload)
        rows = data.get("positions", []) if isinstance(data, dict) else data
    if not isinstance(rows, list):
        raise OITopError("oi_top_payload_not_a_list")

    ranking: dict[str, OITopData] = {}
    for position, row in enumerate(rows, start=1):
        if not isinstance(row, dict):
            continue
        symbol = str(row.get("symbol", "")).strip().upper()
        if not symbol:
            continue
        try:
            ranking[symbol] = OITopData(
                rank=int(row.get("rank", position)),
                oi_delta_percent=float(row.get("oi_delta_percent", 0.0)),
                oi_delta_value=float(row.get("oi_delta_value", 0.0)),
                price_delta_percent=float(row.get("price_delta_percent", 0.0)),
                net_long=float(row.get("net_long", 0.0)),
                net_short=float(row.get("net_short", 0.0)),
            )
        except (TypeError, ValueError) as exc:
            raise OITopError(f"oi_top_row_invalid: {symbol}: {exc}") from exc
    return ranking
