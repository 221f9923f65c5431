"""Binance futures market data source."""

from __future__ import annotations

from typing import Any

import pandas as pd  # type: ignore[import-untyped]
from binance.client import Client  # type: ignore[import-untyped]
from binance.exceptions import BinanceAPIException  # type: ignore[import-untyped]

from ai_futures.config import Settings
from ai_futures.features import indicators
from ai_futures.market.sources import SnapshotNotFoundError
from ai_futures.types import MarketSnapshot, OpenInterest
from ai_futures.utils.logging import get_logger

_INVALID_SYMBOL_CODE = -1121
_BARS_PER_HOUR_3M = 20


class BinanceMarketDataSource:
    """Read-only snapshot source built on futures klines, funding and OI."""

    _INTERVAL_MAP = {
        "3m": Client.KLINE_INTERVAL_3MINUTE,
        "4h": Client.KLINE_INTERVAL_4HOUR,
    }

    def __init__(self, settings: Settings, *, client: Any | None = None) -> None:
        self._settings = settings
        self._logger = get_logger("ai_futures.data.binance")
        self._client = client or Client(
            api_key=settings.binance_api_key or None,
            api_secret=settings.binance_api_secret or None,
            testnet=settings.binance_testnet,
        )

    def get_market_snapshot(self, symbol: str) -> MarketSnapshot:
        """Build a snapshot from 3m and 4h klines plus funding and OI.

        Raises:
            SnapshotNotFoundError: Binance does not list ``symbol``.
        """
        try:
            intraday = self.fetch_ohlcv(symbol, "3m", limit=100)
            swing = self.fetch_ohlcv(symbol, "4h", limit=60)
        except BinanceAPIException as exc:
            if exc.code == _INVALID_SYMBOL_CODE:
                raise SnapshotNotFoundError(symbol) from exc
            raise

        close_3m = intraday["close"]
        close_4h = swing["close"]
        volume_4h = swing["volume"]

        return MarketSnapshot(
            symbol=symbol,
            current_price=float(close_3m.iloc[-1]),
            price_change_1h=indicators.percent_change(close_3m, _BARS_PER_HOUR_3M),
            price_change_4h=indicators.percent_change(close_4h, 1),
            current_ema20=float(indicators.ema(close_3m, 20).iloc[-1]),
            current_macd=float(indicators.macd(close_3m).iloc[-1]),
            current_rsi7=_or_default(indicators.last_value(indicators.rsi(close_3m, 7)), 50.0),
            funding_rate=_or_default(self.fetch_funding_rate(symbol), 0.0),
            open_interest=self.fetch_open_interest(symbol),
            ema20_4h=indicators.last_value(indicators.ema(close_4h, 20)),
            ema50_4h=indicators.last_value(indicators.ema(close_4h, 50)),
            atr3_4h=indicators.last_value(indicators.atr(swing, 3)),
            atr14_4h=indicators.last_value(indicators.atr(swing, 14)),
            current_volume_4h=float(volume_4h.iloc[-1]),
            average_volume_4h=float(volume_4h.iloc[-20:].mean()),
        )

    def get_price(self, symbol: str) -> float:
        """Latest futures ticker price."""
        payload: dict[str, Any] = self._client.futures_symbol_ticker(symbol=symbol)
        return float(payload["price"])

    def fetch_ohlcv(self, symbol: str, interval: str, limit: int) -> pd.DataFrame:
        """Fetch futures klines and return a normalized dataframe."""
        resolved_interval = self._INTERVAL_MAP.get(interval.lower())
        if resolved_interval is None:
            raise ValueError(f"unsupported_interval: {interval}")

        rows = self._client.futures_klines(symbol=symbol, interval=resolved_interval, limit=limit)
        df = pd.DataFrame(
            rows,
            columns=[
                "open_time",
                "open",
                "high",
                "low",
                "close",
                "volume",
                "close_time",
                "quote_asset_volume",
                "number_of_trades",
                "taker_buy_base_asset_volume",
                "taker_buy_quote_asset_volume",
                "ignore",
            ],
        )
        if df.empty:
            raise SnapshotNotFoundError(f"{symbol}: empty {interval} klines")

        numeric_cols = ["open", "high", "low", "close", "volume"]
        for col in numeric_cols:
            df[col] = pd.to_numeric(df[col], errors="coerce")
        df["open_time"] = pd.to_datetime(df["open_time"], unit="ms", utc=True)
        df = df.dropna(subset=numeric_cols).reset_index(drop=True)
        return df[["open_time", "open", "high", "low", "close", "volume"]]

    def fetch_funding_rate(self, symbol: str) -> float | None:
        """Fetch the latest funding rate. Returns None on failure."""
        try:
            rows = self._client.futures_funding_rate(symbol=symbol, limit=1)
            if not rows:
                return None
            value = rows[-1].get("fundingRate")
            return float(value) if value is not None else None
        except Exception as exc:  # noqa: BLE001 - funding is optional context.
            self._logger.warning("funding_fetch_failed", symbol=symbol, error=str(exc))
            return None

    def fetch_open_interest(self, symbol: str) -> OpenInterest | None:
        """Latest open interest with its recent average. Returns None on failure."""
        try:
            payload: dict[str, Any] = self._client.futures_open_interest(symbol=symbol)
            latest_raw = payload.get("openInterest")
            if latest_raw is None:
                return None
            latest = float(latest_raw)
            history = self._client.futures_open_interest_hist(symbol=symbol, period="15m", limit=30)
            values = [float(row["sumOpenInterest"]) for row in history or [] if "sumOpenInterest" in row]
            average = sum(values) / len(values) if values else latest
            return OpenInterest(latest=latest, average=average)
        except Exception as exc:  # noqa: BLE001 - OI is optional context.
            self._logger.warning("oi_fetch_failed", symbol=symbol, error=str(exc))
            return None


def _or_default(value: float | None, default: float) -> float:
    return default if value is None else value
