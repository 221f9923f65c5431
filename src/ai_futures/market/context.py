"""Per-cycle market context assembly."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed

from ai_futures.market.sources import MarketDataSource, OpenInterestMomentumSource
from ai_futures.types import MarketSnapshot, TradingContext
from ai_futures.utils.logging import get_logger

DEFAULT_MIN_OPEN_INTEREST_USD = 15_000_000.0


class MarketContextAssembler:
    """Fill ``ctx.market_data`` and ``ctx.oi_top_data`` for one cycle.

    Held positions are fetched first and are never filtered out: the model
    must always be able to decide whether to close them. Candidates whose
    open-interest value is below ``min_open_interest_usd`` are dropped as
    illiquid; candidates with no open-interest data are kept.
    """

    def __init__(
        self,
        data_source: MarketDataSource,
        oi_source: OpenInterestMomentumSource | None = None,
        *,
        min_open_interest_usd: float = DEFAULT_MIN_OPEN_INTEREST_USD,
        max_workers: int = 8,
    ) -> None:
        self._data_source = data_source
        self._oi_source = oi_source
        self._min_open_interest_usd = min_open_interest_usd
        self._max_workers = max(1, max_workers)
        self._logger = get_logger("ai_futures.market.context")

    def assemble(self, ctx: TradingContext) -> TradingContext:
        """Populate the context in place and return it."""
        held = ctx.position_symbols
        symbols = self._symbols_to_fetch(ctx)
        snapshots = self._fetch_all(symbols)

        market_data: dict[str, MarketSnapshot] = {}
        for symbol in symbols:
            snapshot = snapshots.get(symbol)
            if snapshot is None:
                continue
            if symbol not in held and self._is_illiquid(snapshot):
                self._logger.info(
                    "candidate_filtered_low_liquidity",
                    symbol=symbol,
                    oi_value_usd=round(snapshot.open_interest_value_usd or 0.0, 2),
                    threshold_usd=self._min_open_interest_usd,
                )
                continue
            market_data[symbol] = snapshot
        ctx.market_data = market_data

        if self._oi_source is not None:
            try:
                ctx.oi_top_data = dict(self._oi_source.fetch_oi_top())
            except Exception as exc:  # noqa: BLE001 - OI ranking is optional context.
                self._logger.warning("oi_top_fetch_failed", error=str(exc))
                ctx.oi_top_data = {}

        self._logger.info(
            "market_context_assembled",
            requested=len(symbols),
            fetched=len(snapshots),
            kept=len(market_data),
            oi_top=len(ctx.oi_top_data),
        )
        return ctx

    @staticmethod
    def _symbols_to_fetch(ctx: TradingContext) -> list[str]:
        ordered: list[str] = []
        for position in ctx.positions:
            if position.symbol not in ordered:
                ordered.append(position.symbol)
        for coin in ctx.candidate_coins:
            if coin.symbol not in ordered:
                ordered.append(coin.symbol)
        return ordered

    def _fetch_all(self, symbols: list[str]) -> dict[str, MarketSnapshot]:
        if not symbols:
            return {}
        snapshots: dict[str, MarketSnapshot] = {}
        with ThreadPoolExecutor(max_workers=min(self._max_workers, len(symbols))) as executor:
            future_to_symbol = {
                executor.submit(self._data_source.get_market_snapshot, symbol): symbol
                for symbol in symbols
            }
            for future in as_completed(future_to_symbol):
                symbol = future_to_symbol[future]
                try:
                    snapshots[symbol] = future.result()
                except Exception as exc:  # noqa: BLE001 - one bad symbol must not sink the cycle.
                    self._logger.warning("market_snapshot_failed", symbol=symbol, error=str(exc))
        return snapshots

    def _is_illiquid(self, snapshot: MarketSnapshot) -> bool:
        value = snapshot.open_interest_value_usd
        if value is None:
            return False
        return value < self._min_open_interest_usd
