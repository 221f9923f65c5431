"""Collaborator interfaces for market data and candidate screening."""

from __future__ import annotations

from typing import Protocol

from ai_futures.types import CandidateCoin, MarketSnapshot, OITopData
from ai_futures.utils.logging import get_logger

SOURCE_POOL = "pool"
SOURCE_OI_TOP = "oi_top"


class SnapshotNotFoundError(LookupError):
    """Raised when no market data exists for a symbol."""


class MarketDataSource(Protocol):
    def get_market_snapshot(self, symbol: str) -> MarketSnapshot:
        """Return the current snapshot for ``symbol``.

        Raises:
            SnapshotNotFoundError: the symbol is unknown or delisted.
        """
        ...


class OpenInterestMomentumSource(Protocol):
    def fetch_oi_top(self) -> dict[str, OITopData]:
        ...


class CandidateScreener(Protocol):
    def screen(self) -> list[CandidateCoin]:
        ...


class StaticCandidateScreener:
    """Nominate a fixed symbol pool plus the open-interest momentum ranking.

    A symbol nominated by both keeps both source tags. The OI ranking is
    best-effort: if it fails, the pool alone is returned.
    """

    def __init__(
        self,
        symbols: list[str],
        oi_source: OpenInterestMomentumSource | None = None,
        *,
        max_candidates: int = 20,
    ) -> None:
        self._symbols = [symbol.upper() for symbol in symbols]
        self._oi_source = oi_source
        self._max_candidates = max_candidates
        self._logger = get_logger("ai_futures.market.sources")

    def screen(self) -> list[CandidateCoin]:
        candidates: dict[str, CandidateCoin] = {}
        for symbol in self._symbols:
            candidates.setdefault(symbol, CandidateCoin(symbol=symbol, sources=[SOURCE_POOL]))

        if self._oi_source is not None:
            try:
                ranking = self._oi_source.fetch_oi_top()
            except Exception as exc:  # noqa: BLE001 - ranking is optional.
                self._logger.warning("oi_top_screen_failed", error=str(exc))
                ranking = {}
            for symbol in sorted(ranking, key=lambda name: ranking[name].rank):
                coin = candidates.setdefault(symbol, CandidateCoin(symbol=symbol))
                if SOURCE_OI_TOP not in coin.sources:
                    coin.sources.append(SOURCE_OI_TOP)

        selected = list(candidates.values())[: self._max_candidates]
        self._logger.info(
            "candidates_screened",
            count=len(selected),
            dual_signal=sum(1 for coin in selected if coin.is_dual_signal),
        )
        return selected
