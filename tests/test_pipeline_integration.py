from __future__ import annotations

import json
from pathlib import Path

from conftest import make_context, make_snapshot

from ai_futures.ai.gateway import AITransientError
from ai_futures.config import Settings
from ai_futures.journal.performance import load_performance
from ai_futures.journal.store import JournalStore
from ai_futures.market.context import MarketContextAssembler
from ai_futures.market.sources import SOURCE_POOL, SnapshotNotFoundError
from ai_futures.pipeline import DecisionPipeline, run_trading_cycle
from ai_futures.prompt.builder import PromptBuilder
from ai_futures.risk.validator import DecisionValidator
from ai_futures.types import CandidateCoin, MarketSnapshot, TradingContext

PRICES = {"BTCUSDT": 95_000.0, "SOLUSDT": 185.0}

OPEN_SOL = (
    "SOL is holding the EMA20 with rising open interest.\n"
    '[{"symbol": "SOLUSDT", "action": "open_long", "leverage": 10, "position_size_usd": 1000, '
    '"stop_loss": 170, "take_profit": 200, "confidence": 80, "risk_usd": 80}]'
)


class _FakeDataSource:
    def __init__(self, settings: Settings | None = None) -> None:
        self.prices = dict(PRICES)

    def get_market_snapshot(self, symbol: str) -> MarketSnapshot:
        if symbol not in self.prices:
            raise SnapshotNotFoundError(symbol)
        return make_snapshot(symbol, self.prices[symbol])

    def get_price(self, symbol: str) -> float:
        return self.prices[symbol]


class _FakeGateway:
    def __init__(self, response: str | Exception) -> None:
        self.response = response
        self.prompts: list[tuple[str, str]] = []

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        self.prompts.append((system_prompt, user_prompt))
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


def _pipeline(gateway: _FakeGateway) -> DecisionPipeline:
    return DecisionPipeline(
        MarketContextAssembler(_FakeDataSource()),
        PromptBuilder(),
        gateway,  # type: ignore[arg-type]
        DecisionValidator(),
    )


def _btc_context() -> TradingContext:
    return make_context(candidate_coins=[CandidateCoin("BTCUSDT", [SOURCE_POOL])])


def test_over_leveraged_batch_is_rejected() -> None:
    gateway = _FakeGateway(
        "Breakout.\n"
        '[{"symbol": "BTCUSDT", "action": "open_long", "leverage": 60, "position_size_usd": 5000, '
        '"stop_loss": 92000, "take_profit": 98000, "confidence": 85}]'
    )
    outcome = _pipeline(gateway).run(_btc_context())

    assert outcome.status == "validation_failed"
    assert not outcome.executable
    assert "decision #1" in (outcome.error or "")
    assert "50" in (outcome.error or "")
    assert outcome.decision.reasoning_trace == "Breakout."


def test_gateway_failure_is_ai_unavailable() -> None:
    outcome = _pipeline(_FakeGateway(AITransientError("ReadTimeout"))).run(_btc_context())

    assert outcome.status == "ai_unavailable"
    assert outcome.decision.system_prompt
    assert "BTCUSDT" in outcome.decision.user_prompt
    assert outcome.decision.decisions == []


def test_malformed_response_keeps_trace() -> None:
    outcome = _pipeline(_FakeGateway("Market looks weak, shorting nothing today.")).run(_btc_context())

    assert outcome.status == "malformed_response"
    assert outcome.decision.reasoning_trace == "Market looks weak, shorting nothing today."


def test_decided_outcome_carries_prompts_and_decisions() -> None:
    gateway = _FakeGateway(OPEN_SOL)
    ctx = make_context(candidate_coins=[CandidateCoin("SOLUSDT", [SOURCE_POOL])])
    outcome = _pipeline(gateway).run(ctx)

    assert outcome.status == "decided"
    assert outcome.decision.decisions[0].symbol == "SOLUSDT"
    assert gateway.prompts == [(outcome.decision.system_prompt, outcome.decision.user_prompt)]
    assert "SOLUSDT" in ctx.market_data


def _settings(tmp_path: Path) -> Settings:
    return Settings(
        ai_api_key="x",
        journal_dir=tmp_path,
        candidate_symbols="BTCUSDT,SOLUSDT",
        oi_top_api_url="",
        initial_equity=10_000,
    )


def _patch_collaborators(monkeypatch, response: str | Exception) -> None:
    from ai_futures import pipeline

    monkeypatch.setattr(pipeline, "BinanceMarketDataSource", _FakeDataSource)
    monkeypatch.setattr(pipeline, "AIGateway", lambda settings: _FakeGateway(response))


def _journal_events(tmp_path: Path) -> list[str]:
    rows = JournalStore(tmp_path).load_recent(1_000)
    return [row["event_type"] for row in rows]


def test_cycle_dry_run_does_not_touch_account(monkeypatch, tmp_path: Path) -> None:
    _patch_collaborators(monkeypatch, OPEN_SOL)

    result = run_trading_cycle(_settings(tmp_path), dry_run=True)

    assert result.status == "executed_dry_run"
    assert result.orders[0]["status"] == "dry_run"
    assert result.orders[0]["qty"] == 1000 / 185.0
    assert not (tmp_path / "paper_state.json").exists()
    events = _journal_events(tmp_path)
    assert events[0] == "cycle_start"
    assert events[-1] == "cycle_end"
    assert "ai_decision" in events


def test_cycle_executes_on_paper_account(monkeypatch, tmp_path: Path) -> None:
    _patch_collaborators(monkeypatch, OPEN_SOL)

    result = run_trading_cycle(_settings(tmp_path), dry_run=False)

    assert result.status == "executed"
    assert result.warnings == []
    state = json.loads((tmp_path / "paper_state.json").read_text(encoding="utf-8"))
    position = state["positions"]["SOLUSDT:long"]
    assert position["leverage"] == 10
    assert position["stop_loss"] == 170
    assert position["take_profit"] == 200


def test_cycle_then_close_feeds_performance(monkeypatch, tmp_path: Path) -> None:
    _patch_collaborators(monkeypatch, OPEN_SOL)
    run_trading_cycle(_settings(tmp_path), dry_run=False)

    _patch_collaborators(monkeypatch, 'Take profit.\n[{"symbol": "SOLUSDT", "action": "close_long"}]')
    result = run_trading_cycle(_settings(tmp_path), dry_run=False, call_count=2)

    assert result.status == "executed"
    close = result.orders[0]
    assert close["action"] == "close_long"
    assert close["status"] == "filled"
    assert "realized_pnl" in close
    performance = load_performance(JournalStore(tmp_path))
    assert performance is not None
    assert performance.total_trades == 1


def test_cycle_hold_only_is_no_action(monkeypatch, tmp_path: Path) -> None:
    _patch_collaborators(monkeypatch, 'Wait.\n[{"symbol": "BTCUSDT", "action": "wait"}]')

    result = run_trading_cycle(_settings(tmp_path), dry_run=False)

    assert result.status == "no_action"
    assert result.orders == []


def test_cycle_reports_ai_unavailable(monkeypatch, tmp_path: Path) -> None:
    _patch_collaborators(monkeypatch, AITransientError("ConnectError"))

    result = run_trading_cycle(_settings(tmp_path), dry_run=True)

    assert result.status == "ai_unavailable"
    assert "ai_unavailable" in result.warnings
    assert result.orders == []
    assert result.error == "ConnectError"


def test_cycle_guard_turns_crash_into_failed(monkeypatch, tmp_path: Path) -> None:
    from ai_futures import pipeline

    def _boom(settings: Settings) -> None:
        raise RuntimeError("exchange down")

    monkeypatch.setattr(pipeline, "BinanceMarketDataSource", _boom)

    result = run_trading_cycle(_settings(tmp_path), dry_run=True)

    assert result.status == "failed"
    assert result.error == "exchange down"
    assert "error" in _journal_events(tmp_path)


class _UnpricedSolDataSource(_FakeDataSource):
    def get_price(self, symbol: str) -> float:
        if symbol == "SOLUSDT":
            raise ConnectionError("ticker unavailable")
        return super().get_price(symbol)


def test_cycle_survives_held_symbol_price_failure(monkeypatch, tmp_path: Path) -> None:
    from ai_futures import pipeline

    _patch_collaborators(monkeypatch, OPEN_SOL)
    run_trading_cycle(_settings(tmp_path), dry_run=False)

    gateway = _FakeGateway('Hold.\n[{"symbol": "SOLUSDT", "action": "hold"}]')
    monkeypatch.setattr(pipeline, "BinanceMarketDataSource", _UnpricedSolDataSource)
    monkeypatch.setattr(pipeline, "AIGateway", lambda settings: gateway)
    result = run_trading_cycle(_settings(tmp_path), dry_run=False, call_count=2)

    assert result.status == "no_action"
    assert result.error is None
    assert "price_fetch_failed: SOLUSDT" in result.warnings
    assert len(gateway.prompts) == 1
    assert "SOLUSDT" in gateway.prompts[0][1]
    state = json.loads((tmp_path / "paper_state.json").read_text(encoding="utf-8"))
    assert "SOLUSDT:long" in state["positions"]
