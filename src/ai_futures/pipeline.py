"""Decision cycle pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from time import perf_counter
from typing import Any, Literal

from ai_futures.ai.gateway import AIGateway, AIGatewayError
from ai_futures.ai.parser import MalformedResponseError, parse_ai_response
from ai_futures.ai.schemas import AIFullDecision
from ai_futures.config import Settings
from ai_futures.data.binance import BinanceMarketDataSource
from ai_futures.exec.paper import PaperTrader
from ai_futures.exec.trader import ExecutionOutcome, execute_decisions
from ai_futures.journal.performance import load_performance
from ai_futures.journal.store import JournalStore
from ai_futures.market.context import MarketContextAssembler
from ai_futures.market.oi_top import OITopClient
from ai_futures.market.sources import StaticCandidateScreener
from ai_futures.prompt.builder import PromptBuilder
from ai_futures.risk.validator import DecisionValidationError, DecisionValidator
from ai_futures.types import CycleResult, TradingContext
from ai_futures.utils.logging import (
    bind_cycle_context,
    clear_cycle_context,
    get_logger,
    log_risk_event,
    log_trade_decision,
)

OutcomeStatus = Literal["decided", "ai_unavailable", "malformed_response", "validation_failed"]


@dataclass(slots=True)
class DecisionOutcome:
    """What one pipeline run produced.

    ``decision`` always carries the prompts and whatever the model returned,
    so failed cycles can still be logged in full. Only ``decided`` outcomes
    may be executed.
    """

    status: OutcomeStatus
    decision: AIFullDecision
    error: str | None = None

    @property
    def executable(self) -> bool:
        return self.status == "decided"


class DecisionPipeline:
    """Context -> prompts -> completion -> parse -> validate."""

    def __init__(
        self,
        assembler: MarketContextAssembler,
        prompt_builder: PromptBuilder,
        gateway: AIGateway,
        validator: DecisionValidator,
    ) -> None:
        self._assembler = assembler
        self._prompt_builder = prompt_builder
        self._gateway = gateway
        self._validator = validator
        self._logger = get_logger("ai_futures.pipeline")

    def run(self, ctx: TradingContext) -> DecisionOutcome:
        self._assembler.assemble(ctx)
        system_prompt, user_prompt = self._prompt_builder.build(ctx)
        decision = AIFullDecision(system_prompt=system_prompt, user_prompt=user_prompt)

        try:
            decision.raw_response = self._gateway.complete(system_prompt, user_prompt)
        except AIGatewayError as exc:
            self._logger.warning("ai_unavailable", error=str(exc), cycle=ctx.call_count)
            return DecisionOutcome("ai_unavailable", decision, str(exc))

        try:
            trace, decisions = parse_ai_response(decision.raw_response)
        except MalformedResponseError as exc:
            decision.reasoning_trace = exc.reasoning_trace
            self._logger.warning(
                "ai_response_malformed",
                error=str(exc),
                fragment=exc.fragment[:500],
                cycle=ctx.call_count,
            )
            return DecisionOutcome("malformed_response", decision, str(exc))

        decision.reasoning_trace = trace
        decision.decisions = decisions

        try:
            self._validator.validate(decisions, ctx.account.total_equity)
        except DecisionValidationError as exc:
            log_risk_event(
                self._logger,
                event_type="decision_rejected",
                action="batch_discarded",
                index=exc.index,
                reason=exc.reason,
                batch_size=len(decisions),
            )
            return DecisionOutcome("validation_failed", decision, str(exc))

        return DecisionOutcome("decided", decision)


def run_trading_cycle(
    settings: Settings,
    dry_run: bool,
    *,
    call_count: int = 1,
    started_at: datetime | None = None,
) -> CycleResult:
    """Run one full trading cycle against the paper account."""
    logger = get_logger("ai_futures.pipeline")
    bind_cycle_context(cycle=call_count, dry_run=dry_run)
    started = perf_counter()
    now = datetime.now(timezone.utc)
    journal = JournalStore(settings.journal_dir)
    cycle_result = CycleResult(status="unknown")

    journal.append(
        "cycle_start",
        {
            "cycle": call_count,
            "provider": settings.ai_provider.value,
            "dry_run": dry_run,
            "started_at": now.isoformat(),
        },
    )

    try:
        data_source = BinanceMarketDataSource(settings)
        oi_source = OITopClient(settings.oi_top_api_url) if settings.oi_top_api_url else None
        trader = PaperTrader(
            settings.journal_dir,
            slippage_bps=settings.slippage_bps,
            initial_equity=settings.initial_equity,
            price_source=data_source.get_price,
        )

        held_symbols = sorted({position.symbol for position in trader.get_positions()})
        if held_symbols:
            prices: dict[str, float] = {}
            for symbol in held_symbols:
                try:
                    prices[symbol] = data_source.get_price(symbol)
                except Exception as exc:  # noqa: BLE001 - an unpriced position keeps its last mark.
                    logger.warning("price_fetch_failed", symbol=symbol, error=str(exc))
                    cycle_result.warnings.append(f"price_fetch_failed: {symbol}")
            trader.mark_to_market(prices)
            for order in trader.check_protective_orders(prices, dry_run=dry_run):
                cycle_result.orders.append(order)
                journal.append("order", order)

        account = trader.get_account()
        positions = trader.get_positions()
        journal.append(
            "account_snapshot",
            {**asdict(account), "positions": [asdict(position) for position in positions]},
        )

        screener = StaticCandidateScreener(
            settings.candidate_symbol_list,
            oi_source,
            max_candidates=settings.max_candidates,
        )
        candidates = screener.screen()
        journal.append("candidates", {"coins": [asdict(coin) for coin in candidates]})

        ctx = TradingContext(
            current_time=now.strftime("%Y-%m-%d %H:%M:%S UTC"),
            call_count=call_count,
            runtime_minutes=_runtime_minutes(started_at, now),
            account=account,
            positions=positions,
            candidate_coins=candidates,
            performance=load_performance(journal),
        )
        pipeline = DecisionPipeline(
            MarketContextAssembler(
                data_source,
                oi_source,
                min_open_interest_usd=settings.min_open_interest_usd,
                max_workers=settings.market_fetch_workers,
            ),
            PromptBuilder(),
            AIGateway(settings),
            DecisionValidator(),
        )
        outcome = pipeline.run(ctx)

        journal.append(
            "market_data",
            {
                "symbols": list(ctx.market_data),
                "prices": {symbol: data.current_price for symbol, data in ctx.market_data.items()},
                "oi_top_symbols": sorted(ctx.oi_top_data),
            },
        )
        decision = outcome.decision
        cycle_result.reasoning_trace = decision.reasoning_trace
        cycle_result.decisions = [item.model_dump() for item in decision.decisions]
        journal.append(
            "ai_decision",
            {
                **decision.model_dump(mode="json"),
                "status": outcome.status,
                "error": outcome.error,
            },
        )
        for item in decision.decisions:
            log_trade_decision(
                logger,
                symbol=item.symbol,
                action=item.action,
                confidence=item.confidence,
                executable=outcome.executable,
            )

        if not outcome.executable:
            cycle_result.error = outcome.error
            cycle_result.warnings.append(outcome.status)
            return _finish_cycle(cycle_result, journal, started, status=outcome.status)

        executions = execute_decisions(trader, decision.decisions, ctx.market_data, dry_run)
        for execution in executions:
            if execution.status == "skipped":
                continue
            record = _order_record(execution)
            cycle_result.orders.append(record)
            journal.append("order", record)
            if execution.status == "failed":
                cycle_result.warnings.append(f"order_failed: {execution.symbol} {execution.action}")
            cycle_result.warnings.extend(execution.warnings)

        if not any(execution.status != "skipped" for execution in executions):
            return _finish_cycle(cycle_result, journal, started, status="no_action")
        return _finish_cycle(
            cycle_result,
            journal,
            started,
            status="executed_dry_run" if dry_run else "executed",
        )

    except Exception as exc:  # noqa: BLE001 - top-level guard for loop resilience.
        logger.exception("pipeline_failed", error=str(exc))
        journal.append("error", {"error": str(exc)})
        cycle_result.error = str(exc)
        return _finish_cycle(cycle_result, journal, started, status="failed")


def _order_record(execution: ExecutionOutcome) -> dict[str, Any]:
    record: dict[str, Any] = {"symbol": execution.symbol, "action": execution.action}
    record.update(execution.order or {})
    record["status"] = execution.status
    if execution.error is not None:
        record["error"] = execution.error
    if execution.warnings:
        record["warnings"] = list(execution.warnings)
    return record


def _runtime_minutes(started_at: datetime | None, now: datetime) -> int:
    if started_at is None:
        return 0
    return max(0, int((now - started_at).total_seconds() // 60))


def _finish_cycle(
    result: CycleResult,
    journal: JournalStore,
    started: float,
    *,
    status: str,
) -> CycleResult:
    elapsed_ms = (perf_counter() - started) * 1000
    result.status = status
    result.elapsed_ms = elapsed_ms
    journal.append("cycle_end", {"status": status, "elapsed_ms": elapsed_ms, "error": result.error})
    get_logger("ai_futures.pipeline").info("cycle_finished", status=status, elapsed_ms=round(elapsed_ms, 2))
    clear_cycle_context()
    return result
