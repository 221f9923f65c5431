"""System and user prompt rendering for one decision cycle."""

from __future__ import annotations

from ai_futures.market.sources import SOURCE_OI_TOP, SOURCE_POOL
from ai_futures.prompt.feedback import AdaptiveFeedbackEngine, interpret_sharpe, sharpe_band_table
from ai_futures.prompt.formatting import format_market_brief
from ai_futures.types import CandidateCoin, PerformanceSummary, PositionInfo, TradingContext

MAX_POSITIONS = 3
MAX_MARGIN_USAGE_PCT = 90
MIN_REWARD_RISK = 2
BTC_SYMBOL = "BTCUSDT"
RECENT_TRADES_SHOWN = 5

_SOURCE_LABELS = {
    SOURCE_POOL: "pool",
    SOURCE_OI_TOP: "OI-top growth",
}


class PromptBuilder:
    """Render ``(system_prompt, user_prompt)`` from a trading context.

    Output depends only on the context: the clock is read from
    ``ctx.current_time``, so identical contexts give identical prompts.
    """

    def __init__(self, feedback_engine: AdaptiveFeedbackEngine | None = None) -> None:
        self._feedback = feedback_engine or AdaptiveFeedbackEngine()

    def build(self, ctx: TradingContext) -> tuple[str, str]:
        return self.build_system_prompt(ctx.account.total_equity), self.build_user_prompt(ctx)

    def build_system_prompt(self, equity: float) -> str:
        lines = [
            "You are a professional cryptocurrency trading AI operating autonomously on "
            "Binance USDT-margined perpetual futures.",
            "",
            "**Mission**: maximize risk-adjusted return (Sharpe ratio).",
            "",
            "## Performance feedback loop",
            "Every cycle you receive your cycle-level Sharpe ratio as your performance metric.",
            "",
            "**Sharpe ratio interpretation**:",
        ]
        lines.extend(f"- {band}: {label}" for band, label in sharpe_band_table())
        lines += [
            "",
            "**Key requirement**: follow the adaptive risk posture in the performance section "
            "and adjust to the Sharpe ratio:",
            "- position size (smaller when the Sharpe ratio is low)",
            "- stop-loss distance (tighter when the Sharpe ratio is low)",
            "- entry bar (higher confidence required when the Sharpe ratio is low)",
            "- number of positions (fewer when the Sharpe ratio is low)",
            "",
            "## Position management",
            f"- Hold at most **{MAX_POSITIONS} positions** at once (quality over quantity)",
            (
                f"- Altcoins: {equity * 0.8:.0f}-{equity * 1.5:.0f} USDT per position "
                f"(recommended {equity * 1.2:.0f}), leverage up to 20x"
            ),
            (
                f"- BTC/ETH: {equity * 3:.0f}-{equity * 10:.0f} USDT per position "
                f"(recommended {equity * 5:.0f}), leverage up to 50x"
            ),
            f"- Total margin usage <= {MAX_MARGIN_USAGE_PCT}%",
            f"- Reward:risk >= 1:{MIN_REWARD_RISK}",
            "",
            "## Decision workflow",
            "1. **Check the Sharpe ratio** in the performance feedback to judge how the strategy is doing",
            "2. **Apply the adaptive posture**: its size, stop-loss and entry bar override the defaults",
            "3. **Reflect**: review recent trades and what could be improved",
            "4. **Review positions**: close or hold each one",
            "5. **Look for opportunities** among the candidates using the adjusted standards",
            "6. **Decide**: use the adjusted position size and risk parameters",
            "",
            "## Output format",
            "",
            "**First write your reasoning as plain text, then output one JSON array.**",
            "",
            "Example:",
            "```json",
            "[",
            (
                '  {"symbol": "BTCUSDT", "action": "open_long", "leverage": 50, '
                f'"position_size_usd": {equity * 5:.0f}, "stop_loss": 92000, "take_profit": 98000, '
                '"confidence": 85, "risk_usd": 200, "reasoning": "breakout with strong momentum"},'
            ),
            '  {"symbol": "ETHUSDT", "action": "close_long", "reasoning": "take profit"}',
            "]",
            "```",
            "",
            "**Fields**:",
            "- `action`: open_long | open_short | close_long | close_short | hold | wait",
            "- `confidence`: 0-100 (always required, even when unsure)",
            "- `risk_usd`: maximum dollar risk = |entry_price - stop_loss| x quantity",
            "- Required when opening: leverage, position_size_usd, stop_loss, take_profit, confidence, risk_usd",
            "- Long: stop_loss < take_profit. Short: stop_loss > take_profit.",
            "",
            "**Tip**: confirm the trend before trusting an indicator signal; do not rely on a single indicator.",
        ]
        return "\n".join(lines) + "\n"

    def build_user_prompt(self, ctx: TradingContext) -> str:
        sections = [
            f"**Time**: {ctx.current_time} | **Cycle**: #{ctx.call_count} | **Runtime**: {ctx.runtime_minutes} min",
            self._btc_section(ctx),
            self._account_section(ctx),
            self._positions_section(ctx),
            self._candidates_section(ctx),
            self._performance_section(ctx),
            "---\n\nNow analyze the market and output your decisions (reasoning, then the JSON array).",
        ]
        return "\n\n".join(section.rstrip("\n") for section in sections) + "\n"

    @staticmethod
    def _btc_section(ctx: TradingContext) -> str:
        btc = ctx.market_data.get(BTC_SYMBOL)
        if btc is None:
            return "## BTC market\nBTC market data unavailable this cycle."
        return "## BTC market\n" + format_market_brief(btc, indent="")

    @staticmethod
    def _account_section(ctx: TradingContext) -> str:
        account = ctx.account
        available_pct = (
            account.available_balance / account.total_equity * 100 if account.total_equity > 0 else 0.0
        )
        return (
            "## Account\n"
            f"Equity {account.total_equity:.2f} | Available {account.available_balance:.2f} "
            f"({available_pct:.1f}%) | P&L {account.total_pnl_pct:+.2f}% | "
            f"Margin used {account.margin_used_pct:.1f}% | Positions {account.position_count}"
        )

    def _positions_section(self, ctx: TradingContext) -> str:
        if not ctx.positions:
            return "## Current positions\nnone (no open positions)"
        blocks = ["## Current positions"]
        for index, position in enumerate(ctx.positions, start=1):
            blocks.append(self._position_block(index, position, ctx))
        return "\n".join(blocks)

    @staticmethod
    def _position_block(index: int, position: PositionInfo, ctx: TradingContext) -> str:
        header = (
            f"{index}. {position.symbol} {position.side.upper()} | "
            f"entry {position.entry_price:.4f} -> mark {position.mark_price:.4f} | "
            f"P&L {position.unrealized_pnl_pct:+.2f}% ({position.unrealized_pnl:+.2f} USDT) | "
            f"leverage {position.leverage}x | margin {position.margin_used:.2f} | "
            f"liquidation {position.liquidation_price:.4f}"
        )
        snapshot = ctx.market_data.get(position.symbol)
        if snapshot is None:
            return header + "\n  - market data unavailable this cycle"
        return header + "\n" + format_market_brief(snapshot)

    def _candidates_section(self, ctx: TradingContext) -> str:
        shown = [coin for coin in ctx.candidate_coins if coin.symbol in ctx.market_data]
        if not shown:
            return "## Candidate coins (0)\nNo candidate passed screening and the liquidity filter this cycle."
        blocks = [f"## Candidate coins ({len(shown)}, open interest value >= liquidity threshold)"]
        for index, coin in enumerate(shown, start=1):
            blocks.append(f"\n### #{index} {coin.symbol} {source_tag(coin)}".rstrip())
            blocks.append(format_market_brief(ctx.market_data[coin.symbol]))
            oi_top = ctx.oi_top_data.get(coin.symbol)
            if oi_top is not None:
                blocks.append(
                    f"  - OI-top rank #{oi_top.rank}: open interest 1h {oi_top.oi_delta_percent:+.2f}% "
                    f"(value {oi_top.oi_delta_value:.0f} USD) | price 1h {oi_top.price_delta_percent:+.2f}% | "
                    f"net long {oi_top.net_long:.0f} | net short {oi_top.net_short:.0f}"
                )
        return "\n".join(blocks)

    def _performance_section(self, ctx: TradingContext) -> str:
        perf = ctx.performance
        if perf is None:
            return "## Performance feedback\nNo performance history yet; use the default position rules."

        lines = [
            "## Performance feedback",
            f"**Sharpe ratio**: {perf.sharpe_ratio:.2f} ({interpret_sharpe(perf.sharpe_ratio)})",
            "",
        ]
        lines.extend(_trade_stats_lines(perf))
        posture = self._feedback.recommend(perf.sharpe_ratio, ctx.account.total_equity)
        lines.append(self._feedback.render(posture))
        return "\n".join(lines)


def source_tag(coin: CandidateCoin) -> str:
    """Provenance tag for a candidate, e.g. ``(dual-signal: pool + OI-top growth)``."""
    labels = [_SOURCE_LABELS.get(source, source) for source in dict.fromkeys(coin.sources)]
    if not labels:
        return ""
    if coin.is_dual_signal:
        return f"(dual-signal: {' + '.join(labels)})"
    return f"({labels[0]})"


def _trade_stats_lines(perf: PerformanceSummary) -> list[str]:
    lines: list[str] = []
    if perf.total_trades == 0:
        lines += ["No completed trades yet (Sharpe ratio computed from equity changes only).", ""]
    else:
        lines += [
            "### Overall",
            f"- Trades: {perf.total_trades} (wins {perf.winning_trades} | losses {perf.losing_trades})",
            f"- Win rate: {perf.win_rate:.1f}%",
            f"- Average win: {perf.avg_win:+.2f}% | average loss: {perf.avg_loss:.2f}%",
        ]
        if perf.profit_factor > 0:
            lines.append(f"- Profit factor: {perf.profit_factor:.2f}:1")
        lines.append("")

    if perf.recent_trades:
        lines.append("### Recent trades")
        for index, trade in enumerate(perf.recent_trades[:RECENT_TRADES_SHOWN], start=1):
            outcome = "✗" if trade.pnl < 0 else "✓"
            lines.append(
                f"{index}. {trade.symbol} {trade.side.upper()}: {trade.open_price:.4f} -> "
                f"{trade.close_price:.4f} = {trade.pnl_pct:+.2f}% {outcome}"
            )
        lines.append("")

    best = perf.symbol_stats.get(perf.best_symbol) if perf.best_symbol else None
    worst = perf.symbol_stats.get(perf.worst_symbol) if perf.worst_symbol else None
    if best is not None or worst is not None:
        lines.append("### By symbol")
        if best is not None:
            lines.append(f"- Best: {best.symbol} (win rate {best.win_rate:.0f}%, average {best.avg_pnl:+.2f}%)")
        if worst is not None:
            lines.append(f"- Worst: {worst.symbol} (win rate {worst.win_rate:.0f}%, average {worst.avg_pnl:+.2f}%)")
        lines.append("")
    return lines
