"""CLI 入口模块 - AI Futures Trader 命令行接口。"""

import sys
import time
from datetime import datetime, timezone
from importlib.util import find_spec
from pathlib import Path

import click
import structlog

from ai_futures import __version__
from ai_futures.ai.providers import ProviderConfigError, resolve_provider
from ai_futures.config import Settings, get_settings
from ai_futures.journal.performance import load_performance
from ai_futures.journal.store import JournalStore
from ai_futures.pipeline import run_trading_cycle
from ai_futures.prompt.feedback import interpret_sharpe
from ai_futures.types import CycleResult
from ai_futures.utils.logging import get_logger, setup_logging

# (导入名, 用途)
_REQUIRED_PACKAGES = (
    ("pydantic", "decision schemas"),
    ("pydantic_settings", "environment settings"),
    ("httpx", "LLM and OI-top HTTP client"),
    ("tenacity", "LLM retry policy"),
    ("binance", "Binance futures market data"),
    ("pandas", "kline frames"),
    ("numpy", "indicator math"),
    ("structlog", "structured logging"),
    ("click", "command line"),
)

dry_run_option = click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="试运行模式，只生成决策不下单",
)


@click.group(invoke_without_command=True)
@click.option("--version", "-v", is_flag=True, help="显示版本号")
@click.pass_context
def cli(ctx: click.Context, version: bool) -> None:
    """AI Futures Trader - LLM 驱动的加密货币合约决策系统。

    每个周期汇总行情与账户上下文，调用大模型生成决策，经风控校验后执行。
    """
    if version:
        click.echo(f"ai-futures version {__version__}")
        return

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


def _bootstrap() -> tuple[Settings, structlog.stdlib.BoundLogger]:
    """加载配置、初始化日志与目录；缺少 AI 配置时以状态码 1 退出。"""
    settings = get_settings()
    setup_logging(settings)
    logger = get_logger("ai_futures.main")
    settings.ensure_directories()

    missing = settings.validate_for_run()
    if missing:
        logger.error("missing_required_config", missing_keys=missing, hint="请在 .env 文件中配置 AI 提供商参数")
        sys.exit(1)
    return settings, logger


def _summary(result: CycleResult) -> dict[str, object]:
    return {
        "status": result.status,
        "elapsed_ms": round(result.elapsed_ms, 2),
        "decisions": len(result.decisions),
        "orders": len(result.orders),
        "warnings": result.warnings,
    }


@cli.command()
@dry_run_option
def once(dry_run: bool) -> None:
    """执行单次决策循环。

    汇总上下文 → 构建提示词 → AI 决策 → 解析校验 → 执行/记录
    """
    settings, logger = _bootstrap()
    logger.info("starting_single_run", provider=settings.ai_provider.value, dry_run=dry_run)

    try:
        result = run_trading_cycle(settings, dry_run=dry_run)
    except KeyboardInterrupt:
        logger.info("run_interrupted")
        sys.exit(0)

    logger.info("run_completed", **_summary(result))
    if result.status == "failed":
        sys.exit(1)


@cli.command()
@click.option(
    "--interval-min",
    "-i",
    type=click.IntRange(min=1),
    default=None,
    help="循环间隔（分钟），默认读取 SCAN_INTERVAL_MINUTES",
)
@dry_run_option
def loop(interval_min: int | None, dry_run: bool) -> None:
    """按固定间隔循环执行决策周期，Ctrl+C 停止。

    同一时刻只运行一个周期；周期耗时超过间隔时，下一周期立即开始。
    """
    settings, logger = _bootstrap()
    interval_sec = (interval_min or settings.scan_interval_minutes) * 60
    started_at = datetime.now(timezone.utc)
    logger.info(
        "starting_loop",
        provider=settings.ai_provider.value,
        interval_sec=interval_sec,
        dry_run=dry_run,
    )

    cycle = 0
    try:
        while True:
            cycle += 1
            tick = time.monotonic()
            # run_trading_cycle 自带兜底，失败周期只记录不退出
            result = run_trading_cycle(settings, dry_run=dry_run, call_count=cycle, started_at=started_at)
            logger.info("loop_cycle_completed", cycle=cycle, **_summary(result))
            time.sleep(max(0.0, interval_sec - (time.monotonic() - tick)))
    except KeyboardInterrupt:
        logger.info("loop_stopped", total_cycles=cycle)


def _section(title: str, rows: list[tuple[str, object]]) -> None:
    click.echo(f"[{title}]")
    for label, value in rows:
        click.echo(f"   {label}: {value}")
    click.echo()


@cli.command()
def status() -> None:
    """显示配置摘要、纸交易账户与历史夏普比率。"""
    settings = get_settings()
    setup_logging(settings)

    click.echo("=" * 50)
    click.echo("AI Futures Trader - Status")
    click.echo("=" * 50)
    click.echo()

    try:
        provider = resolve_provider(settings)
        endpoint, model = provider.completions_url, provider.model_name
    except ProviderConfigError as exc:
        endpoint, model = f"[ERROR] {exc}", "-"
    _section(
        "AI Provider",
        [
            ("Provider", settings.ai_provider.value),
            ("Endpoint", endpoint),
            ("Model", model),
            ("API key", "[OK] Configured" if settings.ai_api_key else "[--] Not configured"),
            ("Timeout", f"{settings.ai_timeout:.0f}s, attempts: {settings.ai_max_attempts}"),
        ],
    )
    _section(
        "Market Data",
        [
            ("Binance Testnet", "Yes" if settings.binance_testnet else "No"),
            ("Candidate pool", ", ".join(settings.candidate_symbol_list)),
            ("OI top source", settings.oi_top_api_url or "(disabled)"),
            ("Min open interest", f"{settings.min_open_interest_usd / 1_000_000:.1f}M USD"),
        ],
    )

    account_rows: list[tuple[str, object]] = [
        ("Initial equity", f"{settings.initial_equity:.2f} USDT"),
        ("Slippage", f"{settings.slippage_bps} bps"),
    ]
    performance = load_performance(JournalStore(settings.journal_dir)) if settings.journal_dir.exists() else None
    if performance is None:
        account_rows.append(("Sharpe ratio", "(not enough history)"))
    else:
        account_rows += [
            ("Sharpe ratio", f"{performance.sharpe_ratio:.2f} ({interpret_sharpe(performance.sharpe_ratio)})"),
            ("Closed trades", performance.total_trades),
        ]
    _section("Paper Account", account_rows)
    _section(
        "Logging",
        [
            ("Log level", settings.log_level),
            ("Log format", settings.log_format.value),
            ("Journal dir", settings.journal_dir),
        ],
    )

    missing = settings.validate_for_run()
    if missing:
        click.echo("[ERROR] Configuration incomplete, missing:")
        for key in missing:
            click.echo(f"   - {key}")
    else:
        click.echo("[OK] Configuration complete")
    click.echo()
    click.echo("=" * 50)


@cli.command()
def check() -> None:
    """检查依赖包与 .env 配置文件。"""
    setup_logging()
    logger = get_logger("ai_futures.main")

    click.echo("Checking system dependencies...")
    click.echo()
    missing = [name for name, _ in _REQUIRED_PACKAGES if find_spec(name) is None]
    for name, purpose in _REQUIRED_PACKAGES:
        mark = "[MISSING]" if name in missing else "[OK]"
        click.echo(f"  {mark} {name} - {purpose}")
    click.echo()

    if Path(".env").exists():
        click.echo("  [OK] .env configuration file exists")
    else:
        click.echo("  [WARN] .env file not found (using defaults)")
    click.echo()

    if missing:
        click.echo("[ERROR] Some dependencies missing. Run: pip install -e .")
    else:
        click.echo("[OK] All dependency checks passed")
    logger.info("dependency_check_completed", missing=missing)


# 支持 python -m ai_futures.main 调用
if __name__ == "__main__":
    cli()
