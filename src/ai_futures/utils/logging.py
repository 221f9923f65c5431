"""结构化日志配置模块。

基于 structlog，控制台或 JSON 输出；周期上下文通过 contextvars 绑定到每条日志。
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor

from ai_futures.config import LogFormat, Settings, get_settings

# 第三方库在 DEBUG 下过于嘈杂
_NOISY_LOGGERS = ("httpx", "httpcore", "urllib3", "binance")


def setup_logging(settings: Settings | None = None) -> None:
    """配置结构化日志系统，未传入配置时使用全局配置。"""
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    structlog.configure(
        processors=[*_shared_processors(), *_render_processors(settings.log_format)],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _render_processors(log_format: LogFormat) -> list[Processor]:
    if log_format == LogFormat.JSON:
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer(ensure_ascii=False)]
    return [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """获取结构化日志记录器。"""
    return structlog.get_logger(name)


def bind_cycle_context(*, cycle: int, dry_run: bool) -> None:
    """把周期编号绑定到当前线程之后的所有日志。"""
    structlog.contextvars.bind_contextvars(cycle=cycle, dry_run=dry_run)


def clear_cycle_context() -> None:
    structlog.contextvars.unbind_contextvars("cycle", "dry_run")


def log_trade_decision(
    logger: structlog.stdlib.BoundLogger,
    *,
    symbol: str,
    action: str,
    confidence: int | None,
    executable: bool,
) -> None:
    """记录模型给出的单条决策（是否可执行取决于整批校验结果）。"""
    logger.info(
        "trade_decision",
        symbol=symbol,
        action=action,
        confidence=confidence,
        executable=executable,
    )


def log_llm_call(
    logger: structlog.stdlib.BoundLogger,
    *,
    provider: str,
    model: str,
    success: bool,
    latency_ms: float,
    **kwargs: Any,
) -> None:
    """记录一次完整的 LLM 调用（含重试）。失败记为 warning。"""
    emit = logger.info if success else logger.warning
    emit(
        "llm_call",
        provider=provider,
        model=model,
        success=success,
        latency_ms=round(latency_ms, 2),
        **kwargs,
    )


def log_order_execution(
    logger: structlog.stdlib.BoundLogger,
    *,
    symbol: str,
    action: str,
    status: str,
    quantity: float,
    price: float | None = None,
) -> None:
    logger.info(
        "order_execution",
        symbol=symbol,
        action=action,
        status=status,
        quantity=quantity,
        price=price,
    )


def log_risk_event(
    logger: structlog.stdlib.BoundLogger,
    *,
    event_type: str,
    action: str,
    **kwargs: Any,
) -> None:
    """记录风控拦截事件。"""
    logger.warning("risk_event", event_type=event_type, action=action, **kwargs)
