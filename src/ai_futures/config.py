"""配置加载模块 - 从环境变量和 .env 文件加载配置。"""

from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AIProvider(str, Enum):
    """AI 提供商枚举。"""

    DEEPSEEK = "deepseek"
    QWEN = "qwen"
    OPENROUTER = "openrouter"
    CUSTOM = "custom"  # 自定义 OpenAI 兼容端点


class LogFormat(str, Enum):
    """日志格式枚举。"""

    JSON = "json"
    CONSOLE = "console"


class Settings(BaseSettings):
    """系统配置设置。

    从环境变量和 .env 文件加载配置。启动时构造一次，显式传入各组件。
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==================== AI 提供商 ====================
    ai_provider: AIProvider = Field(default=AIProvider.DEEPSEEK, description="AI 提供商")
    ai_api_key: str = Field(default="", description="AI API Key")
    ai_model: str = Field(default="", description="模型名称，留空使用提供商默认值")
    ai_base_url: str = Field(default="", description="API 基础地址，留空使用提供商默认值")
    ai_timeout: float = Field(
        default=120.0,
        ge=10.0,
        le=600.0,
        description="单次 LLM 调用超时（秒），完整市场上下文通常超过一分钟",
    )
    ai_max_attempts: int = Field(default=3, ge=1, le=10, description="LLM 调用最大尝试次数")
    ai_retry_backoff_seconds: float = Field(
        default=2.0,
        ge=0.0,
        le=60.0,
        description="重试线性退避步长（秒）",
    )
    ai_temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="采样温度")
    ai_max_tokens: int = Field(default=4000, ge=256, le=32000, description="最大输出 token 数")

    # ==================== Binance 行情 ====================
    binance_api_key: str = Field(default="", description="Binance API Key（行情只读可留空）")
    binance_api_secret: str = Field(default="", description="Binance API Secret")
    binance_testnet: bool = Field(default=False, description="是否使用 Binance 测试网")

    # ==================== 市场上下文 ====================
    min_open_interest_usd: float = Field(
        default=15_000_000.0,
        ge=0.0,
        description="候选币种最低持仓价值（USD），低于该值视为流动性不足",
    )
    market_fetch_workers: int = Field(default=8, ge=1, le=32, description="行情并发拉取上限")
    candidate_symbols: str = Field(
        default="BTCUSDT,ETHUSDT,SOLUSDT,BNBUSDT,XRPUSDT,DOGEUSDT,ADAUSDT,HYPEUSDT",
        description="默认候选币种池（逗号分隔）",
    )
    max_candidates: int = Field(default=20, ge=1, le=100, description="候选币种数量上限")
    oi_top_api_url: str = Field(default="", description="OI Top 持仓增长榜 API 地址")

    # ==================== 纸交易账户 ====================
    initial_equity: float = Field(default=10_000.0, gt=0.0, description="纸交易初始净值（USDT）")
    slippage_bps: float = Field(default=2.0, ge=0.0, le=100.0, description="模拟滑点（基点）")

    # ==================== 循环调度 ====================
    scan_interval_minutes: int = Field(default=3, ge=1, le=60, description="决策循环间隔（分钟）")

    # ==================== 日志配置 ====================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="日志级别",
    )
    log_format: LogFormat = Field(
        default=LogFormat.CONSOLE,
        description="日志输出格式",
    )

    # ==================== 数据存储 ====================
    journal_dir: Path = Field(
        default=Path("data/journal"),
        description="决策日志存储目录",
    )

    @field_validator("journal_dir", mode="before")
    @classmethod
    def parse_journal_dir(cls, v: str | Path) -> Path:
        """将字符串转换为 Path 对象。"""
        return Path(v) if isinstance(v, str) else v

    @field_validator("ai_base_url", mode="before")
    @classmethod
    def strip_base_url(cls, v: str) -> str:
        """去掉结尾的斜杠。"""
        return v.strip().rstrip("/") if isinstance(v, str) else v

    def ensure_directories(self) -> None:
        """确保必要的目录存在。"""
        self.journal_dir.mkdir(parents=True, exist_ok=True)

    @property
    def candidate_symbol_list(self) -> list[str]:
        """解析后的候选币种列表（大写、去重、保持顺序）。"""
        symbols: list[str] = []
        for raw in self.candidate_symbols.split(","):
            symbol = raw.strip().upper()
            if symbol and symbol not in symbols:
                symbols.append(symbol)
        return symbols

    def validate_for_run(self) -> list[str]:
        """验证运行所需配置，返回缺失项列表。"""
        missing = []
        if not self.ai_api_key and self.ai_provider != AIProvider.CUSTOM:
            missing.append("AI_API_KEY")
        if self.ai_provider == AIProvider.CUSTOM:
            if not self.ai_base_url:
                missing.append("AI_BASE_URL")
            if not self.ai_model:
                missing.append("AI_MODEL")
        return missing


# 全局配置实例（延迟初始化）
_settings: Settings | None = None


def get_settings() -> Settings:
    """获取全局配置实例。"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """重新加载配置。"""
    global _settings
    _settings = Settings()
    return _settings
