"""
应用程序配置管理
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """应用程序设置"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # 应用配置
    APP_NAME: str = "CryptoWise Backtest"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # 数据存储配置
    DATA_ROOT_PATH: str = "./data"

    # 回测默认参数（KRW 计价）
    BACKTEST_INITIAL_CAPITAL: float = 10_000_000.0
    BACKTEST_BUY_CASH_RATIO: float = 0.10  # 每次买入使用现金比例
    BACKTEST_MAX_BUY_NOTIONAL: float = 1_000_000.0  # 单笔买入上限
    BACKTEST_SELL_RATIO: float = 0.80  # 每次卖出持仓比例
    SIGNAL_COOLDOWN_SECONDS: int = 300  # 同一币种信号冷却时间（按模拟时间计）

    # CoinGecko 历史数据配置
    COINGECKO_BASE_URL: str = "https://api.coingecko.com/api/v3"
    COINGECKO_TIMEOUT: float = 30.0
    COINGECKO_VS_CURRENCY: str = "usd"
    KRW_EXCHANGE_RATE: float = 1300.0  # USD -> KRW

    # 数据缓存配置
    DATA_CACHE_TTL_SECONDS: int = 300
    DATA_CACHE_MAX_ENTRIES: int = 64


settings = Settings()
