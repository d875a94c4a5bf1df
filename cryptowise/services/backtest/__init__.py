"""
回测引擎模块

模块结构：
- models: 行情、信号、交易等数据模型
- strategies: 技术指标和信号策略
- core: 策略基类和组合管理器
- execution: 数据加载和回测执行器
- analysis: 绩效指标计算
"""

from .analysis import MetricsCalculator, match_trade_pairs, summarize_trade_pairs
from .core import BaseStrategy, PortfolioManager, SignalEvaluation
from .execution import (
    BacktestCallbacks,
    BacktestExecutor,
    CancellationToken,
    CoinGeckoDataSource,
    DataLoader,
    InMemoryDataSource,
    SyntheticDataSource,
    TTLCache,
)
from .models import (
    BacktestConfig,
    BacktestResult,
    BacktestStatus,
    PricePoint,
    SignalType,
    Trade,
    TradeAction,
    TradePair,
    TradingSignal,
)
from .strategies.strategy_factory import StrategyFactory

__all__ = [
    # 数据模型
    "BacktestConfig",
    "BacktestResult",
    "BacktestStatus",
    "PricePoint",
    "SignalType",
    "Trade",
    "TradeAction",
    "TradePair",
    "TradingSignal",
    # 策略与组合
    "BaseStrategy",
    "SignalEvaluation",
    "StrategyFactory",
    "PortfolioManager",
    # 执行
    "BacktestExecutor",
    "BacktestCallbacks",
    "CancellationToken",
    "DataLoader",
    "InMemoryDataSource",
    "CoinGeckoDataSource",
    "SyntheticDataSource",
    "TTLCache",
    # 分析
    "MetricsCalculator",
    "match_trade_pairs",
    "summarize_trade_pairs",
]
