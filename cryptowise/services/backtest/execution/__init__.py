"""
回测执行模块

包含回测执行器、数据加载器和行情缓存
"""

from .backtest_executor import BacktestCallbacks, BacktestExecutor, CancellationToken
from .data_cache import TTLCache
from .data_loader import (
    CoinGeckoDataSource,
    DataLoader,
    HistoricalDataSource,
    InMemoryDataSource,
    SyntheticDataSource,
    merge_price_series,
)

__all__ = [
    "BacktestExecutor",
    "BacktestCallbacks",
    "CancellationToken",
    "DataLoader",
    "HistoricalDataSource",
    "InMemoryDataSource",
    "CoinGeckoDataSource",
    "SyntheticDataSource",
    "merge_price_series",
    "TTLCache",
]
