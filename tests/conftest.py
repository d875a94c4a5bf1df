"""
Pytest配置
"""

from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence

import pytest

from cryptowise.services.backtest.models import BacktestConfig, PricePoint

START_DATE = datetime(2024, 1, 1)


def build_series(
    symbol: str,
    prices: Sequence[float],
    start: datetime = START_DATE,
    volumes: Optional[Sequence[float]] = None,
    step: timedelta = timedelta(days=1),
) -> List[PricePoint]:
    """按固定间隔生成单个币种的行情序列"""
    return [
        PricePoint(
            symbol=symbol,
            timestamp=start + step * i,
            price=float(price),
            volume=float(volumes[i]) if volumes is not None else 1000.0,
        )
        for i, price in enumerate(prices)
    ]


@pytest.fixture
def series_factory() -> Callable[..., List[PricePoint]]:
    return build_series


@pytest.fixture
def backtest_config() -> BacktestConfig:
    """默认回测配置：初始资金 1000 万 KRW，关闭冷却"""
    return BacktestConfig(
        start_date=START_DATE,
        end_date=START_DATE + timedelta(days=365),
        symbols=["BTC"],
        initial_capital=10_000_000.0,
        buy_cash_ratio=0.10,
        max_buy_notional=1_000_000.0,
        sell_ratio=0.80,
        signal_cooldown_seconds=0,
    )
