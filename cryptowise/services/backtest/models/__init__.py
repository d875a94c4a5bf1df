"""
数据模型模块

包含所有回测相关的数据模型和枚举类型
"""

from .data_models import (
    BacktestConfig,
    BacktestResult,
    BollingerBandsResult,
    EquityPoint,
    ExecutionResult,
    Holding,
    IndicatorSnapshot,
    MACDResult,
    PricePoint,
    RSIResult,
    Trade,
    TradePair,
    TradingSignal,
    VolumeOscillatorResult,
)
from .enums import (
    BacktestStatus,
    BandPosition,
    MACDCross,
    Recommendation,
    SignalType,
    TradeAction,
)

__all__ = [
    # 枚举类型
    "SignalType",
    "TradeAction",
    "Recommendation",
    "MACDCross",
    "BandPosition",
    "BacktestStatus",
    # 行情与指标
    "PricePoint",
    "RSIResult",
    "MACDResult",
    "BollingerBandsResult",
    "VolumeOscillatorResult",
    "IndicatorSnapshot",
    # 信号、持仓与交易
    "TradingSignal",
    "Holding",
    "Trade",
    "TradePair",
    "ExecutionResult",
    "EquityPoint",
    # 配置与结果
    "BacktestConfig",
    "BacktestResult",
]
