"""
分析模块

提供回测结果的绩效指标计算
"""

from .metrics_calculator import (
    MetricsCalculator,
    match_trade_pairs,
    summarize_trade_pairs,
)

__all__ = [
    "MetricsCalculator",
    "match_trade_pairs",
    "summarize_trade_pairs",
]
