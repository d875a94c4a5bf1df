"""
回测核心模块

包含策略基类和组合管理器
"""

from .base_strategy import BaseStrategy, SignalEvaluation
from .portfolio_manager import PortfolioManager

__all__ = [
    "BaseStrategy",
    "SignalEvaluation",
    "PortfolioManager",
]
