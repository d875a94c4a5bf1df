"""
策略工厂

负责按名称创建信号策略实例
"""

from typing import Any, Dict, List, Optional

from cryptowise.core.error_handler import ErrorSeverity, ValidationError

from ..core.base_strategy import BaseStrategy
from .technical.signal_generator import RSIThresholdSignalGenerator, SignalGenerator


class StrategyFactory:
    """策略工厂"""

    _strategies = {
        "composite": SignalGenerator,
        "rsi": RSIThresholdSignalGenerator,
    }

    @classmethod
    def create_strategy(
        cls, strategy_name: str, config: Optional[Dict[str, Any]] = None
    ) -> BaseStrategy:
        """
        创建策略实例

        Args:
            strategy_name: 策略名称（不区分大小写）
            config: 策略配置

        Returns:
            策略实例
        """
        strategy_class = cls._strategies.get(strategy_name.lower())

        if not strategy_class:
            available = cls.get_available_strategies()
            raise ValidationError(
                message=f"未知的策略类型: {strategy_name}，可用策略: {available}",
                severity=ErrorSeverity.MEDIUM,
            )

        return strategy_class(config or {})

    @classmethod
    def get_available_strategies(cls) -> List[str]:
        return list(cls._strategies.keys())
