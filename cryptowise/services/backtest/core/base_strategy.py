"""
策略基类

定义所有信号策略必须实现的接口
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from ..models import IndicatorSnapshot, Recommendation, SignalType, TradingSignal
from ..strategies.technical.indicators import compute_indicator_snapshot


@dataclass(frozen=True)
class SignalEvaluation:
    """一次指标评估的结果（不含币种和时间）"""

    signal_type: SignalType
    score: float
    confidence: float
    recommendation: Optional[Recommendation] = None
    reasons: List[str] = field(default_factory=list)


class BaseStrategy(ABC):
    """策略基类"""

    def __init__(self, name: str, config: Dict[str, Any]):
        self.name = name
        self.config = config
        self.indicator_params: Dict[str, Any] = config.get("indicators", {})
        self.cooldown_seconds = int(config.get("cooldown_seconds", 0))
        # 仅用于抑制冷却期内的重复信号
        self._last_signal_time: Dict[str, datetime] = {}

    def calculate_indicators(
        self, prices: Sequence[float], volumes: Optional[Sequence[float]] = None
    ) -> IndicatorSnapshot:
        """计算技术指标"""
        return compute_indicator_snapshot(prices, volumes, self.indicator_params)

    @abstractmethod
    def evaluate(self, snapshot: IndicatorSnapshot) -> SignalEvaluation:
        """根据指标快照给出评估"""
        pass

    def generate_signal(
        self,
        symbol: str,
        snapshot: IndicatorSnapshot,
        price: float,
        timestamp: datetime,
        change_percent: float = 0.0,
    ) -> Optional[TradingSignal]:
        """
        生成交易信号

        Returns:
            Optional[TradingSignal]: HOLD 或处于冷却期时返回 None
        """
        evaluation = self.evaluate(snapshot)
        if evaluation.signal_type == SignalType.HOLD:
            return None

        if self._in_cooldown(symbol, timestamp):
            return None

        reasons = list(evaluation.reasons)
        reasons.append(f"当日涨跌 {change_percent:+.2f}%")

        signal = TradingSignal(
            symbol=symbol,
            signal_type=evaluation.signal_type,
            price=price,
            timestamp=timestamp,
            confidence=evaluation.confidence,
            score=evaluation.score,
            reason=", ".join(reasons),
            recommendation=evaluation.recommendation,
            metadata={
                "strategy": self.name,
                "rsi": snapshot.rsi,
                "macd_cross": snapshot.macd.cross.value,
                "bollinger_position": snapshot.bollinger.position.value,
                "volume_ratio": snapshot.volume_ratio,
                "change_percent": change_percent,
            },
        )
        self._last_signal_time[symbol] = timestamp
        return signal

    def _in_cooldown(self, symbol: str, timestamp: datetime) -> bool:
        last = self._last_signal_time.get(symbol)
        if last is None:
            return False
        # 同一币种每天最多一个信号
        if last.date() == timestamp.date():
            return True
        if self.cooldown_seconds <= 0:
            return False
        return timestamp - last < timedelta(seconds=self.cooldown_seconds)

    def reset(self) -> None:
        """清空冷却状态，新一轮回测前调用"""
        self._last_signal_time.clear()
