"""
枚举类型定义
"""

from enum import Enum


class SignalType(Enum):
    """信号类型"""
    BUY = 1
    SELL = -1
    HOLD = 0


class TradeAction(Enum):
    """成交方向"""
    BUY = "BUY"
    SELL = "SELL"


class Recommendation(Enum):
    """综合评分对应的投资建议"""
    STRONG_BUY = "STRONG_BUY"
    BUY = "BUY"
    HOLD = "HOLD"
    WEAK_SELL = "WEAK_SELL"
    SELL = "SELL"

    def to_signal_type(self) -> SignalType:
        """映射为回测使用的三值信号"""
        if self in (Recommendation.STRONG_BUY, Recommendation.BUY):
            return SignalType.BUY
        if self in (Recommendation.WEAK_SELL, Recommendation.SELL):
            return SignalType.SELL
        return SignalType.HOLD


class MACDCross(Enum):
    """MACD 交叉状态"""
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class BandPosition(Enum):
    """价格相对布林带的位置"""
    UPPER = "upper"
    LOWER = "lower"
    MIDDLE = "middle"
    NONE = "none"  # 数据不足


class BacktestStatus(Enum):
    """回测状态"""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
