"""
数据模型定义

包含回测过程中使用的核心数据类
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from cryptowise.core.config import settings
from cryptowise.core.error_handler import ValidationError

from .enums import (
    BacktestStatus,
    BandPosition,
    MACDCross,
    Recommendation,
    SignalType,
    TradeAction,
)


@dataclass(frozen=True)
class PricePoint:
    """单个币种的一条历史行情"""

    symbol: str
    timestamp: datetime
    price: float
    volume: float = 0.0


@dataclass(frozen=True)
class RSIResult:
    """RSI 计算结果"""

    latest: float
    values: Tuple[float, ...] = ()


@dataclass(frozen=True)
class MACDResult:
    """MACD 计算结果"""

    macd: float
    signal: float
    histogram: float
    cross: MACDCross
    macd_values: Tuple[float, ...] = ()
    signal_values: Tuple[float, ...] = ()
    histogram_values: Tuple[float, ...] = ()


@dataclass(frozen=True)
class BollingerBandsResult:
    """布林带计算结果"""

    upper: float
    middle: float
    lower: float
    position: BandPosition
    last: Optional[float] = None


@dataclass(frozen=True)
class VolumeOscillatorResult:
    """成交量振荡器结果（最新成交量 / 均量）"""

    latest_ratio: float
    average: float = 0.0
    latest_volume: float = 0.0


@dataclass(frozen=True)
class IndicatorSnapshot:
    """某一时间点的全部指标读数，按需重新计算，没有独立生命周期"""

    rsi: float
    macd: MACDResult
    bollinger: BollingerBandsResult
    ma_short: float
    ma_long: float
    volume_ratio: float


@dataclass(frozen=True)
class TradingSignal:
    """交易信号"""

    symbol: str
    signal_type: SignalType
    price: float
    timestamp: datetime
    confidence: float  # 信号置信度 0-1
    score: float  # 综合评分 0-10
    reason: str
    recommendation: Optional[Recommendation] = None
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class Holding:
    """持仓信息；quantity 为 0 时 average_cost 已失效"""

    symbol: str
    quantity: float
    average_cost: float
    last_price: float

    @property
    def market_value(self) -> float:
        return self.quantity * self.last_price


@dataclass(frozen=True)
class Trade:
    """成交记录，只追加、不修改"""

    trade_id: str
    symbol: str
    action: TradeAction
    quantity: float
    price: float
    timestamp: datetime
    profit_rate: Optional[float] = None  # 仅 SELL
    average_cost_at_sale: Optional[float] = None  # 仅 SELL

    @property
    def notional(self) -> float:
        return self.quantity * self.price


@dataclass(frozen=True)
class TradePair:
    """FIFO 配对后的一次完整买卖"""

    symbol: str
    buy_price: float
    sell_price: float
    quantity: float
    profit_rate: float
    holding_days: int
    profit: float
    buy_time: datetime
    sell_time: datetime


@dataclass(frozen=True)
class ExecutionResult:
    """
    一次交易尝试的结果

    成交时 trade 不为空；被拒绝时 reason 给出原因，且不会写入交易记录。
    """

    executed: bool
    trade: Optional[Trade] = None
    reason: Optional[str] = None

    @classmethod
    def rejected(cls, reason: str) -> "ExecutionResult":
        return cls(executed=False, reason=reason)

    @classmethod
    def filled(cls, trade: Trade) -> "ExecutionResult":
        return cls(executed=True, trade=trade)


@dataclass(frozen=True)
class EquityPoint:
    """权益曲线上的一个点"""

    timestamp: datetime
    value: float


@dataclass
class BacktestConfig:
    """回测配置"""

    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    symbols: List[str] = field(default_factory=list)
    strategy: str = "composite"
    strategy_config: Dict[str, Any] = field(default_factory=dict)
    initial_capital: float = field(
        default_factory=lambda: settings.BACKTEST_INITIAL_CAPITAL
    )

    # 交易规模
    buy_cash_ratio: float = field(
        default_factory=lambda: settings.BACKTEST_BUY_CASH_RATIO
    )
    max_buy_notional: float = field(
        default_factory=lambda: settings.BACKTEST_MAX_BUY_NOTIONAL
    )
    sell_ratio: float = field(default_factory=lambda: settings.BACKTEST_SELL_RATIO)

    # 同一币种信号冷却（0 表示不启用）
    signal_cooldown_seconds: int = field(
        default_factory=lambda: settings.SIGNAL_COOLDOWN_SECONDS
    )

    # 只有显式打开时才使用随机生成的行情
    use_synthetic_data: bool = False

    def __post_init__(self):
        if self.initial_capital <= 0:
            raise ValidationError(f"初始资金必须大于0: {self.initial_capital}")
        if not 0 <= self.buy_cash_ratio <= 1:
            raise ValidationError(f"买入资金比例必须在0-1之间: {self.buy_cash_ratio}")
        if self.max_buy_notional < 0:
            raise ValidationError(f"单笔买入上限不能为负: {self.max_buy_notional}")
        if not 0 < self.sell_ratio <= 1:
            raise ValidationError(f"卖出比例必须在(0, 1]之间: {self.sell_ratio}")
        if self.signal_cooldown_seconds < 0:
            raise ValidationError("信号冷却时间不能为负")
        if (
            self.start_date is not None
            and self.end_date is not None
            and self.start_date > self.end_date
        ):
            raise ValidationError("开始日期不能晚于结束日期")
        self.symbols = [s.upper() for s in self.symbols]


@dataclass
class BacktestResult:
    """回测最终结果"""

    total_return: float = 0.0
    win_rate: float = 0.0
    total_trades: int = 0
    win_trades: int = 0
    max_drawdown: float = 0.0
    sharpe_ratio: float = 0.0
    annualized_return: float = 0.0
    avg_holding_period: float = 0.0
    trading_frequency: float = 0.0
    trades: List[Trade] = field(default_factory=list)
    signals: List[TradingSignal] = field(default_factory=list)
    trade_pairs: List[TradePair] = field(default_factory=list)
    equity_curve: List[EquityPoint] = field(default_factory=list)
    final_portfolio_value: float = 0.0
    status: BacktestStatus = BacktestStatus.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        """转换为前端使用的字典格式"""
        return {
            "totalReturn": round(self.total_return, 2),
            "winRate": round(self.win_rate, 2),
            "totalTrades": self.total_trades,
            "winTrades": self.win_trades,
            "maxDrawdown": round(self.max_drawdown, 2),
            "sharpeRatio": round(self.sharpe_ratio, 3),
            "annualizedReturn": round(self.annualized_return, 2),
            "avgHoldingPeriod": round(self.avg_holding_period),
            "tradingFrequency": round(self.trading_frequency, 1),
            "finalPortfolioValue": self.final_portfolio_value,
            "status": self.status.value,
            "trades": [
                {
                    "id": t.trade_id,
                    "symbol": t.symbol,
                    "action": t.action.value,
                    "quantity": t.quantity,
                    "price": t.price,
                    "timestamp": t.timestamp.isoformat(),
                    "profitRate": t.profit_rate,
                    "avgBuyPrice": t.average_cost_at_sale,
                }
                for t in self.trades
            ],
            "signals": [
                {
                    "symbol": s.symbol,
                    "type": s.signal_type.name,
                    "price": s.price,
                    "confidence": s.confidence,
                    "score": s.score,
                    "reason": s.reason,
                    "timestamp": s.timestamp.isoformat(),
                }
                for s in self.signals
            ],
            "tradePairs": [
                {
                    "symbol": p.symbol,
                    "buyPrice": p.buy_price,
                    "sellPrice": p.sell_price,
                    "quantity": p.quantity,
                    "profitRate": round(p.profit_rate, 2),
                    "holdingDays": p.holding_days,
                    "profit": p.profit,
                    "buyTime": p.buy_time.isoformat(),
                    "sellTime": p.sell_time.isoformat(),
                }
                for p in self.trade_pairs
            ],
        }
