"""
绩效指标计算

对交易记录和权益曲线做事后统计：收益率、胜率、FIFO 配对、最大回撤、夏普比率等。
纯函数式计算，同一输入重复调用得到相同结果。
"""

import math
from collections import defaultdict, deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Deque, Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd
from loguru import logger

from ..models import (
    BacktestResult,
    BacktestStatus,
    EquityPoint,
    Holding,
    Trade,
    TradeAction,
    TradePair,
    TradingSignal,
)

ONE_DAY = timedelta(days=1)
# 加密货币全年无休
PERIODS_PER_YEAR = 365
# 无法计算波动率时，收益/回撤比的缩放系数
RETURN_DRAWDOWN_SCALE = 0.1
# 相对数量低于该比例的剩余量是浮点减法残留，视为已耗尽
QUANTITY_EPSILON = 1e-12


def _ceil_days(delta: timedelta) -> int:
    return math.ceil(delta / ONE_DAY)


@dataclass
class _OpenLot:
    quantity: float
    buy_price: float
    buy_time: datetime
    original_quantity: float


def match_trade_pairs(trades: Sequence[Trade]) -> List[TradePair]:
    """
    FIFO 配对

    每个币种维护一个未平仓买入批次队列，卖出时从最早的批次开始消耗，
    卖出数量小于批次数量时拆分批次。每次消耗生成一个 TradePair。
    全额卖出后残留的极小数量不会生成配对。
    """
    open_lots: Dict[str, Deque[_OpenLot]] = defaultdict(deque)
    pairs: List[TradePair] = []

    for trade in trades:
        if trade.action == TradeAction.BUY:
            open_lots[trade.symbol].append(
                _OpenLot(trade.quantity, trade.price, trade.timestamp, trade.quantity)
            )
            continue

        lots = open_lots[trade.symbol]
        remaining = trade.quantity
        min_remaining = trade.quantity * QUANTITY_EPSILON
        while remaining > min_remaining and lots:
            lot = lots[0]
            matched = min(remaining, lot.quantity)

            pairs.append(
                TradePair(
                    symbol=trade.symbol,
                    buy_price=lot.buy_price,
                    sell_price=trade.price,
                    quantity=matched,
                    profit_rate=(trade.price - lot.buy_price) / lot.buy_price * 100,
                    holding_days=_ceil_days(trade.timestamp - lot.buy_time),
                    profit=matched * (trade.price - lot.buy_price),
                    buy_time=lot.buy_time,
                    sell_time=trade.timestamp,
                )
            )

            lot.quantity -= matched
            remaining -= matched
            if lot.quantity <= QUANTITY_EPSILON * max(lot.original_quantity, trade.quantity):
                lots.popleft()

    return pairs


def summarize_trade_pairs(trade_pairs: Sequence[TradePair]) -> Dict[str, Dict[str, Any]]:
    """按币种汇总配对交易：次数、胜率、总盈亏"""
    summary: Dict[str, Dict[str, Any]] = {}
    for pair in trade_pairs:
        item = summary.setdefault(
            pair.symbol, {"pairs": 0, "wins": 0, "total_profit": 0.0}
        )
        item["pairs"] += 1
        item["wins"] += 1 if pair.profit_rate > 0 else 0
        item["total_profit"] += pair.profit

    for item in summary.values():
        item["win_rate"] = item["wins"] / item["pairs"] * 100
    return summary


class MetricsCalculator:
    """回测绩效指标计算器"""

    def calculate(
        self,
        initial_capital: float,
        cash: float,
        holdings: Mapping[str, Holding],
        trades: Sequence[Trade],
        signals: Sequence[TradingSignal] = (),
        equity_curve: Sequence[EquityPoint] = (),
        status: BacktestStatus = BacktestStatus.COMPLETED,
    ) -> BacktestResult:
        """
        计算完整的回测结果

        Args:
            initial_capital: 初始资金
            cash: 最终现金
            holdings: 最终持仓（按最新价估值）
            trades: 按时间排序的交易记录
            signals: 信号记录，原样透传
            equity_curve: 每个回测步骤后的组合价值

        Returns:
            BacktestResult
        """
        final_value = cash + sum(h.quantity * h.last_price for h in holdings.values())

        if not trades:
            logger.info("回测期间没有成交，返回空结果")
            return BacktestResult(
                signals=list(signals),
                equity_curve=list(equity_curve),
                final_portfolio_value=final_value,
                status=status,
            )

        total_return = (final_value - initial_capital) / initial_capital * 100

        trade_pairs = match_trade_pairs(trades)
        win_trades = sum(1 for p in trade_pairs if p.profit_rate > 0)
        win_rate = win_trades / len(trade_pairs) * 100 if trade_pairs else 0.0

        backtest_days = self.calculate_backtest_days(trades)
        annualized_return = (
            (final_value / initial_capital) ** (365 / backtest_days) - 1
        ) * 100
        avg_holding_period = (
            float(np.mean([p.holding_days for p in trade_pairs])) if trade_pairs else 0.0
        )
        trading_frequency = len(trades) / backtest_days * 30

        max_drawdown = self.calculate_max_drawdown(equity_curve)
        sharpe_ratio = self.calculate_sharpe_ratio(equity_curve, total_return, max_drawdown)

        logger.info(
            f"绩效计算完成: 总收益 {total_return:.2f}%, 胜率 {win_rate:.2f}%, "
            f"交易 {len(trades)} 笔, 最大回撤 {max_drawdown:.2f}%"
        )

        return BacktestResult(
            total_return=total_return,
            win_rate=win_rate,
            total_trades=len(trades),
            win_trades=win_trades,
            max_drawdown=max_drawdown,
            sharpe_ratio=sharpe_ratio,
            annualized_return=annualized_return,
            avg_holding_period=avg_holding_period,
            trading_frequency=trading_frequency,
            trades=list(trades),
            signals=list(signals),
            trade_pairs=trade_pairs,
            equity_curve=list(equity_curve),
            final_portfolio_value=final_value,
            status=status,
        )

    @staticmethod
    def calculate_backtest_days(trades: Sequence[Trade]) -> int:
        """首笔到末笔交易的天数，至少为 1"""
        if not trades:
            return 1
        return max(1, _ceil_days(trades[-1].timestamp - trades[0].timestamp))

    @staticmethod
    def _equity_series(equity_curve: Sequence[EquityPoint]) -> pd.Series:
        return pd.Series(
            [p.value for p in equity_curve],
            index=pd.DatetimeIndex([p.timestamp for p in equity_curve]),
            dtype=float,
        )

    def daily_returns(self, equity_curve: Sequence[EquityPoint]) -> pd.Series:
        """按自然日取收盘权益后的日收益率；多币种或小时级行情每天会有多个权益点"""
        if not equity_curve:
            return pd.Series(dtype=float)
        daily = self._equity_series(equity_curve).resample("D").last().dropna()
        return daily.pct_change().dropna()

    def calculate_max_drawdown(self, equity_curve: Sequence[EquityPoint]) -> float:
        """权益曲线的最大峰谷回撤（百分比，<= 0）"""
        values = self._equity_series(equity_curve)
        if len(values) < 2:
            return 0.0

        running_max = values.expanding().max()
        drawdown = (values - running_max) / running_max
        return float(drawdown.min() * 100)

    def calculate_sharpe_ratio(
        self,
        equity_curve: Sequence[EquityPoint],
        total_return: float,
        max_drawdown: float,
    ) -> float:
        """
        夏普比率

        日收益率有波动时使用年化收益 / 年化波动率；否则退化为
        总收益 / |最大回撤| × 0.1；两者都无意义时为 0。
        """
        returns = self.daily_returns(equity_curve)

        if len(returns) >= 2:
            volatility = returns.std()
            if volatility > 0:
                return float(returns.mean() / volatility * np.sqrt(PERIODS_PER_YEAR))

        if max_drawdown < 0:
            return total_return / abs(max_drawdown) * RETURN_DRAWDOWN_SCALE
        return 0.0
