"""
组合管理器

负责管理回测过程中的现金、持仓和交易记录
"""

from dataclasses import replace
from types import MappingProxyType
from typing import Any, Dict, List, Mapping

from loguru import logger

from cryptowise.core.error_handler import ErrorContext, InvariantViolationError

from ..models import (
    BacktestConfig,
    ExecutionResult,
    Holding,
    SignalType,
    Trade,
    TradeAction,
    TradingSignal,
)

# 浮点误差容忍度
INVARIANT_TOLERANCE = 1e-9

REASON_INSUFFICIENT_BUY_SIZE = "insufficient buy size"
REASON_NO_HOLDING = "no holding to sell"
REASON_HOLD = "hold signal"
REASON_INVALID_PRICE = "invalid price"


class PortfolioManager:
    """组合管理器（回测期间独占组合状态）"""

    def __init__(self, config: BacktestConfig):
        self.config = config
        self.cash = config.initial_capital
        self._holdings: Dict[str, Holding] = {}
        self._trades: List[Trade] = []
        self.trade_counter = 0

    @property
    def holdings(self) -> Mapping[str, Holding]:
        """只读的持仓视图，其中的 Holding 为副本，修改不影响组合状态"""
        return MappingProxyType(
            {symbol: replace(holding) for symbol, holding in self._holdings.items()}
        )

    @property
    def trades(self) -> List[Trade]:
        """交易记录副本"""
        return list(self._trades)

    def mark_price(self, symbol: str, price: float) -> None:
        """用最新行情更新持仓的最新价"""
        holding = self._holdings.get(symbol)
        if holding is not None:
            holding.last_price = price

    def get_portfolio_value(self) -> float:
        """组合总价值 = 现金 + Σ 持仓数量 × 最新价"""
        return self.cash + sum(h.market_value for h in self._holdings.values())

    def execute_signal(self, signal: TradingSignal) -> ExecutionResult:
        """
        执行交易信号

        Returns:
            ExecutionResult: 成交时带 Trade；被拒绝时带原因，不写交易记录
        """
        if signal.price <= 0:
            return ExecutionResult.rejected(REASON_INVALID_PRICE)

        if signal.signal_type == SignalType.BUY:
            result = self._execute_buy(signal)
        elif signal.signal_type == SignalType.SELL:
            result = self._execute_sell(signal)
        elif signal.signal_type == SignalType.HOLD:
            return ExecutionResult.rejected(REASON_HOLD)
        else:
            raise ValueError(f"未知信号类型: {signal.signal_type}")

        if result.executed:
            self._check_invariants(signal.symbol)
        else:
            logger.debug(f"交易未执行: {signal.symbol} {signal.signal_type.name}, 原因: {result.reason}")
        return result

    def _execute_buy(self, signal: TradingSignal) -> ExecutionResult:
        """买入：现金的 buy_cash_ratio 与单笔上限取小"""
        notional = min(self.cash * self.config.buy_cash_ratio, self.config.max_buy_notional)
        if notional <= 0:
            return ExecutionResult.rejected(REASON_INSUFFICIENT_BUY_SIZE)

        symbol = signal.symbol
        price = signal.price
        quantity = notional / price

        self.cash -= notional

        holding = self._holdings.get(symbol)
        if holding is None or holding.quantity <= 0:
            # 清仓后的均价已失效，重新建仓
            self._holdings[symbol] = Holding(
                symbol=symbol, quantity=quantity, average_cost=price, last_price=price
            )
        else:
            new_quantity = holding.quantity + quantity
            holding.average_cost = (
                holding.quantity * holding.average_cost + notional
            ) / new_quantity
            holding.quantity = new_quantity
            holding.last_price = price

        trade = self._record_trade(signal, TradeAction.BUY, quantity)
        logger.info(
            f"执行买入: {symbol}, 数量: {quantity:.6f}, 价格: {price:,.2f}, "
            f"金额: {notional:,.0f}, 剩余现金: {self.cash:,.0f}"
        )
        return ExecutionResult.filled(trade)

    def _execute_sell(self, signal: TradingSignal) -> ExecutionResult:
        """卖出：卖出当前持仓的 sell_ratio，均价保持不变"""
        symbol = signal.symbol
        holding = self._holdings.get(symbol)
        if holding is None or holding.quantity <= 0:
            return ExecutionResult.rejected(REASON_NO_HOLDING)

        price = signal.price
        quantity = holding.quantity * self.config.sell_ratio
        average_cost = holding.average_cost
        profit_rate = (
            (price - average_cost) / average_cost * 100 if average_cost > 0 else 0.0
        )

        self.cash += quantity * price
        holding.quantity = max(0.0, holding.quantity - quantity)
        holding.last_price = price

        trade = self._record_trade(
            signal,
            TradeAction.SELL,
            quantity,
            profit_rate=profit_rate,
            average_cost_at_sale=average_cost,
        )
        logger.info(
            f"执行卖出: {symbol}, 数量: {quantity:.6f}, 价格: {price:,.2f}, "
            f"均价: {average_cost:,.2f}, 收益率: {profit_rate:.2f}%"
        )
        return ExecutionResult.filled(trade)

    def _record_trade(
        self, signal: TradingSignal, action: TradeAction, quantity: float, **kwargs
    ) -> Trade:
        self.trade_counter += 1
        trade = Trade(
            trade_id=f"T{self.trade_counter:06d}",
            symbol=signal.symbol,
            action=action,
            quantity=quantity,
            price=signal.price,
            timestamp=signal.timestamp,
            **kwargs,
        )
        self._trades.append(trade)
        return trade

    def _check_invariants(self, symbol: str) -> None:
        """现金和持仓不能为负，否则是程序缺陷"""
        if self.cash < -INVARIANT_TOLERANCE:
            raise InvariantViolationError(
                f"交易后现金为负: {self.cash}",
                context=ErrorContext(symbol=symbol),
            )
        holding = self._holdings.get(symbol)
        if holding is not None and holding.quantity < -INVARIANT_TOLERANCE:
            raise InvariantViolationError(
                f"交易后持仓为负: {holding.quantity}",
                context=ErrorContext(symbol=symbol),
            )

    def snapshot(self) -> Dict[str, Any]:
        """组合状态快照（副本，供外部只读使用）"""
        return {
            "cash": self.cash,
            "portfolio_value": self.get_portfolio_value(),
            "holdings": {
                symbol: {
                    "quantity": h.quantity,
                    "average_cost": h.average_cost,
                    "last_price": h.last_price,
                    "market_value": h.market_value,
                }
                for symbol, h in self._holdings.items()
            },
            "total_trades": len(self._trades),
        }
