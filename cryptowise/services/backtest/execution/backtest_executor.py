"""
回测执行器 - 按时间顺序回放行情并驱动信号、交易和绩效计算

状态机: IDLE -> RUNNING -> COMPLETED | FAILED | CANCELLED
数据加载是唯一的异步等待点，回放循环本身是同步的。
"""

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from loguru import logger

from cryptowise.core.error_handler import (
    ErrorContext,
    ErrorSeverity,
    InvariantViolationError,
    TaskError,
)

from ..analysis.metrics_calculator import MetricsCalculator
from ..core.base_strategy import BaseStrategy
from ..core.portfolio_manager import PortfolioManager
from ..models import (
    BacktestConfig,
    BacktestResult,
    BacktestStatus,
    EquityPoint,
    PricePoint,
    Trade,
    TradingSignal,
)
from ..strategies.strategy_factory import StrategyFactory
from .data_loader import DataLoader


class CancellationToken:
    """协作式取消标记，回放循环每一步检查一次"""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled


@dataclass
class BacktestCallbacks:
    """回测观察者回调，异常只记录日志，不影响回测"""

    on_progress: Optional[Callable[[int], Any]] = None
    on_signal: Optional[Callable[[TradingSignal], Any]] = None
    on_trade: Optional[Callable[[Trade], Any]] = None


class BacktestExecutor:
    """回测执行器"""

    def __init__(
        self,
        data_loader: Optional[DataLoader] = None,
        metrics_calculator: Optional[MetricsCalculator] = None,
    ):
        self.data_loader = data_loader or DataLoader()
        self.metrics_calculator = metrics_calculator or MetricsCalculator()
        self.status = BacktestStatus.IDLE
        self.last_result: Optional[BacktestResult] = None

    async def run(
        self,
        config: BacktestConfig,
        callbacks: Optional[BacktestCallbacks] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> BacktestResult:
        """
        运行完整回测：加载数据后同步回放

        Args:
            config: 回测配置
            callbacks: 进度、信号、成交回调
            cancel_token: 取消标记

        Returns:
            BacktestResult
        """
        self._start()
        logger.info(
            f"开始回测: 币种={config.symbols}, 策略={config.strategy}, "
            f"区间={config.start_date} ~ {config.end_date}"
        )

        try:
            price_points = await self.data_loader.load_market_data(config)
        except Exception as e:
            self.status = BacktestStatus.FAILED
            error_msg = f"回测数据加载失败: {e}"
            logger.error(error_msg)
            raise TaskError(
                message=error_msg, severity=ErrorSeverity.HIGH, original_exception=e
            )

        logger.info(f"数据加载完成: 共 {len(price_points)} 条行情")
        return self._replay(price_points, config, callbacks, cancel_token)

    def run_on_data(
        self,
        price_points: Sequence[PricePoint],
        config: BacktestConfig,
        callbacks: Optional[BacktestCallbacks] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> BacktestResult:
        """在已经按时间排序的多币种行情上回放"""
        self._start()
        return self._replay(price_points, config, callbacks, cancel_token)

    def _start(self) -> None:
        if self.status == BacktestStatus.RUNNING:
            raise TaskError(message="回测正在运行，不能重复启动", severity=ErrorSeverity.MEDIUM)
        self.status = BacktestStatus.RUNNING
        self.last_result = None

    @staticmethod
    def _create_strategy(config: BacktestConfig) -> BaseStrategy:
        strategy_config: Dict[str, Any] = dict(config.strategy_config)
        strategy_config.setdefault("cooldown_seconds", config.signal_cooldown_seconds)
        return StrategyFactory.create_strategy(config.strategy, strategy_config)

    def _replay(
        self,
        price_points: Sequence[PricePoint],
        config: BacktestConfig,
        callbacks: Optional[BacktestCallbacks],
        cancel_token: Optional[CancellationToken],
    ) -> BacktestResult:
        callbacks = callbacks or BacktestCallbacks()

        try:
            strategy = self._create_strategy(config)
        except Exception:
            self.status = BacktestStatus.FAILED
            raise

        portfolio = PortfolioManager(config)
        signals: List[TradingSignal] = []
        equity_curve: List[EquityPoint] = []
        price_history: Dict[str, List[float]] = defaultdict(list)
        volume_history: Dict[str, List[float]] = defaultdict(list)

        total = len(price_points)
        final_status = BacktestStatus.COMPLETED

        try:
            for index, point in enumerate(price_points):
                if cancel_token is not None and cancel_token.is_cancelled:
                    logger.warning(f"回测已取消，已处理 {index}/{total} 条行情")
                    final_status = BacktestStatus.CANCELLED
                    break

                prices = price_history[point.symbol]
                volumes = volume_history[point.symbol]
                previous_price = prices[-1] if prices else None
                prices.append(point.price)
                volumes.append(point.volume)

                change_percent = (
                    (point.price - previous_price) / previous_price * 100
                    if previous_price
                    else 0.0
                )

                snapshot = strategy.calculate_indicators(prices, volumes)
                signal = strategy.generate_signal(
                    point.symbol, snapshot, point.price, point.timestamp, change_percent
                )

                if signal is not None:
                    execution = portfolio.execute_signal(signal)
                    signals.append(signal)
                    self._notify(callbacks.on_signal, signal, "on_signal")
                    if execution.executed:
                        self._notify(callbacks.on_trade, execution.trade, "on_trade")

                portfolio.mark_price(point.symbol, point.price)
                equity_curve.append(
                    EquityPoint(timestamp=point.timestamp, value=portfolio.get_portfolio_value())
                )

                self._notify(callbacks.on_progress, round(index / total * 100), "on_progress")

        except InvariantViolationError as e:
            self.status = BacktestStatus.FAILED
            logger.error(f"回测失败，组合状态异常: {e.message}")
            raise
        except Exception as e:
            self.status = BacktestStatus.FAILED
            error_msg = f"回测执行失败: {e}"
            logger.error(error_msg)
            raise TaskError(
                message=error_msg,
                severity=ErrorSeverity.HIGH,
                context=ErrorContext(additional_data={"strategy": config.strategy}),
                original_exception=e,
            )

        if final_status == BacktestStatus.COMPLETED:
            self._notify(callbacks.on_progress, 100, "on_progress")

        result = self.metrics_calculator.calculate(
            initial_capital=config.initial_capital,
            cash=portfolio.cash,
            holdings=portfolio.holdings,
            trades=portfolio.trades,
            signals=signals,
            equity_curve=equity_curve,
            status=final_status,
        )

        self.status = final_status
        self.last_result = result
        logger.info(
            f"回测结束: 状态={final_status.value}, 信号 {len(signals)} 个, "
            f"交易 {result.total_trades} 笔, 最终价值 {result.final_portfolio_value:,.0f}"
        )
        return result

    @staticmethod
    def _notify(callback: Optional[Callable[[Any], Any]], payload: Any, name: str) -> None:
        if callback is None:
            return
        try:
            callback(payload)
        except Exception as e:
            logger.warning(f"回调 {name} 执行失败，已忽略: {e}")
