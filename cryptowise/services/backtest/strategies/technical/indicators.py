"""
技术指标计算

纯函数实现的 RSI、MACD、布林带、移动平均和成交量振荡器。
数据不足时不抛异常，而是返回中性读数（RSI=50、MACD 中性、布林带位置 none、
成交量比率 1.0），由信号层自然得到 HOLD。
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

import numpy as np
import pandas as pd

from ...models import (
    BandPosition,
    BollingerBandsResult,
    IndicatorSnapshot,
    MACDCross,
    MACDResult,
    RSIResult,
    VolumeOscillatorResult,
)

NEUTRAL_RSI = 50.0
RSI_EPSILON = 1e-10
# 相对价格量级的舍入噪声阈值，判断金叉死叉时低于该值的差值视为 0
MACD_TOLERANCE = 1e-9

DEFAULT_INDICATOR_PARAMS: Dict[str, Any] = {
    "rsi_period": 14,
    "macd_fast": 12,
    "macd_slow": 26,
    "macd_signal": 9,
    "bb_period": 20,
    "bb_k": 2.0,
    "ma_short": 20,
    "ma_long": 60,
    "volume_period": 20,
}


def _as_array(values: Sequence[float]) -> np.ndarray:
    return np.asarray(values, dtype=np.float64)


def ema(values: Sequence[float], period: int) -> np.ndarray:
    """指数移动平均，k = 2/(n+1)，以第一个原始值作为种子（adjust=False 语义）"""
    arr = _as_array(values)
    if arr.size == 0:
        return arr
    return pd.Series(arr).ewm(span=period, adjust=False).mean().to_numpy()


def compute_rsi(prices: Sequence[float], period: int = 14) -> RSIResult:
    """
    RSI（Wilder 平滑）

    首个平均涨跌幅为前 period 个差值的简单平均，之后按
    avg = (avg*(period-1) + x) / period 递推。涨跌平均都为 0 时视为中性 50。

    Returns:
        RSIResult: latest 为最新值，values 为从第 period 个价格开始的完整序列
    """
    arr = _as_array(prices)
    if period <= 0 or arr.size < period + 1:
        return RSIResult(latest=NEUTRAL_RSI, values=())

    deltas = np.diff(arr)
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)

    avg_gain = gains[:period].mean()
    avg_loss = losses[:period].mean()
    values = [_rsi_from_averages(avg_gain, avg_loss)]

    for i in range(period, deltas.size):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        values.append(_rsi_from_averages(avg_gain, avg_loss))

    return RSIResult(latest=values[-1], values=tuple(values))


def _rsi_from_averages(avg_gain: float, avg_loss: float) -> float:
    if avg_gain == 0.0 and avg_loss == 0.0:
        return NEUTRAL_RSI
    rs = avg_gain / max(avg_loss, RSI_EPSILON)
    return float(100.0 - 100.0 / (1.0 + rs))


def classify_macd_cross(
    macd: float, signal: float, histogram: float, tolerance: float = 0.0
) -> MACDCross:
    """
    bullish 当且仅当 macd > signal 且 histogram > 0；bearish 对称

    tolerance 内的差值按相等处理，避免平盘时的浮点舍入被判为金叉或死叉
    """
    if macd - signal > tolerance and histogram > tolerance:
        return MACDCross.BULLISH
    if signal - macd > tolerance and histogram < -tolerance:
        return MACDCross.BEARISH
    return MACDCross.NEUTRAL


def compute_macd(
    prices: Sequence[float], fast: int = 12, slow: int = 26, signal: int = 9
) -> MACDResult:
    """MACD：快慢 EMA 之差、其 signal EMA 以及柱状图"""
    arr = _as_array(prices)
    if arr.size < slow:
        return MACDResult(
            macd=0.0, signal=0.0, histogram=0.0, cross=MACDCross.NEUTRAL
        )

    macd_line = ema(arr, fast) - ema(arr, slow)
    signal_line = ema(macd_line, signal)
    histogram = macd_line - signal_line

    latest_macd = float(macd_line[-1])
    latest_signal = float(signal_line[-1])
    latest_hist = float(histogram[-1])
    tolerance = MACD_TOLERANCE * float(np.abs(arr).max())

    return MACDResult(
        macd=latest_macd,
        signal=latest_signal,
        histogram=latest_hist,
        cross=classify_macd_cross(latest_macd, latest_signal, latest_hist, tolerance),
        macd_values=tuple(macd_line.tolist()),
        signal_values=tuple(signal_line.tolist()),
        histogram_values=tuple(histogram.tolist()),
    )


def classify_band_position(last: float, upper: float, lower: float) -> BandPosition:
    if last <= lower:
        return BandPosition.LOWER
    if last >= upper:
        return BandPosition.UPPER
    return BandPosition.MIDDLE


def compute_bollinger_bands(
    prices: Sequence[float], period: int = 20, k: float = 2.0
) -> BollingerBandsResult:
    """布林带：最近 period 个价格的简单均值 ± k 倍总体标准差"""
    arr = _as_array(prices)
    if period <= 0 or arr.size < period:
        return BollingerBandsResult(
            upper=0.0, middle=0.0, lower=0.0, position=BandPosition.NONE
        )

    window = arr[-period:]
    if np.ptp(window) == 0:
        # 无波动时上下轨重合，位置按下轨处理
        sma, std = float(window[0]), 0.0
    else:
        sma = float(window.mean())
        std = float(window.std(ddof=0))
    upper = sma + k * std
    lower = sma - k * std
    last = float(arr[-1])

    return BollingerBandsResult(
        upper=upper,
        middle=sma,
        lower=lower,
        position=classify_band_position(last, upper, lower),
        last=last,
    )


def compute_moving_average(prices: Sequence[float], period: int) -> np.ndarray:
    """简单移动平均序列，数据不足时返回空数组"""
    arr = _as_array(prices)
    if period <= 0 or arr.size < period:
        return np.empty(0, dtype=np.float64)
    return pd.Series(arr).rolling(window=period).mean().to_numpy()[period - 1:]


def compute_volume_oscillator(
    volumes: Optional[Sequence[float]], period: int = 20
) -> VolumeOscillatorResult:
    """最新成交量与最近 period 期均量之比；数据不足或没有成交量时为 1.0"""
    if volumes is None:
        return VolumeOscillatorResult(latest_ratio=1.0)

    arr = np.nan_to_num(_as_array(volumes))
    if period <= 0 or arr.size < period:
        return VolumeOscillatorResult(latest_ratio=1.0)

    average = float(arr[-period:].mean())
    latest = float(arr[-1])
    if average <= 0:
        return VolumeOscillatorResult(latest_ratio=1.0, average=average, latest_volume=latest)

    return VolumeOscillatorResult(
        latest_ratio=latest / average, average=average, latest_volume=latest
    )


def compute_indicator_snapshot(
    prices: Sequence[float],
    volumes: Optional[Sequence[float]] = None,
    params: Optional[Dict[str, Any]] = None,
) -> IndicatorSnapshot:
    """计算价格窗口最后一个时间点的全部指标"""
    p = {**DEFAULT_INDICATOR_PARAMS, **(params or {})}

    ma_short = compute_moving_average(prices, p["ma_short"])
    ma_long = compute_moving_average(prices, p["ma_long"])

    return IndicatorSnapshot(
        rsi=compute_rsi(prices, p["rsi_period"]).latest,
        macd=compute_macd(prices, p["macd_fast"], p["macd_slow"], p["macd_signal"]),
        bollinger=compute_bollinger_bands(prices, p["bb_period"], p["bb_k"]),
        ma_short=float(ma_short[-1]) if ma_short.size else 0.0,
        ma_long=float(ma_long[-1]) if ma_long.size else 0.0,
        volume_ratio=compute_volume_oscillator(volumes, p["volume_period"]).latest_ratio,
    )
