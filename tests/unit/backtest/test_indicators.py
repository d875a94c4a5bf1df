"""
技术指标测试

覆盖 RSI（Wilder 平滑）、EMA、MACD、布林带、移动平均和成交量振荡器，
以及数据不足时的中性读数。

源码：cryptowise/services/backtest/strategies/technical/indicators.py
"""

import numpy as np
import pytest
from hypothesis import given, settings, strategies as st

from cryptowise.services.backtest.models import BandPosition, MACDCross
from cryptowise.services.backtest.strategies.technical.indicators import (
    MACD_TOLERANCE,
    NEUTRAL_RSI,
    classify_band_position,
    classify_macd_cross,
    compute_bollinger_bands,
    compute_indicator_snapshot,
    compute_macd,
    compute_moving_average,
    compute_rsi,
    compute_volume_oscillator,
    ema,
)

price_lists = st.lists(
    st.floats(min_value=1.0, max_value=1_000_000.0, allow_nan=False, allow_infinity=False),
    min_size=15,
    max_size=80,
)


class TestRSI:
    """RSI 计算测试"""

    def test_equal_prices_return_neutral(self):
        """15 个相同价格，period=14 时 RSI 为 50"""
        result = compute_rsi([100.0] * 15, period=14)
        assert result.latest == pytest.approx(50.0)

    def test_insufficient_data_returns_neutral(self):
        """价格数量不超过 period 时返回中性 50，不抛异常"""
        result = compute_rsi([100.0 + i for i in range(14)], period=14)
        assert result.latest == NEUTRAL_RSI
        assert result.values == ()

    def test_empty_prices(self):
        assert compute_rsi([], period=14).latest == NEUTRAL_RSI

    def test_wilder_smoothing(self):
        """period=2：首值为简单平均，之后按 Wilder 递推"""
        # 差值 [+1, -1, +1]
        result = compute_rsi([10.0, 11.0, 10.0, 11.0], period=2)
        # avg_gain=0.5, avg_loss=0.5 -> 50；
        # 递推 avg_gain=0.75, avg_loss=0.25 -> RS=3 -> 75
        assert result.values == pytest.approx((50.0, 75.0))
        assert result.latest == pytest.approx(75.0)

    def test_only_gains_approaches_100(self):
        result = compute_rsi([100.0 + i for i in range(30)], period=14)
        assert result.latest == pytest.approx(100.0, abs=1e-6)

    def test_only_losses_is_zero(self):
        result = compute_rsi([200.0 - i for i in range(30)], period=14)
        assert result.latest == pytest.approx(0.0)

    @given(prices=price_lists)
    @settings(max_examples=100, deadline=None)
    def test_rsi_always_in_range(self, prices):
        """任意长度大于 period 的价格序列，RSI 都在 [0, 100] 内"""
        result = compute_rsi(prices, period=14)
        assert 0.0 <= result.latest <= 100.0
        assert all(0.0 <= v <= 100.0 for v in result.values)
        assert len(result.values) == len(prices) - 14


class TestEMA:
    """EMA 计算测试"""

    def test_seeded_with_first_value(self):
        """k = 2/(n+1)，以第一个值为种子"""
        # n=3 -> k=0.5
        assert ema([1.0, 2.0, 3.0], 3).tolist() == pytest.approx([1.0, 1.5, 2.25])

    def test_empty(self):
        assert ema([], 12).size == 0


class TestMACD:
    """MACD 计算测试"""

    def test_insufficient_data_is_neutral(self):
        result = compute_macd([100.0 + i for i in range(25)])
        assert result.cross == MACDCross.NEUTRAL
        assert (result.macd, result.signal, result.histogram) == (0.0, 0.0, 0.0)

    def test_flat_series_is_neutral(self):
        """无波动的价格不应因浮点误差产生金叉或死叉"""
        result = compute_macd([0.1] * 60)
        assert result.cross == MACDCross.NEUTRAL

    def test_accelerating_uptrend_is_bullish(self):
        prices = [100.0 * 1.02 ** i for i in range(60)]
        result = compute_macd(prices)
        assert result.macd > result.signal
        assert result.cross == MACDCross.BULLISH

    def test_linear_downtrend_is_bearish(self):
        prices = [200.0 - i for i in range(60)]
        result = compute_macd(prices)
        assert result.cross == MACDCross.BEARISH

    def test_low_priced_coin_keeps_real_readings(self):
        """单价远小于 1 的币种，MACD 读数不会被当作噪声清零"""
        prices = [1e-9 * 1.02 ** i for i in range(60)]
        result = compute_macd(prices)
        assert result.macd > 0
        assert result.histogram != 0
        assert result.cross == MACDCross.BULLISH

    def test_signal_line_is_ema_of_macd_line(self):
        prices = [0.5 + 0.01 * np.sin(i / 3) for i in range(60)]
        result = compute_macd(prices)

        expected_macd = ema(prices, 12) - ema(prices, 26)
        assert list(result.macd_values) == pytest.approx(expected_macd.tolist())
        assert list(result.signal_values) == pytest.approx(ema(expected_macd, 9).tolist())
        assert list(result.histogram_values) == pytest.approx(
            (expected_macd - ema(expected_macd, 9)).tolist()
        )

    def test_classify_cross_with_tolerance(self):
        assert classify_macd_cross(1e-12, 0.0, 1e-12, tolerance=1e-9) == MACDCross.NEUTRAL
        assert classify_macd_cross(1e-6, 0.0, 1e-6, tolerance=1e-9) == MACDCross.BULLISH

    def test_series_lengths(self):
        result = compute_macd([100.0 + np.sin(i) for i in range(40)])
        assert len(result.macd_values) == 40
        assert len(result.signal_values) == 40
        assert len(result.histogram_values) == 40

    @pytest.mark.parametrize(
        "macd,signal,histogram,expected",
        [
            (1.0, 0.5, 0.5, MACDCross.BULLISH),
            (0.5, 1.0, -0.5, MACDCross.BEARISH),
            (1.0, 1.0, 0.0, MACDCross.NEUTRAL),
            (1.0, 0.5, 0.0, MACDCross.NEUTRAL),
        ],
    )
    def test_classify_cross(self, macd, signal, histogram, expected):
        assert classify_macd_cross(macd, signal, histogram) == expected

    @given(prices=st.lists(
        st.floats(min_value=1.0, max_value=100_000.0, allow_nan=False, allow_infinity=False),
        min_size=26,
        max_size=80,
    ))
    @settings(max_examples=100, deadline=None)
    def test_cross_matches_readings(self, prices):
        """超出舍入容差时，bullish 当且仅当 macd > signal 且 histogram > 0；bearish 对称"""
        result = compute_macd(prices)
        tolerance = MACD_TOLERANCE * max(prices)
        bullish = result.macd - result.signal > tolerance and result.histogram > tolerance
        bearish = result.signal - result.macd > tolerance and result.histogram < -tolerance
        assert (result.cross == MACDCross.BULLISH) == bullish
        assert (result.cross == MACDCross.BEARISH) == bearish


class TestBollingerBands:
    """布林带计算测试"""

    def test_insufficient_data(self):
        result = compute_bollinger_bands([100.0] * 19, period=20)
        assert result.position == BandPosition.NONE

    def test_population_std(self):
        result = compute_bollinger_bands([1.0, 2.0, 3.0], period=3, k=2.0)
        std = np.sqrt(2.0 / 3.0)
        assert result.middle == pytest.approx(2.0)
        assert result.upper == pytest.approx(2.0 + 2 * std)
        assert result.lower == pytest.approx(2.0 - 2 * std)
        assert result.position == BandPosition.MIDDLE

    def test_spike_touches_upper_band(self):
        result = compute_bollinger_bands([10.0] * 19 + [20.0], period=20)
        assert result.position == BandPosition.UPPER

    def test_drop_touches_lower_band(self):
        result = compute_bollinger_bands([10.0] * 19 + [1.0], period=20)
        assert result.position == BandPosition.LOWER

    def test_flat_window_is_lower(self):
        result = compute_bollinger_bands([0.3] * 20, period=20)
        assert result.upper == result.lower == pytest.approx(0.3)
        assert result.position == BandPosition.LOWER

    def test_classify_band_position(self):
        assert classify_band_position(9.0, upper=12.0, lower=9.0) == BandPosition.LOWER
        assert classify_band_position(12.0, upper=12.0, lower=9.0) == BandPosition.UPPER
        assert classify_band_position(10.0, upper=12.0, lower=9.0) == BandPosition.MIDDLE

    @given(prices=st.lists(
        st.floats(min_value=1.0, max_value=100_000.0, allow_nan=False, allow_infinity=False),
        min_size=20,
        max_size=60,
    ))
    @settings(max_examples=100, deadline=None)
    def test_position_matches_bands(self, prices):
        """lower 当且仅当 last <= lower；上下轨分开时 upper 当且仅当 last >= upper"""
        result = compute_bollinger_bands(prices, period=20)
        assert (result.position == BandPosition.LOWER) == (result.last <= result.lower)
        if result.upper > result.lower:
            assert (result.position == BandPosition.UPPER) == (result.last >= result.upper)


class TestMovingAverageAndVolume:
    """移动平均和成交量振荡器测试"""

    def test_moving_average(self):
        values = compute_moving_average([1.0, 2.0, 3.0, 4.0], period=2)
        assert values.tolist() == pytest.approx([1.5, 2.5, 3.5])

    def test_moving_average_insufficient(self):
        assert compute_moving_average([1.0, 2.0], period=5).size == 0

    def test_volume_ratio(self):
        result = compute_volume_oscillator([100.0] * 19 + [300.0], period=20)
        assert result.average == pytest.approx(110.0)
        assert result.latest_ratio == pytest.approx(300.0 / 110.0)

    @pytest.mark.parametrize("volumes", [None, [100.0] * 5, [0.0] * 20])
    def test_volume_ratio_neutral(self, volumes):
        """没有成交量、数据不足或均量为 0 时比率为 1.0"""
        assert compute_volume_oscillator(volumes, period=20).latest_ratio == 1.0


class TestIndicatorSnapshot:
    """指标快照测试"""

    def test_short_history_is_neutral(self):
        snapshot = compute_indicator_snapshot([100.0, 101.0, 102.0])
        assert snapshot.rsi == NEUTRAL_RSI
        assert snapshot.macd.cross == MACDCross.NEUTRAL
        assert snapshot.bollinger.position == BandPosition.NONE
        assert snapshot.ma_short == 0.0
        assert snapshot.volume_ratio == 1.0

    def test_custom_params(self):
        prices = [float(i) for i in range(1, 11)]
        snapshot = compute_indicator_snapshot(
            prices, params={"ma_short": 2, "ma_long": 4, "rsi_period": 3}
        )
        assert snapshot.ma_short == pytest.approx(9.5)
        assert snapshot.ma_long == pytest.approx(8.5)
        assert snapshot.rsi == pytest.approx(100.0, abs=1e-6)
