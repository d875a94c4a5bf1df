"""
信号生成策略

包含综合评分策略（RSI + MACD + 布林带）和简单 RSI 阈值策略
"""

from typing import Any, Dict, List, Optional, Tuple

from ...core.base_strategy import BaseStrategy, SignalEvaluation
from ...models import (
    BandPosition,
    IndicatorSnapshot,
    MACDCross,
    Recommendation,
    SignalType,
)

NEUTRAL_SCORE = 5.0
MIN_SCORE = 0.0
MAX_SCORE = 10.0

# (阈值, 建议)，按从高到低匹配
RECOMMENDATION_BANDS: Tuple[Tuple[float, Recommendation], ...] = (
    (8.0, Recommendation.STRONG_BUY),
    (6.5, Recommendation.BUY),
    (4.5, Recommendation.HOLD),
    (2.5, Recommendation.WEAK_SELL),
)


def classify_score(score: float) -> Recommendation:
    """评分 -> 投资建议"""
    for threshold, recommendation in RECOMMENDATION_BANDS:
        if score >= threshold:
            return recommendation
    return Recommendation.SELL


class SignalGenerator(BaseStrategy):
    """
    综合评分策略

    以 5.0 为中性基准，按触发的指标阈值加减分，并截断到 [0, 10]：
    - RSI <= 20: +2.0；<= 30: +1.5；>= 80: -2.0；>= 70: -1.5
    - MACD 金叉: +1.5；死叉: -1.5
    - 价格触及布林下轨: +1.0；触及上轨: -1.0
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__("Composite", config or {})

    def score(self, snapshot: IndicatorSnapshot) -> Tuple[float, List[str]]:
        """计算综合评分，同时返回触发的原因"""
        score = NEUTRAL_SCORE
        reasons: List[str] = []

        rsi = snapshot.rsi
        if rsi <= 20:
            score += 2.0
            reasons.append(f"RSI 严重超卖 ({rsi:.1f})")
        elif rsi <= 30:
            score += 1.5
            reasons.append(f"RSI 超卖 ({rsi:.1f})")
        elif rsi >= 80:
            score -= 2.0
            reasons.append(f"RSI 严重超买 ({rsi:.1f})")
        elif rsi >= 70:
            score -= 1.5
            reasons.append(f"RSI 超买 ({rsi:.1f})")

        if snapshot.macd.cross == MACDCross.BULLISH:
            score += 1.5
            reasons.append("MACD 金叉")
        elif snapshot.macd.cross == MACDCross.BEARISH:
            score -= 1.5
            reasons.append("MACD 死叉")

        if snapshot.bollinger.position == BandPosition.LOWER:
            score += 1.0
            reasons.append("触及布林下轨")
        elif snapshot.bollinger.position == BandPosition.UPPER:
            score -= 1.0
            reasons.append("触及布林上轨")

        return max(MIN_SCORE, min(MAX_SCORE, score)), reasons

    def evaluate(self, snapshot: IndicatorSnapshot) -> SignalEvaluation:
        score, reasons = self.score(snapshot)
        recommendation = classify_score(score)
        return SignalEvaluation(
            signal_type=recommendation.to_signal_type(),
            score=score,
            confidence=min(1.0, abs(score - NEUTRAL_SCORE) / NEUTRAL_SCORE),
            recommendation=recommendation,
            reasons=reasons or ["指标中性"],
        )


class RSIThresholdSignalGenerator(BaseStrategy):
    """简单 RSI 阈值策略：RSI 低于买入阈值买入，高于卖出阈值卖出"""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        config = config or {}
        super().__init__("RSI", config)
        self.rsi_buy = config.get("rsi_buy", 30)
        self.rsi_sell = config.get("rsi_sell", 70)
        self.confidence = config.get("confidence", 0.7)

    def evaluate(self, snapshot: IndicatorSnapshot) -> SignalEvaluation:
        rsi = snapshot.rsi
        if rsi < self.rsi_buy:
            return SignalEvaluation(
                signal_type=SignalType.BUY,
                score=MAX_SCORE * self.confidence,
                confidence=self.confidence,
                reasons=[f"RSI 超卖 ({rsi:.1f})"],
            )
        if rsi > self.rsi_sell:
            return SignalEvaluation(
                signal_type=SignalType.SELL,
                score=MAX_SCORE * (1 - self.confidence),
                confidence=self.confidence,
                reasons=[f"RSI 超买 ({rsi:.1f})"],
            )
        return SignalEvaluation(
            signal_type=SignalType.HOLD, score=NEUTRAL_SCORE, confidence=0.0
        )
