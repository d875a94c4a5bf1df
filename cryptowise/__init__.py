"""
CryptoWise 回测核心

技术指标 -> 交易信号 -> 模拟组合回放 -> 绩效统计
"""

__version__ = "0.1.0"
