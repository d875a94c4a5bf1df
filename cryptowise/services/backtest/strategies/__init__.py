"""
信号策略模块

- technical.indicators: 技术指标纯函数
- technical.signal_generator: 综合评分策略与 RSI 阈值策略
- strategy_factory: 按名称创建策略
"""
