"""
技术分析指标与信号
"""
