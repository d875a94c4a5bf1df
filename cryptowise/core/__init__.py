"""
基础设施：配置、日志、错误处理
"""
