"""
统一错误处理框架

软错误（数据不足、交易被拒绝）不抛异常，由调用方以中性结果/拒绝原因的形式处理；
这里定义的是需要向上传播的错误。
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ErrorType(Enum):
    """错误类型"""

    TASK_ERROR = "task_error"
    DATA_ERROR = "data_error"
    VALIDATION_ERROR = "validation_error"
    INVARIANT_ERROR = "invariant_error"


class ErrorSeverity(Enum):
    """错误严重程度"""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class ErrorContext:
    """错误上下文信息"""

    task_id: Optional[str] = None
    symbol: Optional[str] = None
    additional_data: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "symbol": self.symbol,
            "additional_data": self.additional_data,
        }


class BaseError(Exception):
    """基础错误类"""

    def __init__(
        self,
        message: str,
        error_type: ErrorType,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.severity = severity
        self.context = context or ErrorContext()
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)
        self.error_id = f"{error_type.value}_{int(self.timestamp.timestamp())}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_id": self.error_id,
            "message": self.message,
            "error_type": self.error_type.value,
            "severity": self.severity.value,
            "timestamp": self.timestamp.isoformat(),
            "context": self.context.to_dict(),
            "original_exception": str(self.original_exception)
            if self.original_exception
            else None,
        }


class TaskError(BaseError):
    """回测任务相关错误"""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorType.TASK_ERROR, **kwargs)


class DataError(BaseError):
    """历史数据源相关错误（单个币种加载失败时跳过该币种）"""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorType.DATA_ERROR, **kwargs)


class ValidationError(BaseError):
    """参数验证错误"""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorType.VALIDATION_ERROR, **kwargs)


class InvariantViolationError(BaseError):
    """内部不变量被破坏（负现金、负持仓等），属于程序缺陷，必须中止回测"""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.CRITICAL)
        super().__init__(message, ErrorType.INVARIANT_ERROR, **kwargs)
