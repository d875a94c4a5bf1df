"""
日志配置

控制台 + 按天滚动的文件日志；回测过程（信号、成交、跳过的币种）单独写入 backtest.log
"""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from cryptowise.core.config import settings

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}"
BACKTEST_LOGGER_PREFIX = "cryptowise.services.backtest"


def _is_backtest_record(record) -> bool:
    return record["name"].startswith(BACKTEST_LOGGER_PREFIX)


def setup_logging(
    log_to_file: bool = True,
    level: Optional[str] = None,
    log_dir: Optional[Path] = None,
) -> Optional[Path]:
    """
    设置日志配置

    Args:
        log_to_file: 是否写文件日志
        level: 控制台日志级别，默认取 settings.LOG_LEVEL
        log_dir: 日志目录，默认 DATA_ROOT_PATH/logs

    Returns:
        日志目录；只输出到控制台时为 None
    """
    logger.remove()

    logger.add(
        sys.stdout,
        level=level or settings.LOG_LEVEL,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
               "<level>{level: <8}</level> | "
               "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
               "<level>{message}</level>",
        colorize=True,
    )

    if not log_to_file:
        return None

    log_path = Path(log_dir) if log_dir else Path(settings.DATA_ROOT_PATH) / "logs"
    log_path.mkdir(parents=True, exist_ok=True)

    logger.add(
        log_path / "app.log",
        level="INFO",
        format=FILE_FORMAT,
        rotation="1 day",
        retention="30 days",
        compression="zip",
    )

    logger.add(
        log_path / "error.log",
        level="ERROR",
        format=FILE_FORMAT,
        rotation="1 day",
        retention="30 days",
        compression="zip",
    )

    # 回测明细，DEBUG 级别包含被拒绝的交易和缓存命中
    logger.add(
        log_path / "backtest.log",
        level="DEBUG",
        format=FILE_FORMAT,
        filter=_is_backtest_record,
        rotation="50 MB",
        retention="7 days",
    )

    return log_path
